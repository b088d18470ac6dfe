"""
Entry point for running the command pipeline worker.

Usage:
    python -m command_pipeline dev
    python -m command_pipeline start

Arguments are handled by the LiveKit Agents CLI.
"""
from .agent import main

if __name__ == "__main__":
    main()
