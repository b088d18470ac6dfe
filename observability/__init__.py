"""
Structured event emission shared by the command pipeline components.
"""
