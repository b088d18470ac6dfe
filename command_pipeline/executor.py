"""
Command executor.

Runs the domain action bound to a recognized intent and reports a fixed,
human-readable response taken from the active command set. The default
actions only log; deployments bind real ones with register().
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional

from logging_setup import get_logger, Component

from .classifier import CommandSet, DEFAULT_COMMAND_SET
from .models import Intent


logger = get_logger(Component.EXECUTOR)

# (intent, text) -> None; raising makes the event end as execution_failed
CommandHandler = Callable[[Intent, str], Awaitable[None]]

_ACTION_LOG_MESSAGES = {
    Intent.ANALYZE_DATA: "Running data analysis",
    Intent.QUERY_HISTORY: "Querying history",
    Intent.GENERATE_REPORT: "Generating report",
    Intent.UPDATE_DATA: "Updating data",
}


class CommandExecutor:
    """Dispatches recognized intents to their handlers."""

    def __init__(
        self,
        command_set: CommandSet = DEFAULT_COMMAND_SET,
        handlers: Optional[Dict[Intent, CommandHandler]] = None,
        session_id: Optional[str] = None,
    ):
        self.command_set = command_set
        self._handlers: Dict[Intent, CommandHandler] = dict(handlers or {})
        self.logger = logger.with_session(session_id) if session_id else logger

    def register(self, intent: Intent, handler: CommandHandler) -> None:
        """Bind a domain action to an intent, replacing the default one."""
        if intent is Intent.UNKNOWN:
            raise ValueError("cannot register a handler for the unknown intent")
        self._handlers[intent] = handler

    async def execute(self, intent: Intent, text: str) -> str:
        """
        Run the action for intent and return its response string.

        Only recognized intents are valid; Intent.UNKNOWN raises ValueError.
        """
        if intent is Intent.UNKNOWN:
            raise ValueError("unknown intent cannot be executed")

        handler = self._handlers.get(intent, self._default_action)
        await handler(intent, text)
        return self.command_set.response_for(intent)

    async def _default_action(self, intent: Intent, text: str) -> None:
        self.logger.info(_ACTION_LOG_MESSAGES[intent], intent=intent.value)
