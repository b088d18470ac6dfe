"""
Shared logging infrastructure for the voice command pipeline.

This module provides one logging setup for the orchestrator, the speech
recognition adapter and the service clients, so every log line can be
correlated with the session that produced it.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Session ID correlation across all logs
- Component and severity tagging
- PII-aware logging helpers (transcripts are PII)
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """System components for log tagging."""
    AGENT = "agent"
    ORCHESTRATOR = "orchestrator"
    RECOGNITION = "recognition"
    TRANSLATOR = "translator"
    COMPLETER = "completer"
    EXECUTOR = "executor"
    TELEMETRY = "telemetry"


# Attributes every LogRecord carries; anything else is a structured field.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "taskName", "exc_info", "exc_text", "stack_info",
    "component", "session_id", "message",
})


def _use_color() -> bool:
    if os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"):
        return False
    if os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes"):
        return True
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line carries:
    - ISO8601 timestamp
    - Severity level
    - Component identifier
    - Session ID (if available in extra)
    - Message and additional fields

    On a terminal, latency values (latency_ms) are rendered with a unit and
    highlighted in orange. Redirected output stays plain JSON.
    """

    ORANGE = '\033[38;5;208m'
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        json_output = json.dumps(log_data, ensure_ascii=False, default=str)

        if log_data.get("latency_ms") is not None and _use_color():
            json_output = re.sub(
                r'("latency_ms"\s*:\s*)(\d+)',
                rf'\1{self.ORANGE}\2 ms{self.RESET}',
                json_output,
            )

        return json_output


class StructuredLogger:
    """
    Wrapper around Python's logging with structured JSON output.

    Usage:
        logger = StructuredLogger("orchestrator", session_id="room-123")
        logger.info("Command completed", outcome="success")
        logger.error("Translation failed", error="details")
        logger.debug_pii("Transcript received", text="analisar dados")
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Internal logging method with structured data."""
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.session_id:
            extra["session_id"] = self.session_id

        if pii:
            # Marked separately so log shipping can drop or mask it
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        """Log a debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log an info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log a warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log an error message."""
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """
        Log an error message with exception info.

        Mirrors logging.Logger.exception so that external code (e.g. LiveKit)
        can safely call logger.exception(...) on this wrapper.
        """
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """
        Log debug with PII fields explicitly marked.

        Example:
            logger.debug_pii("Transcript received", text="gerar relatório")
        """
        self._log(logging.DEBUG, message, pii=pii_fields)

    def with_session(self, session_id: str) -> "StructuredLogger":
        """Create a new logger instance with a session ID."""
        return StructuredLogger(
            self.component,
            session_id=session_id,
            logger_name=self.logger.name
        )


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure root logger for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or simple text (False)
        include_timestamp: Include timestamps in text logs

    This should be called once at application startup.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter()
    else:
        format_str = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    session_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Args:
        component: Component name or Component enum
        session_id: Optional session ID for correlation

    Returns:
        StructuredLogger instance

    Example:
        logger = get_logger(Component.ORCHESTRATOR, session_id="room-123")
        logger.info("Session started")
    """
    return StructuredLogger(component, session_id=session_id)
