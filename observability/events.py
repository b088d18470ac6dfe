"""
Structured JSON event emission (shared).

Every event is one JSON object per line on stdout with a fixed envelope:
ts, session_id, component, event_type, severity, correlation_id, pii.
Event-specific fields are added at the top level next to the envelope.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TextIO


class Component(str, Enum):
    """Components that emit events."""

    COMMAND_PIPELINE = "command_pipeline"
    RECOGNITION = "recognition"
    TELEMETRY = "telemetry"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def pii_marker(*fields: str) -> Optional[Dict[str, Any]]:
    """Build the pii envelope for events carrying the given PII fields."""
    if not fields:
        return None
    return {"contains_pii": True, "fields": list(fields), "handling": "none"}


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component, stream: Optional[TextIO] = None):
        self.component = component
        self._stream = stream

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit a structured JSON event.

        Args:
            event_type: Stable event type string (e.g., "command.completed")
            session_id: Opaque session identifier
            severity: Event severity level
            correlation_id: Optional correlation ID for one transcript event
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Additional event-specific fields

        Returns:
            The emitted event dict.
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii or DEFAULT_PII,
        }

        event.update(kwargs)

        # Resolved per call so pytest's capsys sees the output
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event, ensure_ascii=False, default=str))
        stream.write("\n")
        stream.flush()

        return event
