"""
Command pipeline observability.

Emits one structured event per pipeline milestone:
- command.received       a transcript entered the stage chain
- command.stage_failed   a stage ended the chain early
- command.completed      terminal outcome (always exactly one per transcript)
- telemetry.write_failed the telemetry record was dropped
- recognition.stream_error the speech stream reported an error

Transcript and response text are carried with the PII marker set.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from observability.events import Component as ObsComponent, EventEmitter, Severity, pii_marker

from .models import PipelineResult, Outcome


class PipelineObserver:
    """Emits events for one session of the command pipeline."""

    def __init__(
        self,
        session_id: str,
        *,
        now: Callable[[], float] = time.time,
        emitter: Optional[EventEmitter] = None,
    ):
        self.session_id = session_id
        self.emitter = emitter or EventEmitter(ObsComponent.COMMAND_PIPELINE)
        self._now = now
        self._started: dict[str, float] = {}

    def command_received(self, correlation_id: str, text: str) -> None:
        self._started[correlation_id] = self._now()
        self.emitter.emit(
            "command.received",
            session_id=self.session_id,
            correlation_id=correlation_id,
            pii=pii_marker("text"),
            text=text,
            text_length=len(text),
        )

    def stage_failed(
        self,
        correlation_id: str,
        outcome: Outcome,
        *,
        category: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        payload: dict[str, Any] = {"outcome": outcome.value}
        if category:
            payload["category"] = category
        if detail:
            payload["detail"] = detail
        self.emitter.emit(
            "command.stage_failed",
            session_id=self.session_id,
            severity=Severity.WARN,
            correlation_id=correlation_id,
            **payload,
        )

    def command_completed(self, result: PipelineResult) -> None:
        correlation_id = result.correlation_id or self.session_id
        payload: dict[str, Any] = {
            "outcome": result.outcome.value if result.outcome else None,
            "intent": result.intent.value if result.intent else None,
            "response": result.response,
        }
        started = self._started.pop(correlation_id, None)
        if started is not None:
            payload["latency_ms"] = int((self._now() - started) * 1000)
        self.emitter.emit(
            "command.completed",
            session_id=self.session_id,
            severity=Severity.INFO if result.succeeded else Severity.WARN,
            correlation_id=correlation_id,
            pii=pii_marker("response"),
            **payload,
        )

    def discard(self, correlation_id: Optional[str]) -> None:
        """Forget the start time of a command, whether or not it completed."""
        self._started.pop(correlation_id, None)

    @property
    def pending(self) -> int:
        return len(self._started)

    def telemetry_write_failed(self, *, category: str, detail: str) -> None:
        self.emitter.emit(
            "telemetry.write_failed",
            session_id=self.session_id,
            severity=Severity.WARN,
            category=category,
            detail=detail,
        )

    def recognition_error(self, *, category: str, detail: str) -> None:
        self.emitter.emit(
            "recognition.stream_error",
            session_id=self.session_id,
            severity=Severity.ERROR,
            category=category,
            detail=detail,
        )
