"""
Data model for one pass through the command pipeline.

A TranscriptEvent enters, a PipelineResult leaves. Results are frozen: each
stage either extends the result with its output or terminates it with an
outcome, always returning a new instance.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """Closed set of recognized command categories."""

    ANALYZE_DATA = "analyze_data"
    QUERY_HISTORY = "query_history"
    GENERATE_REPORT = "generate_report"
    UPDATE_DATA = "update_data"
    UNKNOWN = "unknown"


class Outcome(str, Enum):
    """Terminal outcome of one transcript event."""

    SUCCESS = "success"
    TRANSLATION_FAILED = "translation_failed"
    COMPLETION_FAILED = "completion_failed"
    BACK_TRANSLATION_FAILED = "back_translation_failed"
    UNKNOWN_COMMAND = "unknown_command"
    EXECUTION_FAILED = "execution_failed"


UNKNOWN_COMMAND_RESPONSE = "Comando desconhecido"

# Recorded as the telemetry response when a stage terminates the chain
FAILURE_RESPONSES = {
    Outcome.TRANSLATION_FAILED: "Falha na tradução do comando",
    Outcome.COMPLETION_FAILED: "Falha na geração da resposta",
    Outcome.BACK_TRANSLATION_FAILED: "Falha na tradução da resposta",
    Outcome.UNKNOWN_COMMAND: UNKNOWN_COMMAND_RESPONSE,
    Outcome.EXECUTION_FAILED: "Falha na execução do comando",
}


@dataclass(frozen=True)
class TranscriptEvent:
    """One final transcript produced by the speech recognizer."""

    text: str
    received_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PipelineResult:
    """
    Outcome of running the stage chain for one transcript.

    outcome is None while the chain is still running; a terminated result
    always carries an outcome and the response that goes to telemetry.
    """

    original_text: str
    correlation_id: Optional[str] = None
    final_text: Optional[str] = None
    intent: Optional[Intent] = None
    outcome: Optional[Outcome] = None
    response: Optional[str] = None

    @property
    def terminated(self) -> bool:
        return self.outcome is not None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def extend(self, **changes) -> "PipelineResult":
        """Return a copy carrying a stage's output."""
        if self.terminated:
            raise ValueError(f"result already terminated with {self.outcome.value}")
        return replace(self, **changes)

    def terminate(self, outcome: Outcome, response: Optional[str] = None) -> "PipelineResult":
        """Return a terminal copy; failures default to their fixed response."""
        if self.terminated:
            raise ValueError(f"result already terminated with {self.outcome.value}")
        if response is None:
            response = FAILURE_RESPONSES.get(outcome, "")
        return replace(self, outcome=outcome, response=response)


@dataclass(frozen=True)
class TelemetryRecord:
    """One row in the telemetry store: what was said and what happened."""

    command: str
    response: str
    host: str = "local"
