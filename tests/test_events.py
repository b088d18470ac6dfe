"""
Event emission tests.

Verifies the structured event envelope and the command pipeline event
helpers.
"""
import json
from io import StringIO
from datetime import datetime

from observability.events import EventEmitter, Component, Severity, DEFAULT_PII, pii_marker
from command_pipeline.models import Intent, Outcome, PipelineResult
from command_pipeline.observability import PipelineObserver


def _events(output: str) -> list[dict]:
    parsed = [json.loads(line) for line in output.splitlines() if line.startswith("{")]
    return [e for e in parsed if "event_type" in e]


class TestEventFormat:
    """Envelope fields."""

    def test_required_fields(self, capsys):
        emitter = EventEmitter(Component.COMMAND_PIPELINE)
        emitter.emit(
            event_type="test.event",
            session_id="room-123",
            severity=Severity.INFO,
        )

        event = _events(capsys.readouterr().out)[0]

        for key in ("ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii"):
            assert key in event
        assert event["session_id"] == "room-123"
        assert event["component"] == "command_pipeline"
        assert event["event_type"] == "test.event"
        assert event["severity"] == "info"

    def test_timestamp_format(self, capsys):
        EventEmitter(Component.TELEMETRY).emit("test.event", session_id="s")

        event = _events(capsys.readouterr().out)[0]
        assert datetime.fromisoformat(event["ts"]) is not None

    def test_correlation_id_defaults_to_session_id(self, capsys):
        EventEmitter(Component.RECOGNITION).emit("test.event", session_id="s-1")

        event = _events(capsys.readouterr().out)[0]
        assert event["correlation_id"] == "s-1"
        assert event["pii"] == DEFAULT_PII

    def test_explicit_stream_and_extra_fields(self):
        stream = StringIO()
        emitter = EventEmitter(Component.COMMAND_PIPELINE, stream=stream)
        returned = emitter.emit("test.event", session_id="s", correlation_id="cmd_1", outcome="success")

        event = json.loads(stream.getvalue())
        assert event["correlation_id"] == "cmd_1"
        assert event["outcome"] == "success"
        assert returned == event

    def test_pii_marker(self):
        assert pii_marker() is None
        assert pii_marker("text") == {"contains_pii": True, "fields": ["text"], "handling": "none"}


class TestPipelineObserver:
    """Command pipeline event helpers."""

    def test_command_received_marks_text_as_pii(self, capsys):
        observer = PipelineObserver("room-1")
        observer.command_received("cmd_1", "analisar dados")

        event = _events(capsys.readouterr().out)[0]
        assert event["event_type"] == "command.received"
        assert event["correlation_id"] == "cmd_1"
        assert event["text"] == "analisar dados"
        assert event["pii"]["fields"] == ["text"]

    def test_command_completed_carries_latency(self, capsys):
        clock = iter([100.0, 100.25])
        observer = PipelineObserver("room-1", now=lambda: next(clock))
        observer.command_received("cmd_1", "analisar dados")

        result = PipelineResult(original_text="analisar dados", correlation_id="cmd_1").extend(
            final_text="analisar dados", intent=Intent.ANALYZE_DATA
        ).terminate(Outcome.SUCCESS, "Análise de dados executada")
        observer.command_completed(result)

        completed = _events(capsys.readouterr().out)[-1]
        assert completed["event_type"] == "command.completed"
        assert completed["outcome"] == "success"
        assert completed["intent"] == "analyze_data"
        assert completed["latency_ms"] == 250
        assert completed["severity"] == "info"

    def test_stage_failed_is_a_warning(self, capsys):
        observer = PipelineObserver("room-1")
        observer.stage_failed(
            "cmd_2", Outcome.TRANSLATION_FAILED, category="provider.network_error", detail="boom"
        )

        event = _events(capsys.readouterr().out)[0]
        assert event["event_type"] == "command.stage_failed"
        assert event["severity"] == "warn"
        assert event["outcome"] == "translation_failed"
        assert event["category"] == "provider.network_error"

    def test_session_level_events(self, capsys):
        observer = PipelineObserver("room-1")
        observer.telemetry_write_failed(category="provider.unknown_error", detail="down")
        observer.recognition_error(category="provider.network_error", detail="reset")

        types = [e["event_type"] for e in _events(capsys.readouterr().out)]
        assert types == ["telemetry.write_failed", "recognition.stream_error"]
