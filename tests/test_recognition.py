"""
Tests for transcript sources.

Verifies:
- Termination signal after buffered events are consumed
- Stream errors are delivered without ending the stream
- Bounded buffer applies backpressure
- LiveKit speech events are filtered down to final transcripts
"""
import asyncio
from types import SimpleNamespace

import pytest
from livekit.agents import stt

from command_pipeline.errors import RecognitionStreamError
from command_pipeline.recognition import LiveKitTranscriptSource, QueueTranscriptSource


async def _collect(source):
    return [event.text async for event in source]


@pytest.mark.asyncio
async def test_queue_source_yields_then_terminates():
    source = QueueTranscriptSource(maxsize=4)
    await source.put("analisar dados")
    await source.put("gerar relatório")
    await source.close()

    assert await _collect(source) == ["analisar dados", "gerar relatório"]
    # Termination is sticky
    with pytest.raises(StopAsyncIteration):
        await source.__anext__()


@pytest.mark.asyncio
async def test_queue_source_error_does_not_end_stream():
    source = QueueTranscriptSource()
    await source.put("primeiro")
    await source.fail(RecognitionStreamError("stream hiccup"))
    await source.put("segundo")
    await source.close()

    assert (await source.__anext__()).text == "primeiro"
    with pytest.raises(RecognitionStreamError):
        await source.__anext__()
    assert (await source.__anext__()).text == "segundo"
    with pytest.raises(StopAsyncIteration):
        await source.__anext__()


@pytest.mark.asyncio
async def test_queue_source_backpressure():
    source = QueueTranscriptSource(maxsize=1)
    await source.put("one")

    blocked = asyncio.create_task(source.put("two"))
    await asyncio.sleep(0)
    assert not blocked.done()

    assert (await source.__anext__()).text == "one"
    await asyncio.wait_for(blocked, timeout=1)
    assert (await source.__anext__()).text == "two"


@pytest.mark.asyncio
async def test_put_after_close_is_rejected():
    source = QueueTranscriptSource()
    await source.close()
    await source.close()  # idempotent
    with pytest.raises(RuntimeError):
        await source.put("late")


def test_maxsize_must_be_positive():
    with pytest.raises(ValueError):
        QueueTranscriptSource(maxsize=0)


class FakeSpeechStream:
    """Async iterator over canned speech events, optionally failing at the end."""

    def __init__(self, events, error: Exception = None):
        self._events = list(events)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._events:
            return self._events.pop(0)
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True


def _speech_event(event_type, text):
    return SimpleNamespace(type=event_type, alternatives=[SimpleNamespace(text=text, language="pt")])


@pytest.mark.asyncio
async def test_livekit_source_keeps_only_final_transcripts():
    speech_stream = FakeSpeechStream([
        _speech_event(stt.SpeechEventType.START_OF_SPEECH, ""),
        _speech_event(stt.SpeechEventType.INTERIM_TRANSCRIPT, "analisar"),
        _speech_event(stt.SpeechEventType.FINAL_TRANSCRIPT, " analisar dados "),
        _speech_event(stt.SpeechEventType.FINAL_TRANSCRIPT, "   "),
        _speech_event(stt.SpeechEventType.END_OF_SPEECH, ""),
    ])
    source = LiveKitTranscriptSource(speech_stream, maxsize=2)

    assert await _collect(source) == ["analisar dados"]

    await source.aclose()
    assert speech_stream.closed


@pytest.mark.asyncio
async def test_livekit_source_reports_error_then_closes():
    speech_stream = FakeSpeechStream(
        [_speech_event(stt.SpeechEventType.FINAL_TRANSCRIPT, "gerar relatório")],
        error=ConnectionError("stream reset"),
    )
    source = LiveKitTranscriptSource(speech_stream).start()

    assert (await source.__anext__()).text == "gerar relatório"
    with pytest.raises(RecognitionStreamError):
        await source.__anext__()
    with pytest.raises(StopAsyncIteration):
        await source.__anext__()
    assert source.closed
