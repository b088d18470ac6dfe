"""
Transcript sources.

A TranscriptSource is an async iterator of TranscriptEvent:
- StopAsyncIteration is the termination signal (the audio channel closed)
- RecognitionStreamError may be raised by __anext__ without ending the
  stream; the consumer decides whether to keep reading
- the buffer between recognizer and consumer is bounded, so a slow consumer
  applies backpressure instead of growing memory

LiveKitTranscriptSource feeds final transcripts from a LiveKit Agents speech
stream (Groq Whisper behind a VAD-driven StreamAdapter) into that buffer.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional, Union

from livekit.agents import stt
from livekit.plugins import groq

from logging_setup import get_logger, Component

from .config import PipelineConfig
from .errors import RecognitionStreamError, redact_detail
from .models import TranscriptEvent

logger = get_logger(Component.RECOGNITION)

_CLOSED = object()


class QueueTranscriptSource:
    """Bounded, closable transcript stream."""

    def __init__(self, maxsize: int = 32):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: asyncio.Queue[Union[TranscriptEvent, RecognitionStreamError, object]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[TranscriptEvent]:
        return self

    async def __anext__(self) -> TranscriptEvent:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, RecognitionStreamError):
            raise item
        return item

    async def put(self, text: str) -> None:
        """Deliver a transcript; waits while the buffer is full."""
        if self._closed:
            raise RuntimeError("transcript source is closed")
        await self._queue.put(TranscriptEvent(text=text))

    async def fail(self, error: RecognitionStreamError) -> None:
        """Deliver a stream error to the consumer without ending the stream."""
        if self._closed:
            raise RuntimeError("transcript source is closed")
        await self._queue.put(error)

    async def close(self) -> None:
        """Signal termination once everything already buffered is consumed."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    def _close_nowait(self) -> None:
        """Close without waiting; if the buffer is full the sentinel is dropped."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass


class LiveKitTranscriptSource(QueueTranscriptSource):
    """
    Transcript source backed by a LiveKit Agents speech stream.

    Only FINAL_TRANSCRIPT events are delivered. If the speech stream raises,
    one RecognitionStreamError is delivered and the source closes; there is
    no reconnect.
    """

    def __init__(self, speech_stream: stt.SpeechStream, maxsize: int = 32):
        super().__init__(maxsize=maxsize)
        self._speech_stream = speech_stream
        self._pump_task: Optional[asyncio.Task] = None

    def start(self) -> "LiveKitTranscriptSource":
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
        return self

    def __aiter__(self) -> AsyncIterator[TranscriptEvent]:
        self.start()
        return self

    async def _pump(self) -> None:
        try:
            async for event in self._speech_stream:
                if event.type != stt.SpeechEventType.FINAL_TRANSCRIPT or not event.alternatives:
                    continue
                text = event.alternatives[0].text.strip()
                if not text:
                    continue
                logger.debug(
                    "Final transcript received",
                    transcript_length=len(text),
                    language=getattr(event.alternatives[0], "language", None),
                )
                await self.put(text)
        except asyncio.CancelledError:
            self._close_nowait()
            raise
        except Exception as e:
            logger.error(
                "Speech recognition stream failed",
                error=redact_detail(e),
                error_type=type(e).__name__,
            )
            await self.fail(RecognitionStreamError(redact_detail(e)))
        await self.close()

    async def aclose(self) -> None:
        """Stop pumping and close the underlying speech stream."""
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
        await self._speech_stream.aclose()


def build_speech_recognizer(config: PipelineConfig, *, vad) -> stt.STT:
    """
    Build the streaming recognizer.

    Groq Whisper is request/response only; StreamAdapter segments the audio
    with the VAD and transcribes each utterance.
    """
    logger.debug(
        "STT provider configured",
        provider="groq",
        model=config.speech_model,
        language=config.source_language,
        endpoint=config.speech_service_endpoint,
    )
    whisper = groq.STT(
        model=config.speech_model,
        language=config.source_language,
        api_key=config.effective_speech_api_key,
        base_url=config.speech_service_endpoint,
    )
    return stt.StreamAdapter(stt=whisper, vad=vad)
