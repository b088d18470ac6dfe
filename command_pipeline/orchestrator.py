"""
Pipeline orchestrator.

Drives every transcript through the stage chain

    translate -> complete -> translate back -> classify -> execute

and records the interaction. Each transcript runs as its own asyncio task:
tasks are independent, never block the transcript source, and may finish out
of arrival order. Inside one task the stages are strictly sequential.

Failure containment:
- a failing stage terminates only its own transcript's chain
- no stage is retried
- exactly one telemetry record is attempted per transcript, whatever the
  outcome, and exactly one log line reports the terminal outcome
- a RecognitionStreamError from the source is reported and the loop keeps
  reading; the session only ends when the source signals termination
"""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any, AsyncIterator, Callable, Optional, Set

from logging_setup import get_logger, Component

from .classifier import CommandSet, DEFAULT_COMMAND_SET, classify
from .completer import Completer
from .errors import RecognitionStreamError, classify_error, redact_detail
from .executor import CommandExecutor
from .models import Intent, Outcome, PipelineResult, TranscriptEvent
from .observability import PipelineObserver
from .telemetry import TelemetrySink
from .translator import Translator


logger = get_logger(Component.ORCHESTRATOR)

Classifier = Callable[[str, CommandSet], Intent]


class PipelineOrchestrator:
    """Runs the stage chain for each transcript of one session."""

    def __init__(
        self,
        *,
        translator: Translator,
        completer: Completer,
        executor: CommandExecutor,
        telemetry: TelemetrySink,
        session_id: str = "local",
        source_language: str = "pt",
        pivot_language: str = "en",
        max_tokens: int = 150,
        max_in_flight: int = 8,
        classifier: Classifier = classify,
        command_set: Optional[CommandSet] = None,
        observer: Optional[PipelineObserver] = None,
        now: Callable[[], float] = time.time,
    ):
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")

        self.session_id = session_id
        self.source_language = source_language
        self.pivot_language = pivot_language
        self.max_tokens = max_tokens

        self._translator = translator
        self._completer = completer
        self._executor = executor
        self._telemetry = telemetry
        self._classifier = classifier
        self._command_set = command_set or executor.command_set or DEFAULT_COMMAND_SET
        self._observer = observer or PipelineObserver(session_id)
        self._now = now

        self.logger = logger.with_session(session_id)
        self._tasks: Set[asyncio.Task] = set()
        self._capacity = asyncio.Semaphore(max_in_flight)
        self._sequence = itertools.count(1)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _new_correlation_id(self) -> str:
        return f"cmd_{int(self._now() * 1000)}_{next(self._sequence)}"

    # --- Session level ---

    def on_transcript(self, text: str) -> asyncio.Task:
        """
        Start processing one transcript and return immediately.

        The returned task resolves to the PipelineResult. Tasks are
        independent of each other and carry no ordering guarantee.
        """
        task = asyncio.create_task(self._process_safely(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, source: AsyncIterator[TranscriptEvent]) -> None:
        """
        Consume a transcript source until it signals termination.

        At most max_in_flight chains run at once; while all slots are taken
        the source is not read, so its bounded buffer fills up and pushes
        back on the recognizer. Returns after every started chain finished.
        """
        self.logger.info("Command session started")
        iterator = source.__aiter__()
        try:
            while True:
                await self._capacity.acquire()
                try:
                    event = await iterator.__anext__()
                except StopAsyncIteration:
                    self._capacity.release()
                    break
                except RecognitionStreamError as e:
                    self._capacity.release()
                    category = classify_error(e)
                    detail = redact_detail(e)
                    self.logger.error(
                        "Speech recognition error; still listening",
                        category=category,
                        error=detail,
                    )
                    self._observe(self._observer.recognition_error, category=category, detail=detail)
                    continue
                except BaseException:
                    self._capacity.release()
                    raise

                task = self.on_transcript(event.text)
                task.add_done_callback(lambda _t: self._capacity.release())
        finally:
            # Started chains run to completion even if the session is cancelled
            if self._tasks:
                await asyncio.shield(self.drain())
            self.logger.info("Command session ended")

    async def drain(self) -> None:
        """Wait for every in-flight chain to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def ensure_schema(self) -> None:
        """Prepare the telemetry store; call once before the first transcript."""
        await self._telemetry.ensure_schema()

    async def aclose(self) -> None:
        """Release the service clients. Safe to call multiple times."""
        for client in (self._translator, self._completer, self._telemetry):
            close = getattr(client, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                self.logger.warning(
                    "Error closing service client",
                    client=type(client).__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # --- Event level ---

    async def _process_safely(self, text: str) -> Optional[PipelineResult]:
        try:
            return await self.process(text)
        except Exception:
            # Keeps a task exception from going unobserved
            self.logger.exception("Unexpected error while processing command")
            return None

    async def process(self, text: str) -> PipelineResult:
        """Run the stage chain for one transcript and record the result."""
        result = PipelineResult(original_text=text, correlation_id=self._new_correlation_id())
        log = self.logger
        log.debug_pii("Command received", text=text)

        try:
            self._observe(self._observer.command_received, result.correlation_id, text)
            try:
                result = await self._run_stages(result)
            except Exception:
                # Stages handle their own failures; this is a bug in a stage
                log.exception("Command chain raised", correlation_id=result.correlation_id)
                result = result.terminate(Outcome.EXECUTION_FAILED)

            self._log_outcome(result)
            self._observe(self._observer.command_completed, result)
        finally:
            self._observer.discard(result.correlation_id)
            await self._telemetry.record(result.original_text, result.response or "")
        return result

    def _observe(self, emit: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Emit an event; a broken event stream never affects the command."""
        try:
            emit(*args, **kwargs)
        except Exception as e:
            self.logger.warning(
                "Event emission failed",
                event=emit.__name__,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _run_stages(self, result: PipelineResult) -> PipelineResult:
        text = result.original_text

        # 1. Source -> pivot language
        try:
            translated = await self._translator.translate(
                text, target=self.pivot_language, source=self.source_language
            )
        except Exception as e:
            return self._stage_failed(result, Outcome.TRANSLATION_FAILED, e)
        if not _usable(translated):
            return self._stage_failed(result, Outcome.TRANSLATION_FAILED, None)

        # 2. Completion, bounded by max_tokens
        try:
            completion = await self._completer.complete(translated, max_tokens=self.max_tokens)
        except Exception as e:
            return self._stage_failed(result, Outcome.COMPLETION_FAILED, e)
        if not _usable(completion):
            return self._stage_failed(result, Outcome.COMPLETION_FAILED, None)

        # 3. Pivot -> source language
        try:
            final_text = await self._translator.translate(
                completion, target=self.source_language, source=self.pivot_language
            )
        except Exception as e:
            return self._stage_failed(result, Outcome.BACK_TRANSLATION_FAILED, e)
        if not _usable(final_text):
            return self._stage_failed(result, Outcome.BACK_TRANSLATION_FAILED, None)

        # 4. Classify the back-translated reply
        intent = self._classifier(final_text, self._command_set)
        result = result.extend(final_text=final_text, intent=intent)

        # 5. Execute
        if intent is Intent.UNKNOWN:
            return result.terminate(Outcome.UNKNOWN_COMMAND, self._command_set.unknown_response)

        try:
            response = await self._executor.execute(intent, final_text)
        except Exception as e:
            # Traceback at debug only; the outcome line is the report
            self.logger.debug(
                "Command handler raised",
                correlation_id=result.correlation_id,
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._observe(
                self._observer.stage_failed,
                result.correlation_id,
                Outcome.EXECUTION_FAILED,
                detail=redact_detail(e),
            )
            return result.terminate(Outcome.EXECUTION_FAILED)
        return result.terminate(Outcome.SUCCESS, response)

    def _stage_failed(
        self,
        result: PipelineResult,
        outcome: Outcome,
        error: Optional[BaseException],
    ) -> PipelineResult:
        if error is None:
            category, detail = "provider.bad_response", "empty result"
        else:
            category, detail = classify_error(error), redact_detail(error)
        self._observe(
            self._observer.stage_failed,
            result.correlation_id,
            outcome,
            category=category,
            detail=detail,
        )
        return result.terminate(outcome)

    def _log_outcome(self, result: PipelineResult) -> None:
        fields = {
            "correlation_id": result.correlation_id,
            "outcome": result.outcome.value,
            "intent": result.intent.value if result.intent else None,
            "response": result.response,
        }
        if result.outcome is Outcome.SUCCESS:
            self.logger.info("Command executed", **fields)
        elif result.outcome is Outcome.UNKNOWN_COMMAND:
            self.logger.info("Unknown command", **fields)
        else:
            self.logger.warning("Command failed", **fields)


def _usable(text: Optional[str]) -> bool:
    return bool(text and text.strip())
