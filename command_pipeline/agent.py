"""
Command pipeline agent (LiveKit Agents worker).

Per job: join the room audio-only, take the first participant's microphone
track, stream it through speech recognition and run every final transcript
through the command pipeline until the participant leaves.

Service clients are built here and injected into the orchestrator; nothing
below this module reads configuration or credentials on its own.
"""
import asyncio
import os
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from livekit import rtc
from livekit.agents import AutoSubscribe, JobContext, WorkerOptions, cli, stt
from livekit.plugins import silero

from logging_setup import get_logger, Component, setup_logging
from .classifier import get_command_set
from .completer import ChatCompletionCompleter
from .config import PipelineConfig, get_config
from .context import build_dispatch_context
from .executor import CommandExecutor
from .observability import PipelineObserver
from .orchestrator import PipelineOrchestrator
from .recognition import LiveKitTranscriptSource, build_speech_recognizer
from .telemetry import InfluxTelemetrySink
from .translator import GoogleTranslator

# Local dev convenience: never overrides variables that are already exported.
root = Path(__file__).parent.parent
for name in (".env_local", ".env.local"):
    p = root / name
    if p.exists():
        load_dotenv(p, override=False)

logger = get_logger(Component.AGENT)

# Prewarmed/shared instances (best-effort)
_VAD = None


async def wait_for_audio_track(
    room: rtc.Room, participant: rtc.RemoteParticipant
) -> Optional[rtc.Track]:
    """
    Return the participant's first audio track, waiting for it if needed.

    Returns None if the participant leaves before publishing audio.
    """
    for publication in participant.track_publications.values():
        if publication.track is not None and publication.kind == rtc.TrackKind.KIND_AUDIO:
            return publication.track

    track_future: asyncio.Future = asyncio.get_running_loop().create_future()

    def on_track_subscribed(track, _publication, remote_participant):
        if (
            remote_participant.identity == participant.identity
            and track.kind == rtc.TrackKind.KIND_AUDIO
            and not track_future.done()
        ):
            track_future.set_result(track)

    def on_participant_disconnected(remote_participant):
        if remote_participant.identity == participant.identity and not track_future.done():
            track_future.set_result(None)

    room.on("track_subscribed", on_track_subscribed)
    room.on("participant_disconnected", on_participant_disconnected)
    try:
        return await track_future
    finally:
        room.off("track_subscribed", on_track_subscribed)
        room.off("participant_disconnected", on_participant_disconnected)


async def forward_audio(track: rtc.Track, speech_stream: stt.SpeechStream, sample_rate: int) -> None:
    """Push microphone frames into the speech stream until the track ends."""
    audio_stream = rtc.AudioStream(track, sample_rate=sample_rate, num_channels=1)
    try:
        async for frame_event in audio_stream:
            speech_stream.push_frame(frame_event.frame)
    finally:
        # Lets the recognizer flush the last utterance and end its stream,
        # which in turn ends the transcript source.
        speech_stream.end_input()
        await audio_stream.aclose()


def build_orchestrator(
    config: PipelineConfig,
    *,
    session_id: str,
    command_set_name: Optional[str] = None,
    source_language: Optional[str] = None,
) -> PipelineOrchestrator:
    """Construct every capability from configuration and wire them together."""
    observer = PipelineObserver(session_id)
    command_set = get_command_set(command_set_name or config.command_set)

    translator = GoogleTranslator(
        api_key=config.translation_api_key,
        endpoint=config.translation_endpoint,
    )
    completer = ChatCompletionCompleter(
        api_key=config.completion_api_key,
        model=config.completion_model,
        endpoint=config.completion_endpoint,
    )
    telemetry = InfluxTelemetrySink(
        url=config.telemetry_host,
        bucket=config.telemetry_bucket,
        org=config.telemetry_org,
        token=config.telemetry_token,
        host_tag=config.telemetry_host_tag,
        observer=observer,
    )
    executor = CommandExecutor(command_set=command_set, session_id=session_id)

    return PipelineOrchestrator(
        translator=translator,
        completer=completer,
        executor=executor,
        telemetry=telemetry,
        session_id=session_id,
        source_language=source_language or config.source_language,
        pivot_language=config.pivot_language,
        max_tokens=config.completion_max_tokens,
        max_in_flight=config.max_in_flight,
        command_set=command_set,
        observer=observer,
    )


async def entrypoint(ctx: JobContext):
    """
    Agent entrypoint, called by the LiveKit Agents framework for each job.
    """
    await ctx.connect(auto_subscribe=AutoSubscribe.AUDIO_ONLY)
    participant = await ctx.wait_for_participant()

    dispatch_ctx = build_dispatch_context(
        room_name=ctx.room.name or "unknown",
        job_metadata=getattr(ctx.job, "metadata", None),
        participant_attributes=getattr(participant, "attributes", None),
    )
    session_id = dispatch_ctx.session_id
    session_logger = logger.with_session(session_id)
    session_logger.debug(
        "Command pipeline starting",
        room=ctx.room.name,
        job_id=ctx.job.id,
        participant_identity=participant.identity,
        command_set=dispatch_ctx.command_set,
    )

    config = get_config()
    if dispatch_ctx.source_language:
        # The recognizer must listen in the same language the chain translates from
        config = replace(config, source_language=dispatch_ctx.source_language)

    orchestrator = build_orchestrator(
        config,
        session_id=session_id,
        command_set_name=dispatch_ctx.command_set,
        source_language=dispatch_ctx.source_language,
    )

    # Non-fatal: records are best-effort, commands still run without the store
    try:
        await orchestrator.ensure_schema()
    except Exception as e:
        session_logger.error(
            "Telemetry store unavailable",
            error=str(e),
            error_type=type(e).__name__,
        )

    track = await wait_for_audio_track(ctx.room, participant)
    if track is None:
        session_logger.info("Participant left before publishing audio")
        await orchestrator.aclose()
        return

    recognizer = build_speech_recognizer(config, vad=_VAD or silero.VAD.load())
    speech_stream = recognizer.stream()
    source = LiveKitTranscriptSource(speech_stream, maxsize=config.transcript_buffer_size)

    # No await between starting the task and registering the handler
    audio_task = asyncio.create_task(
        forward_audio(track, speech_stream, config.audio_sample_rate)
    )

    def on_participant_disconnected(remote_participant):
        if remote_participant.identity == participant.identity:
            session_logger.info("Participant left; ending command session")
            audio_task.cancel()

    ctx.room.on("participant_disconnected", on_participant_disconnected)

    try:
        await orchestrator.run(source)
    finally:
        ctx.room.off("participant_disconnected", on_participant_disconnected)
        audio_task.cancel()
        await asyncio.gather(audio_task, return_exceptions=True)
        await source.aclose()
        await orchestrator.aclose()


def prewarm(_process):
    """
    Prewarm heavy resources to reduce time-to-first-transcript.

    LiveKit Agents runs this once per worker process.
    """
    global _VAD
    try:
        _VAD = silero.VAD.load()
    except Exception:
        _VAD = None


def main() -> None:
    """Run the agent worker (LiveKit CLI: dev, start, console, ...)."""
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), use_json=True)

    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=entrypoint,
            prewarm_fnc=prewarm,
            agent_name=os.getenv("LIVEKIT_AGENT_NAME", ""),
        )
    )


if __name__ == "__main__":
    main()
