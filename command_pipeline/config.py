"""
Command pipeline configuration.

Loads credentials, endpoints and tuning values from environment variables.
No credential has a default: the four required values must be exported (or
placed in .env_local, which agent.py loads).
"""
import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_TRANSLATION_ENDPOINT = "https://translation.googleapis.com/language/translate/v2"
DEFAULT_COMPLETION_ENDPOINT = "https://api.groq.com/openai/v1/chat/completions"


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "150  # comment" -> 150
    - "150" -> 150
    - None -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class PipelineConfig:
    """Command pipeline configuration."""

    # Required credentials / endpoints
    translation_api_key: str
    completion_api_key: str
    speech_service_endpoint: str
    telemetry_host: str

    # Speech recognition (Groq Whisper through LiveKit Agents)
    speech_api_key: Optional[str] = None  # falls back to completion_api_key
    speech_model: str = "whisper-large-v3"
    audio_sample_rate: int = 16000

    # Languages
    source_language: str = "pt"
    pivot_language: str = "en"

    # Translation (Google Cloud Translation v2 REST)
    translation_endpoint: str = DEFAULT_TRANSLATION_ENDPOINT

    # Completion (OpenAI-compatible chat completions, Groq by default)
    completion_endpoint: str = DEFAULT_COMPLETION_ENDPOINT
    completion_model: str = "qwen/qwen3-32b"
    completion_max_tokens: int = 150

    # Telemetry (InfluxDB)
    telemetry_token: Optional[str] = None
    telemetry_org: str = "default"
    telemetry_bucket: str = "superalgos_db"
    telemetry_host_tag: str = "local"

    # Orchestration
    max_in_flight: int = 8
    transcript_buffer_size: int = 32
    command_set: str = "default"

    @property
    def effective_speech_api_key(self) -> str:
        return self.speech_api_key or self.completion_api_key

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment variables."""
        return cls(
            translation_api_key=os.environ["TRANSLATION_API_KEY"],
            completion_api_key=os.environ["COMPLETION_API_KEY"],
            speech_service_endpoint=os.environ["SPEECH_SERVICE_ENDPOINT"],
            telemetry_host=os.environ["TELEMETRY_HOST"],
            speech_api_key=os.environ.get("SPEECH_API_KEY"),
            speech_model=os.environ.get("SPEECH_MODEL", "whisper-large-v3"),
            audio_sample_rate=_parse_int_env("AUDIO_SAMPLE_RATE", default=16000),
            source_language=os.environ.get("SOURCE_LANGUAGE", "pt").lower(),
            pivot_language=os.environ.get("PIVOT_LANGUAGE", "en").lower(),
            translation_endpoint=os.environ.get("TRANSLATION_ENDPOINT", DEFAULT_TRANSLATION_ENDPOINT),
            completion_endpoint=os.environ.get("COMPLETION_ENDPOINT", DEFAULT_COMPLETION_ENDPOINT),
            completion_model=os.environ.get("COMPLETION_MODEL", "qwen/qwen3-32b"),
            completion_max_tokens=_parse_int_env("COMPLETION_MAX_TOKENS", default=150),
            telemetry_token=os.environ.get("TELEMETRY_TOKEN"),
            telemetry_org=os.environ.get("TELEMETRY_ORG", "default"),
            telemetry_bucket=os.environ.get("TELEMETRY_BUCKET", "superalgos_db"),
            telemetry_host_tag=os.environ.get("TELEMETRY_HOST_TAG", "local"),
            max_in_flight=_parse_int_env("MAX_IN_FLIGHT", default=8),
            transcript_buffer_size=_parse_int_env("TRANSCRIPT_BUFFER_SIZE", default=32),
            command_set=os.environ.get("COMMAND_SET", "default"),
        )


def get_config() -> PipelineConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = PipelineConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[PipelineConfig] = None
