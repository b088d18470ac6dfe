"""
Error taxonomy for the command pipeline.

Per-event failures (translation, completion, back-translation, unknown command)
are recovered by the orchestrator and become an Outcome. RecognitionStreamError
is session-level. TelemetryWriteError is swallowed by the sink after logging.

Provider failures are additionally mapped to stable categories so logs and
events stay comparable across providers.
"""
import asyncio
import re
from typing import Optional

import aiohttp


class PipelineError(Exception):
    """Base class for command pipeline errors."""

    def __init__(self, message: str = "", *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TranslationError(PipelineError):
    """The translation service failed or returned nothing usable."""


class CompletionError(PipelineError):
    """The completion service failed or returned nothing usable."""


class RecognitionStreamError(PipelineError):
    """The speech recognition stream reported an error."""


class TelemetryWriteError(PipelineError):
    """A telemetry record could not be persisted."""


class ProviderErrorCategory:
    """Stable provider error categories."""

    AUTH_FAILED = "provider.auth_failed"
    RATE_LIMITED = "provider.rate_limited"
    NETWORK_ERROR = "provider.network_error"
    CAPACITY_LIMITED = "provider.capacity_limited"
    BAD_RESPONSE = "provider.bad_response"
    UNKNOWN_ERROR = "provider.unknown_error"


def classify_error(error: BaseException) -> str:
    """
    Classify a provider error into a stable category.

    HTTP status codes win when the error carries one; otherwise the message
    is matched against known patterns.
    """
    status: Optional[int] = getattr(error, "status", None)
    if isinstance(status, int):
        if status in (401, 403):
            return ProviderErrorCategory.AUTH_FAILED
        if status == 429:
            return ProviderErrorCategory.RATE_LIMITED
        if status in (502, 503, 504):
            return ProviderErrorCategory.CAPACITY_LIMITED

    # Service clients wrap transport errors; look at the cause too
    for candidate in (error, error.__cause__):
        if isinstance(candidate, (aiohttp.ClientConnectionError, asyncio.TimeoutError, TimeoutError)):
            return ProviderErrorCategory.NETWORK_ERROR

    error_str = str(error).lower()

    if "unauthorized" in error_str or "forbidden" in error_str or "401" in error_str:
        return ProviderErrorCategory.AUTH_FAILED

    if "rate limit" in error_str or "429" in error_str or "quota" in error_str:
        return ProviderErrorCategory.RATE_LIMITED

    if "timeout" in error_str or "connection" in error_str or "network" in error_str:
        return ProviderErrorCategory.NETWORK_ERROR

    if "capacity" in error_str or "503" in error_str or "overloaded" in error_str:
        return ProviderErrorCategory.CAPACITY_LIMITED

    if "empty" in error_str or "malformed" in error_str or "unexpected payload" in error_str:
        return ProviderErrorCategory.BAD_RESPONSE

    return ProviderErrorCategory.UNKNOWN_ERROR


_SECRET_PARAM = re.compile(r"((?:key|token|api_key|apikey)=)[^&\s'\"]+", re.IGNORECASE)
_BEARER = re.compile(r"(bearer\s+)\S+", re.IGNORECASE)


def redact_detail(error: BaseException) -> str:
    """
    Render an error for logs without leaking credentials.

    Google Translation takes its key as a query parameter, so request URLs in
    aiohttp errors would otherwise carry it.
    """
    detail = str(error) or type(error).__name__
    detail = _SECRET_PARAM.sub(r"\1[redacted]", detail)
    detail = _BEARER.sub(r"\1[redacted]", detail)
    if "secret" in detail.lower() or "password" in detail.lower():
        return "[redacted: potential secret]"
    return detail
