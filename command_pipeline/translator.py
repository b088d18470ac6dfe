"""
Translation capability.

Translator is the interface the orchestrator consumes: text in, translated
text out, TranslationError on any failure. GoogleTranslator implements it on
the Google Cloud Translation v2 REST API with API key authentication.
"""
import abc
import time
from typing import Any, Optional

import aiohttp

from logging_setup import get_logger, Component

from .config import DEFAULT_TRANSLATION_ENDPOINT
from .errors import TranslationError, redact_detail
from .http_client import PooledHTTPClient, read_error_message

logger = get_logger(Component.TRANSLATOR)


class Translator(abc.ABC):
    """Stateless text translation."""

    @abc.abstractmethod
    async def translate(self, text: str, target: str, source: Optional[str] = None) -> str:
        """
        Translate text into the target language.

        source=None lets the service detect the input language.
        Raises TranslationError when the service fails.
        """

    async def aclose(self) -> None:
        return None


def parse_translation(payload: Any) -> str:
    """Pull translatedText out of a v2 response body."""
    try:
        return payload["data"]["translations"][0]["translatedText"]
    except (KeyError, IndexError, TypeError):
        raise TranslationError("unexpected payload from translation service")


class GoogleTranslator(PooledHTTPClient, Translator):
    """Google Cloud Translation (v2, REST, API key)."""

    env_prefix = "TRANSLATION"

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: str = DEFAULT_TRANSLATION_ENDPOINT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(logger=logger, session=session)
        if not api_key:
            raise ValueError("Google translation requires a valid API key in TRANSLATION_API_KEY")
        self._api_key = api_key
        self._endpoint = endpoint

    async def translate(self, text: str, target: str, source: Optional[str] = None) -> str:
        body = {"q": text, "target": target, "format": "text"}
        if source:
            body["source"] = source

        t_start = time.perf_counter()
        session = self._get_or_create_session()
        try:
            async with session.post(self._endpoint, params={"key": self._api_key}, json=body) as resp:
                if resp.status >= 400:
                    message = await read_error_message(resp)
                    raise TranslationError(f"HTTP {resp.status}: {message}", status=resp.status)
                payload = await resp.json(content_type=None)
        except TranslationError:
            raise
        except Exception as e:
            # Connection errors, timeouts, undecodable bodies
            raise TranslationError(redact_detail(e)) from e

        translated = parse_translation(payload)
        logger.debug(
            "Translation completed",
            source=source or "auto",
            target=target,
            text_length=len(text),
            translated_length=len(translated),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return translated
