"""
Text completion capability.

Completer is the interface the orchestrator consumes: prompt in, generated
text out, bounded by max_tokens, CompletionError on any failure.
ChatCompletionCompleter implements it against an OpenAI-compatible
/chat/completions endpoint (Groq by default).
"""
import abc
import time
from typing import Any, Optional

import aiohttp

from logging_setup import get_logger, Component

from .config import DEFAULT_COMPLETION_ENDPOINT
from .errors import CompletionError, redact_detail
from .http_client import PooledHTTPClient, read_error_message

logger = get_logger(Component.COMPLETER)


class Completer(abc.ABC):
    """Stateless text generation."""

    @abc.abstractmethod
    async def complete(self, prompt: str, max_tokens: int) -> str:
        """Generate a reply of at most max_tokens tokens; raises CompletionError."""

    async def aclose(self) -> None:
        return None


def parse_completion(payload: Any) -> str:
    """Pull the first choice's text out of a chat completions response body."""
    try:
        choice = payload["choices"][0]
    except (KeyError, IndexError, TypeError):
        raise CompletionError("unexpected payload from completion service")

    message = choice.get("message") if isinstance(choice, dict) else None
    if isinstance(message, dict) and message.get("content") is not None:
        return str(message["content"])
    # Legacy text completion shape
    if isinstance(choice, dict) and choice.get("text") is not None:
        return str(choice["text"])
    raise CompletionError("unexpected payload from completion service")


class ChatCompletionCompleter(PooledHTTPClient, Completer):
    """OpenAI-compatible chat completions over HTTP."""

    env_prefix = "COMPLETION"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        endpoint: str = DEFAULT_COMPLETION_ENDPOINT,
        temperature: float = 0.1,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(logger=logger, session=session)
        if not api_key:
            raise ValueError("Completion service requires a valid API key in COMPLETION_API_KEY")
        self._api_key = api_key
        self._model = model
        self._endpoint = endpoint
        # Low temperature keeps replies close to the command wording
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, prompt: str, max_tokens: int) -> str:
        body = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": self._temperature,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        t_start = time.perf_counter()
        session = self._get_or_create_session()
        try:
            async with session.post(self._endpoint, json=body, headers=headers) as resp:
                if resp.status >= 400:
                    message = await read_error_message(resp)
                    raise CompletionError(f"HTTP {resp.status}: {message}", status=resp.status)
                payload = await resp.json(content_type=None)
        except CompletionError:
            raise
        except Exception as e:
            raise CompletionError(redact_detail(e)) from e

        text = parse_completion(payload).strip()
        logger.debug(
            "Completion finished",
            model=self._model,
            max_tokens=max_tokens,
            prompt_length=len(prompt),
            output_length=len(text),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return text
