"""
Tests for the translation and completion HTTP clients.

A fake aiohttp session stands in for the network; it records each request
and answers with a canned status/payload.
"""
import aiohttp
import pytest

from command_pipeline.completer import ChatCompletionCompleter, parse_completion
from command_pipeline.errors import CompletionError, TranslationError
from command_pipeline.translator import GoogleTranslator, parse_translation


class FakeResponse:
    def __init__(self, status: int, payload):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self):
        return str(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, status: int = 200, payload=None, error: Exception = None):
        self.requests = []
        self._status = status
        self._payload = payload
        self._error = error

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self._error is not None:
            raise self._error
        return FakeResponse(self._status, self._payload)

    async def close(self):
        self.closed = True


def _translation(text):
    return {"data": {"translations": [{"translatedText": text}]}}


def _completion(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


class TestGoogleTranslator:

    @pytest.mark.asyncio
    async def test_translate_sends_key_as_param(self):
        session = FakeSession(payload=_translation("analyze data"))
        translator = GoogleTranslator(api_key="k-123", session=session)

        result = await translator.translate("analisar dados", target="en", source="pt")

        assert result == "analyze data"
        url, kwargs = session.requests[0]
        assert url.endswith("/language/translate/v2")
        assert kwargs["params"] == {"key": "k-123"}
        assert kwargs["json"] == {"q": "analisar dados", "target": "en", "format": "text", "source": "pt"}

    @pytest.mark.asyncio
    async def test_source_omitted_for_detection(self):
        session = FakeSession(payload=_translation("x"))
        translator = GoogleTranslator(api_key="k", session=session)

        await translator.translate("y", target="pt")

        assert "source" not in session.requests[0][1]["json"]

    @pytest.mark.asyncio
    async def test_http_error_raises_translation_error(self):
        session = FakeSession(status=403, payload={"error": {"message": "API key not valid"}})
        translator = GoogleTranslator(api_key="k", session=session)

        with pytest.raises(TranslationError) as exc_info:
            await translator.translate("analisar dados", target="en")

        assert exc_info.value.status == 403
        assert "API key not valid" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("connection reset"))
        translator = GoogleTranslator(api_key="k", session=session)

        with pytest.raises(TranslationError):
            await translator.translate("analisar dados", target="en")

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self):
        session = FakeSession(payload=_translation("x"))
        translator = GoogleTranslator(api_key="k", session=session)

        await translator.aclose()

        assert session.closed is False

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            GoogleTranslator(api_key="")

    def test_parse_translation_rejects_malformed_payload(self):
        with pytest.raises(TranslationError):
            parse_translation({"data": {"translations": []}})


class TestChatCompletionCompleter:

    @pytest.mark.asyncio
    async def test_complete_sends_cap_and_model(self):
        session = FakeSession(payload=_completion("  Sure, analyze data.  "))
        completer = ChatCompletionCompleter(api_key="gk", model="test-model", session=session)

        result = await completer.complete("analyze data", max_tokens=150)

        assert result == "Sure, analyze data."
        _url, kwargs = session.requests[0]
        assert kwargs["json"]["max_tokens"] == 150
        assert kwargs["json"]["model"] == "test-model"
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "analyze data"}]
        assert kwargs["headers"] == {"Authorization": "Bearer gk"}

    @pytest.mark.asyncio
    async def test_rate_limit_raises_completion_error(self):
        session = FakeSession(status=429, payload={"error": {"message": "Rate limit reached"}})
        completer = ChatCompletionCompleter(api_key="gk", model="m", session=session)

        with pytest.raises(CompletionError) as exc_info:
            await completer.complete("hi", max_tokens=10)

        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_undecodable_body_raises_completion_error(self):
        session = FakeSession(payload=ValueError("not json"))
        completer = ChatCompletionCompleter(api_key="gk", model="m", session=session)

        with pytest.raises(CompletionError):
            await completer.complete("hi", max_tokens=10)

    def test_parse_completion_shapes(self):
        assert parse_completion(_completion("hello")) == "hello"
        assert parse_completion({"choices": [{"text": "legacy"}]}) == "legacy"
        with pytest.raises(CompletionError):
            parse_completion({"choices": []})
        with pytest.raises(CompletionError):
            parse_completion({"choices": [{"message": {}}]})
