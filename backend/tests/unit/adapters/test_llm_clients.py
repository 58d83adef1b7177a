"""Tests for the LLM backend clients and pool construction."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import make_settings
from marketing_bot.adapters.outbound.llm import (
    GeminiChatClient,
    OllamaChatClient,
    OpenAICompatibleChatClient,
    build_provider_entries,
)
from marketing_bot.shared.providers.errors import ProviderInvocationError
from marketing_bot.shared.providers.types import ChatMessage, ProviderKind

CONVERSATION = [
    ChatMessage.system("You are a sales assistant."),
    ChatMessage.user("Masih ada unit?"),
    ChatMessage.assistant("Masih, Kak."),
    ChatMessage.user("Harganya?"),
]

CLIENT_KWARGS = {
    "model": "test-model",
    "api_key": "secret",
    "temperature": 0.5,
    "max_tokens": 100,
    "timeout": 5.0,
}


async def _close(entries) -> None:
    for entry in entries:
        await entry.client.aclose()


class Recorder:
    """MockTransport handler that records requests and replies from a script."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


# ═══════════════════════════════════════════════════════════════
#  Request / response mapping
# ═══════════════════════════════════════════════════════════════
class TestOllamaChatClient:
    @pytest.mark.asyncio
    async def test_posts_chat_and_reads_message(self) -> None:
        rec = Recorder(httpx.Response(200, json={"message": {"role": "assistant", "content": "Mulai 500 juta"}}))
        client = OllamaChatClient(
            host="https://ollama.test/",
            provider_id="ollama-cloud:test-model",
            transport=httpx.MockTransport(rec),
            **CLIENT_KWARGS,
        )

        result = await client.invoke(CONVERSATION)
        await client.aclose()

        assert result.content == "Mulai 500 juta"
        assert result.provider_id == "ollama-cloud:test-model"
        request = rec.requests[0]
        assert str(request.url) == "https://ollama.test/api/chat"
        assert request.headers["Authorization"] == "Bearer secret"
        assert rec.body["stream"] is False
        assert rec.body["options"] == {"temperature": 0.5, "num_predict": 100}
        assert [m["role"] for m in rec.body["messages"]] == ["system", "user", "assistant", "user"]


class TestOpenAICompatibleChatClient:
    @pytest.mark.asyncio
    async def test_posts_chat_completions(self) -> None:
        rec = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "Halo Kak"}}]}))
        client = OpenAICompatibleChatClient(
            base_url="https://groq.test/openai/v1",
            provider_id="groq:test-model",
            transport=httpx.MockTransport(rec),
            **CLIENT_KWARGS,
        )

        result = await client.invoke(CONVERSATION)
        await client.aclose()

        assert result.content == "Halo Kak"
        assert str(rec.requests[0].url) == "https://groq.test/openai/v1/chat/completions"
        assert rec.body["model"] == "test-model"
        assert rec.body["max_tokens"] == 100
        assert rec.body["messages"][0] == {"role": "system", "content": "You are a sales assistant."}

    @pytest.mark.asyncio
    async def test_null_content_becomes_empty_text(self) -> None:
        rec = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": None}}]}))
        client = OpenAICompatibleChatClient(
            base_url="https://groq.test", provider_id="groq:x",
            transport=httpx.MockTransport(rec), **CLIENT_KWARGS,
        )
        result = await client.invoke(CONVERSATION)
        await client.aclose()
        assert result.content == ""


class TestGeminiChatClient:
    @pytest.mark.asyncio
    async def test_maps_roles_and_system_instruction(self) -> None:
        rec = Recorder(
            httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": "Ada "}, {"text": "Kak"}]}}]},
            )
        )
        client = GeminiChatClient(
            base_url="https://gemini.test/v1beta",
            provider_id="gemini:test-model",
            transport=httpx.MockTransport(rec),
            **CLIENT_KWARGS,
        )

        result = await client.invoke(CONVERSATION)
        await client.aclose()

        assert result.content == "Ada Kak"
        request = rec.requests[0]
        assert str(request.url) == "https://gemini.test/v1beta/models/test-model:generateContent"
        assert request.headers["x-goog-api-key"] == "secret"
        body = rec.body
        assert body["system_instruction"] == {"parts": [{"text": "You are a sales assistant."}]}
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["generationConfig"] == {"temperature": 0.5, "maxOutputTokens": 100}


# ═══════════════════════════════════════════════════════════════
#  Error mapping
# ═══════════════════════════════════════════════════════════════
class TestErrorMapping:
    @staticmethod
    def _client(response: httpx.Response | Exception) -> OpenAICompatibleChatClient:
        return OpenAICompatibleChatClient(
            base_url="https://backend.test",
            provider_id="groq:test-model",
            transport=httpx.MockTransport(Recorder(response)),
            **CLIENT_KWARGS,
        )

    @pytest.mark.asyncio
    async def test_http_status_keeps_code_and_backend_message(self) -> None:
        client = self._client(httpx.Response(429, json={"error": {"message": "Rate limit reached"}}))
        with pytest.raises(ProviderInvocationError) as exc_info:
            await client.invoke(CONVERSATION)
        await client.aclose()

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Rate limit reached"
        assert exc_info.value.provider_id == "groq:test-model"

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self) -> None:
        client = self._client(httpx.Response(401, text="invalid key"))
        with pytest.raises(ProviderInvocationError) as exc_info:
            await client.invoke(CONVERSATION)
        await client.aclose()
        assert exc_info.value.status_code == 401
        assert "invalid key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self) -> None:
        client = self._client(httpx.ConnectError("connection refused"))
        with pytest.raises(ProviderInvocationError) as exc_info:
            await client.invoke(CONVERSATION)
        await client.aclose()
        assert exc_info.value.status_code is None
        assert exc_info.value.message.startswith("ConnectError")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self) -> None:
        client = self._client(httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderInvocationError, match="Unexpected response shape"):
            await client.invoke(CONVERSATION)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client = self._client(httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ProviderInvocationError, match="Invalid JSON"):
            await client.invoke(CONVERSATION)
        await client.aclose()


# ═══════════════════════════════════════════════════════════════
#  build_provider_entries
# ═══════════════════════════════════════════════════════════════
class TestBuildProviderEntries:
    @pytest.mark.asyncio
    async def test_default_priority_order(self) -> None:
        settings = make_settings(
            ollama_api_key="o", groq_api_key="g", gemini_api_key="m", openrouter_api_key="r",
        )
        entries = build_provider_entries(settings)
        await _close(entries)

        assert [e.id for e in entries] == [
            "ollama-cloud:gpt-oss:120b",
            "groq:openai/gpt-oss-20b",
            "gemini:gemini-2.5-flash",
            "openrouter:deepseek/deepseek-r1:free",
            "openrouter:nvidia/llama-3.1-nemotron-70b-instruct:free",
        ]
        assert [e.provider_kind for e in entries][:3] == [
            ProviderKind.OLLAMA_CLOUD,
            ProviderKind.GROQ,
            ProviderKind.GEMINI,
        ]
        assert all(e.fail_count == 0 and e.cooldown_until == 0.0 for e in entries)

    @pytest.mark.asyncio
    async def test_skips_backends_without_keys(self) -> None:
        entries = build_provider_entries(make_settings(groq_api_key="g"))
        await _close(entries)
        assert [e.id for e in entries] == ["groq:openai/gpt-oss-20b"]

    def test_no_keys_builds_empty_pool(self) -> None:
        assert build_provider_entries(make_settings()) == []

    @pytest.mark.asyncio
    async def test_custom_priority_ignores_unknown_and_duplicates(self) -> None:
        settings = make_settings(
            groq_api_key="g",
            gemini_api_key="m",
            llm_provider_priority="gemini, bogus, groq, gemini",
        )
        entries = build_provider_entries(settings)
        await _close(entries)
        assert [e.provider_kind for e in entries] == [ProviderKind.GEMINI, ProviderKind.GROQ]

    @pytest.mark.asyncio
    async def test_openrouter_models_deduplicated(self) -> None:
        settings = make_settings(
            openrouter_api_key="r",
            openrouter_models="a/one:free, b/two:free ,a/one:free,",
        )
        entries = build_provider_entries(settings)
        await _close(entries)
        assert [e.id for e in entries] == ["openrouter:a/one:free", "openrouter:b/two:free"]

    @pytest.mark.asyncio
    async def test_entries_share_transport(self) -> None:
        rec = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}))
        entries = build_provider_entries(make_settings(groq_api_key="g"), transport=httpx.MockTransport(rec))

        result = await entries[0].client.invoke(CONVERSATION)
        await _close(entries)

        assert result.content == "ok"
        assert rec.requests[0].url.host == "api.groq.com"
