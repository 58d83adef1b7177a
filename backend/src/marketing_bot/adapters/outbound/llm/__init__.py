"""LLM backend clients — one per pool entry, driven by the RotationEngine.

Each client is a thin HTTP call with no retry logic of its own.  The
engine handles rotation, failover, and cooldown; clients only translate
a conversation into a backend request and every failure into a
``ProviderInvocationError``.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx
import structlog

from marketing_bot.config import Settings
from marketing_bot.shared.providers.errors import ProviderInvocationError
from marketing_bot.shared.providers.types import (
    ChatCompletion,
    ChatMessage,
    ProviderClient,
    ProviderEntry,
    ProviderKind,
    Role,
)

logger = structlog.get_logger(__name__)


class _HttpChatClient(ProviderClient):
    """Shared transport and error mapping for HTTP chat backends."""

    def __init__(
        self,
        *,
        provider_id: str,
        model: str,
        api_key: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.model = model
        self._api_key = api_key
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def invoke(self, conversation: Sequence[ChatMessage]) -> ChatCompletion:
        try:
            response = await self._send(conversation)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderInvocationError(
                _error_detail(exc.response),
                status_code=exc.response.status_code,
                provider_id=self.provider_id,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderInvocationError(
                f"{type(exc).__name__}: {exc}",
                provider_id=self.provider_id,
            ) from exc
        except ValueError as exc:
            raise ProviderInvocationError(
                f"Invalid JSON payload: {exc}",
                provider_id=self.provider_id,
            ) from exc

        try:
            text = self._extract_text(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderInvocationError(
                f"Unexpected response shape: {exc!r}",
                provider_id=self.provider_id,
            ) from exc
        return ChatCompletion(content=text, provider_id=self.provider_id, model=self.model)

    async def _send(self, conversation: Sequence[ChatMessage]) -> httpx.Response:
        raise NotImplementedError

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Ollama Cloud ─────────────────────────────────────────────
class OllamaChatClient(_HttpChatClient):
    """Ollama ``/api/chat`` on a hosted (bearer-authenticated) endpoint."""

    def __init__(self, *, host: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._host = host.rstrip("/")

    async def _send(self, conversation: Sequence[ChatMessage]) -> httpx.Response:
        return await self._client.post(
            f"{self._host}/api/chat",
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "model": self.model,
                "messages": _openai_messages(conversation),
                "stream": False,
                "options": {
                    "temperature": self._temperature,
                    "num_predict": self._max_tokens,
                },
            },
        )

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        return str(data["message"]["content"])


# ── OpenAI-compatible (Groq, OpenRouter) ─────────────────────
class OpenAICompatibleChatClient(_HttpChatClient):
    """``/chat/completions`` on any OpenAI-compatible base URL."""

    def __init__(self, *, base_url: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url = base_url.rstrip("/")

    async def _send(self, conversation: Sequence[ChatMessage]) -> httpx.Response:
        return await self._client.post(
            f"{self._base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "temperature": self._temperature,
                "max_tokens": self._max_tokens,
                "messages": _openai_messages(conversation),
            },
        )

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        content = data["choices"][0]["message"]["content"]
        return content if isinstance(content, str) else ""


# ── Google Gemini ────────────────────────────────────────────
class GeminiChatClient(_HttpChatClient):
    """Gemini ``generateContent``; system turns become ``system_instruction``."""

    def __init__(self, *, base_url: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url = base_url.rstrip("/")

    async def _send(self, conversation: Sequence[ChatMessage]) -> httpx.Response:
        system_parts = [{"text": m.content} for m in conversation if m.role is Role.SYSTEM]
        contents = [
            {
                "role": "model" if m.role is Role.ASSISTANT else "user",
                "parts": [{"text": m.content}],
            }
            for m in conversation
            if m.role is not Role.SYSTEM
        ]
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_tokens,
            },
        }
        if system_parts:
            body["system_instruction"] = {"parts": system_parts}

        return await self._client.post(
            f"{self._base_url}/models/{self.model}:generateContent",
            headers={
                "x-goog-api-key": self._api_key,
                "Content-Type": "application/json",
            },
            json=body,
        )

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts)


# ── Pool construction ────────────────────────────────────────
def build_provider_entries(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ProviderEntry]:
    """Build pool entries in ``llm_provider_priority`` order.

    Backends without an API key are skipped; a kind listed twice is
    only built once.
    """
    builders = {
        ProviderKind.OLLAMA_CLOUD: _build_ollama,
        ProviderKind.GROQ: _build_groq,
        ProviderKind.GEMINI: _build_gemini,
        ProviderKind.OPENROUTER: _build_openrouter,
    }
    entries: list[ProviderEntry] = []
    seen: set[ProviderKind] = set()

    for name in settings.provider_priority:
        try:
            kind = ProviderKind(name)
        except ValueError:
            logger.warning("unknown_provider_in_priority", provider=name)
            continue
        if kind in seen:
            continue
        seen.add(kind)

        built = builders[kind](settings, transport)
        if not built:
            logger.warning("provider_api_key_missing", provider=kind.value)
        entries.extend(built)

    return entries


def _entry(kind: ProviderKind, client: _HttpChatClient) -> ProviderEntry:
    return ProviderEntry(id=client.provider_id, provider_kind=kind, client=client)


def _build_ollama(
    s: Settings, transport: httpx.AsyncBaseTransport | None
) -> list[ProviderEntry]:
    if not s.ollama_api_key.strip():
        return []
    kind = ProviderKind.OLLAMA_CLOUD
    return [
        _entry(
            kind,
            OllamaChatClient(
                host=s.ollama_cloud_host,
                provider_id=f"{kind.value}:{s.ollama_model}",
                model=s.ollama_model,
                api_key=s.ollama_api_key,
                temperature=s.ollama_temperature,
                max_tokens=s.ollama_max_tokens,
                timeout=s.ollama_timeout_seconds,
                transport=transport,
            ),
        )
    ]


def _build_groq(
    s: Settings, transport: httpx.AsyncBaseTransport | None
) -> list[ProviderEntry]:
    if not s.groq_api_key.strip():
        return []
    kind = ProviderKind.GROQ
    return [
        _entry(
            kind,
            OpenAICompatibleChatClient(
                base_url=s.groq_base_url,
                provider_id=f"{kind.value}:{s.groq_model}",
                model=s.groq_model,
                api_key=s.groq_api_key,
                temperature=s.groq_temperature,
                max_tokens=s.groq_max_tokens,
                timeout=s.groq_timeout_seconds,
                transport=transport,
            ),
        )
    ]


def _build_gemini(
    s: Settings, transport: httpx.AsyncBaseTransport | None
) -> list[ProviderEntry]:
    if not s.gemini_api_key.strip():
        return []
    kind = ProviderKind.GEMINI
    return [
        _entry(
            kind,
            GeminiChatClient(
                base_url=s.gemini_base_url,
                provider_id=f"{kind.value}:{s.gemini_model}",
                model=s.gemini_model,
                api_key=s.gemini_api_key,
                temperature=s.gemini_temperature,
                max_tokens=s.gemini_max_tokens,
                timeout=s.gemini_timeout_seconds,
                transport=transport,
            ),
        )
    ]


def _build_openrouter(
    s: Settings, transport: httpx.AsyncBaseTransport | None
) -> list[ProviderEntry]:
    if not s.openrouter_api_key.strip():
        return []
    kind = ProviderKind.OPENROUTER
    models = [m.strip() for m in s.openrouter_models.split(",") if m.strip()]
    return [
        _entry(
            kind,
            OpenAICompatibleChatClient(
                base_url=s.openrouter_base_url,
                provider_id=f"{kind.value}:{model}",
                model=model,
                api_key=s.openrouter_api_key,
                temperature=s.openrouter_temperature,
                max_tokens=s.openrouter_max_tokens,
                timeout=s.openrouter_timeout_seconds,
                transport=transport,
            ),
        )
        for model in dict.fromkeys(models)
    ]


def _openai_messages(conversation: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": m.role.value, "content": m.content} for m in conversation]


def _error_detail(response: httpx.Response) -> str:
    """Backend error message, falling back to the raw body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:300] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:300]
