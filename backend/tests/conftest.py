"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from typing import Sequence

import pytest

# Add src to path so imports work
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from marketing_bot.config import Settings
from marketing_bot.shared.providers.cooldown import CooldownPolicy
from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.errors import ProviderInvocationError
from marketing_bot.shared.providers.pool import ProviderPool
from marketing_bot.shared.providers.types import (
    ChatCompletion,
    ChatMessage,
    ProviderClient,
    ProviderEntry,
    ProviderKind,
)

BASE_COOLDOWN = 60.0

NO_KEYS = {
    "ollama_api_key": "",
    "groq_api_key": "",
    "gemini_api_key": "",
    "openrouter_api_key": "",
}


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's .env and exported keys."""
    return Settings(_env_file=None, **{**NO_KEYS, **overrides})


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient(ProviderClient):
    """Plays back scripted outcomes, then keeps returning ``default``.

    An outcome is either reply text or an exception instance to raise.
    """

    def __init__(
        self,
        provider_id: str,
        outcomes: Sequence[str | BaseException] = (),
        *,
        default: str | BaseException = "ok",
    ) -> None:
        self.provider_id = provider_id
        self._outcomes = list(outcomes)
        self._default = default
        self.calls: list[list[ChatMessage]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def invoke(self, conversation: Sequence[ChatMessage]) -> ChatCompletion:
        self.calls.append(list(conversation))
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, BaseException):
            raise outcome
        return ChatCompletion(content=outcome, provider_id=self.provider_id, model="fake")

    async def aclose(self) -> None:
        self.closed = True


def always_failing(provider_id: str, status_code: int | None = 500, message: str = "boom") -> ScriptedClient:
    return ScriptedClient(
        provider_id,
        default=ProviderInvocationError(message, status_code=status_code),
    )


def make_entry(
    client: ScriptedClient,
    kind: ProviderKind = ProviderKind.GROQ,
) -> ProviderEntry:
    return ProviderEntry(id=client.provider_id, provider_kind=kind, client=client)


def make_engine(
    *clients: ScriptedClient,
    clock: FakeClock | None = None,
    max_attempts: int = 5,
) -> RotationEngine:
    entries = [make_entry(c) for c in clients]
    return RotationEngine(
        ProviderPool.of(entries),
        policy=CooldownPolicy(BASE_COOLDOWN),
        default_max_attempts=max_attempts,
        clock=clock or FakeClock(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> CooldownPolicy:
    return CooldownPolicy(BASE_COOLDOWN)
