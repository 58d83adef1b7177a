"""Core types for the model rotation framework."""

from __future__ import annotations

import enum
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence


class ProviderKind(str, enum.Enum):
    """Backend category of a pool entry."""

    OLLAMA_CLOUD = "ollama-cloud"
    GROQ = "groq"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class Role(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ErrorKind(str, enum.Enum):
    """Outcome class assigned to a failed provider call."""

    AUTH = "auth"
    CAPACITY = "capacity"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(Role.ASSISTANT, content)


@dataclass(frozen=True)
class ChatCompletion:
    """Text produced by one backend for one conversation."""

    content: str
    provider_id: str = ""
    model: str = ""


class ProviderClient(ABC):
    """Invocation capability of a single backend + model pair.

    Implementations raise ``ProviderInvocationError`` on failure and
    own their transport (one HTTP client per entry, reused across calls).
    """

    @abstractmethod
    async def invoke(self, conversation: Sequence[ChatMessage]) -> ChatCompletion: ...

    async def aclose(self) -> None:  # noqa: B027
        """Release transport resources."""


@dataclass(eq=False)
class ProviderEntry:
    """One pool slot: identity, client, and mutable failure state.

    Attributes:
        id:             Stable identifier of the (backend, model) pair.
        provider_kind:  Backend category.
        client:         Backend invocation capability.
        cooldown_until: Monotonic timestamp before which the entry is skipped.
        fail_count:     Consecutive failures since the last success.
    """

    id: str
    provider_kind: ProviderKind
    client: ProviderClient
    cooldown_until: float = 0.0
    fail_count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


@dataclass(frozen=True)
class ErrorClassification:
    """Verdict on a failed call.

    ``retry_same_entry`` is False for credential failures; the pool is
    still walked because ``retryable_across_pool`` is always True today.
    """

    kind: ErrorKind
    retryable_across_pool: bool = True
    retry_same_entry: bool = True


@dataclass(frozen=True)
class ProviderStatusSnapshot:
    """Read-only view of one entry for dashboards."""

    id: str
    provider_kind: ProviderKind
    available: bool
    fail_count: int
    cooldown_remaining_seconds: int

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "provider_kind": self.provider_kind.value,
            "available": self.available,
            "fail_count": self.fail_count,
            "cooldown_remaining_seconds": self.cooldown_remaining_seconds,
        }
