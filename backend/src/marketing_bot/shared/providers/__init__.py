"""Model rotation framework.

Priority failover across a fixed pool of language-model backends, with
capped cooldown backoff per entry and forced recovery when every entry
is cooling down.
"""

from marketing_bot.shared.providers.classifier import ErrorClassifier
from marketing_bot.shared.providers.cooldown import CooldownPolicy
from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.errors import (
    NoProvidersConfiguredError,
    PoolExhaustedError,
    ProviderError,
    ProviderInvocationError,
)
from marketing_bot.shared.providers.pool import ProviderPool
from marketing_bot.shared.providers.types import (
    ChatCompletion,
    ChatMessage,
    ErrorClassification,
    ErrorKind,
    ProviderClient,
    ProviderEntry,
    ProviderKind,
    ProviderStatusSnapshot,
    Role,
)

__all__ = [
    "ChatCompletion",
    "ChatMessage",
    "CooldownPolicy",
    "ErrorClassification",
    "ErrorClassifier",
    "ErrorKind",
    "NoProvidersConfiguredError",
    "PoolExhaustedError",
    "ProviderClient",
    "ProviderEntry",
    "ProviderError",
    "ProviderInvocationError",
    "ProviderKind",
    "ProviderPool",
    "ProviderStatusSnapshot",
    "Role",
    "RotationEngine",
]
