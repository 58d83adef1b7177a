"""Rotation engine — the main entry-point for model calls.

Walks the pool in priority order, one provider per attempt.  A failed
entry is put on cooldown so the next attempt lands on the next entry;
a success clears that entry's failure state.  Individual failures are
never surfaced; only exhausting every attempt is.

Concurrency: one shared pool, many in-flight calls.  Each entry's
failure fields are updated under that entry's lock, which is never held
across an ``await``.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Sequence

import structlog

from marketing_bot.shared.observability.metrics import (
    LLM_ATTEMPTS,
    LLM_FAILOVERS,
    LLM_LATENCY,
    LLM_POOL_EXHAUSTED,
)
from marketing_bot.shared.providers.classifier import ErrorClassifier, extract_status_code
from marketing_bot.shared.providers.cooldown import CooldownPolicy
from marketing_bot.shared.providers.errors import (
    NoProvidersConfiguredError,
    PoolExhaustedError,
    ProviderInvocationError,
)
from marketing_bot.shared.providers.pool import ProviderPool
from marketing_bot.shared.providers.types import (
    ChatCompletion,
    ChatMessage,
    ErrorKind,
    ProviderStatusSnapshot,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class RotationEngine:
    """Priority failover across a ``ProviderPool``.

    Usage::

        engine = RotationEngine(pool, policy=CooldownPolicy(60.0))
        completion = await engine.invoke([ChatMessage.user("halo")])
    """

    def __init__(
        self,
        pool: ProviderPool,
        *,
        policy: CooldownPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pool = pool
        self._policy = policy or CooldownPolicy()
        self._classifier = classifier or ErrorClassifier()
        self._default_max_attempts = default_max_attempts
        self._clock = clock

    @property
    def pool(self) -> ProviderPool:
        return self._pool

    @property
    def policy(self) -> CooldownPolicy:
        return self._policy

    # ── Main entry-point ─────────────────────────────────────
    async def invoke(
        self,
        conversation: Sequence[ChatMessage],
        max_attempts: int | None = None,
    ) -> ChatCompletion:
        """Return the first successful completion.

        Raises:
            NoProvidersConfiguredError: The pool is empty.
            PoolExhaustedError: ``max_attempts`` calls all failed.
        """
        attempts_allowed = self._default_max_attempts if max_attempts is None else max_attempts
        if attempts_allowed < 1:
            raise ValueError("max_attempts must be at least 1")

        entries = self._pool.get_pool()
        if not entries:
            raise NoProvidersConfiguredError()

        last_error: ProviderInvocationError | None = None
        last_provider: str | None = None
        attempt = 0

        while attempt < attempts_allowed:
            entry = self._policy.select_next(entries, self._clock())
            if entry is None:  # pragma: no cover - pool checked non-empty above
                raise NoProvidersConfiguredError()

            log = logger.bind(
                provider=entry.id,
                kind=entry.provider_kind.value,
                attempt=attempt + 1,
            )
            log.debug("provider_attempt")

            start = time.monotonic()
            try:
                result = await entry.client.invoke(conversation)
            except Exception as exc:
                latency = time.monotonic() - start
                error = _as_invocation_error(exc, entry.id)
                verdict = self._classifier.classify(error)
                window = self._policy.record_failure(entry, self._clock())

                LLM_ATTEMPTS.labels(provider=entry.id, outcome=verdict.kind.value).inc()
                LLM_LATENCY.labels(provider=entry.id).observe(latency)
                if verdict.kind is ErrorKind.AUTH:
                    log.error(
                        "provider_unauthorized",
                        error=str(error),
                        cooldown_s=window,
                    )
                else:
                    log.warning(
                        "provider_request_failed",
                        error=str(error),
                        error_kind=verdict.kind.value,
                        cooldown_s=window,
                    )

                last_error = error
                last_provider = entry.id
                attempt += 1
                continue

            latency = time.monotonic() - start
            self._policy.record_success(entry)
            LLM_ATTEMPTS.labels(provider=entry.id, outcome="success").inc()
            LLM_LATENCY.labels(provider=entry.id).observe(latency)
            if attempt > 0:
                LLM_FAILOVERS.labels(provider=entry.id).inc()
                log.info("provider_failover_success", failed_attempts=attempt)
            log.info("provider_request_success", latency_ms=round(latency * 1000, 1))
            return result

        LLM_POOL_EXHAUSTED.inc()
        message = last_error.message if last_error else "unknown"
        logger.error(
            "provider_pool_exhausted",
            attempts=attempt,
            last_provider=last_provider,
            last_error=message,
        )
        raise PoolExhaustedError(message, provider_id=last_provider, attempts=attempt)

    # ── Introspection ────────────────────────────────────────
    def get_status(self) -> list[ProviderStatusSnapshot]:
        """Snapshot every entry without touching its state."""
        now = self._clock()
        return [
            ProviderStatusSnapshot(
                id=entry.id,
                provider_kind=entry.provider_kind,
                available=self._policy.is_eligible(entry, now),
                fail_count=entry.fail_count,
                cooldown_remaining_seconds=max(0, math.ceil(entry.cooldown_until - now)),
            )
            for entry in self._pool.get_pool()
        ]

    def reset(self, entry_id: str | None = None) -> None:
        """Operator reset — clears failure state of one entry, or all.

        Raises:
            KeyError: ``entry_id`` is not in the pool.
        """
        if entry_id is None:
            targets = list(self._pool.get_pool())
        else:
            entry = self._pool.get(entry_id)
            if entry is None:
                raise KeyError(entry_id)
            targets = [entry]

        for entry in targets:
            with entry.lock:
                entry.fail_count = 0
                entry.cooldown_until = 0.0
        logger.info("provider_admin_reset", providers=[e.id for e in targets])


def _as_invocation_error(exc: Exception, provider_id: str) -> ProviderInvocationError:
    if isinstance(exc, ProviderInvocationError):
        if exc.provider_id is None:
            exc.provider_id = provider_id
        return exc
    return ProviderInvocationError(
        str(exc) or type(exc).__name__,
        status_code=extract_status_code(exc),
        provider_id=provider_id,
    )
