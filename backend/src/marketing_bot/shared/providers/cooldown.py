"""Cooldown policy — eligibility, selection and backoff per pool entry.

Backoff is capped-linear: each consecutive failure widens the window by
one base unit, up to three units.  When every entry is cooling down, the
one closest to recovery is force-reset so a caller always gets an entry.
"""

from __future__ import annotations

from typing import Sequence

import structlog

from marketing_bot.shared.observability.metrics import LLM_FORCED_RESETS
from marketing_bot.shared.providers.types import ProviderEntry

logger = structlog.get_logger(__name__)

MAX_BACKOFF_MULTIPLIER = 3


class CooldownPolicy:
    """Stateless rules applied to the mutable fields of ``ProviderEntry``."""

    def __init__(self, base_cooldown_s: float = 60.0) -> None:
        if base_cooldown_s <= 0:
            raise ValueError("base_cooldown_s must be positive")
        self._base = base_cooldown_s

    @property
    def base_cooldown_s(self) -> float:
        return self._base

    @staticmethod
    def is_eligible(entry: ProviderEntry, now: float) -> bool:
        return now >= entry.cooldown_until

    def select_next(
        self, pool: Sequence[ProviderEntry], now: float
    ) -> ProviderEntry | None:
        """First eligible entry in priority order, or a forced recovery."""
        if not pool:
            return None

        for entry in pool:
            if self.is_eligible(entry, now):
                return entry

        # Every entry is cooling down: min() keeps the first on ties
        soonest = min(pool, key=lambda e: e.cooldown_until)
        with soonest.lock:
            remaining = soonest.cooldown_until - now
            soonest.cooldown_until = 0.0
            soonest.fail_count = 0
        LLM_FORCED_RESETS.labels(provider=soonest.id).inc()
        logger.warning(
            "provider_pool_exhausted_forced_reset",
            provider=soonest.id,
            remaining_s=round(max(remaining, 0.0), 1),
        )
        return soonest

    def record_failure(self, entry: ProviderEntry, now: float) -> float:
        """Increment the failure count and push the cooldown window out.

        Returns the applied window in seconds.
        """
        with entry.lock:
            entry.fail_count += 1
            multiplier = min(entry.fail_count, MAX_BACKOFF_MULTIPLIER)
            window = self._base * multiplier
            entry.cooldown_until = now + window
            fail_count = entry.fail_count
        logger.info(
            "provider_cooldown",
            provider=entry.id,
            fail_count=fail_count,
            cooldown_s=window,
        )
        return window

    @staticmethod
    def record_success(entry: ProviderEntry) -> None:
        with entry.lock:
            if entry.fail_count == 0:
                return
            entry.fail_count = 0
            entry.cooldown_until = 0.0
        logger.info("provider_recovered", provider=entry.id)
