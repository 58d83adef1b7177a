"""Provider pool — fixed, priority-ordered set of model entries.

Entries are built lazily on first access and then live for the whole
process.  Order is priority: the first entry is always preferred when
it is eligible.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterator, Sequence

import structlog

from marketing_bot.shared.providers.types import ProviderEntry

logger = structlog.get_logger(__name__)


class ProviderPool:
    """Lazily-initialised, immutable sequence of ``ProviderEntry``."""

    def __init__(self, factory: Callable[[], Sequence[ProviderEntry]]) -> None:
        self._factory = factory
        self._entries: tuple[ProviderEntry, ...] | None = None
        self._lock = threading.Lock()

    @classmethod
    def of(cls, entries: Sequence[ProviderEntry]) -> ProviderPool:
        """Pool over an already-built list (tests, scripts)."""
        snapshot = tuple(entries)
        return cls(lambda: snapshot)

    def get_pool(self) -> tuple[ProviderEntry, ...]:
        """Return the entries, building them exactly once."""
        entries = self._entries
        if entries is not None:
            return entries
        with self._lock:
            if self._entries is None:
                built = tuple(self._factory())
                ids = [e.id for e in built]
                if len(set(ids)) != len(ids):
                    raise ValueError(f"Duplicate provider ids in pool: {ids}")
                self._entries = built
                logger.info("provider_pool_initialised", size=len(built), entries=ids)
            return self._entries

    @property
    def initialised(self) -> bool:
        return self._entries is not None

    def get(self, entry_id: str) -> ProviderEntry | None:
        return next((e for e in self.get_pool() if e.id == entry_id), None)

    def __iter__(self) -> Iterator[ProviderEntry]:
        return iter(self.get_pool())

    def __len__(self) -> int:
        return len(self.get_pool())

    async def aclose(self) -> None:
        """Close every client, if the pool was ever built."""
        if self._entries is None:
            return
        for entry in self._entries:
            await entry.client.aclose()
