"""Outbound ports — interfaces that infrastructure adapters must implement.

The application layer depends only on these abstractions, never on the
concrete HTTP connector.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class MessagingPort(ABC):
    """Delivery of outgoing chat messages through the messaging connector."""

    @abstractmethod
    async def send_text(self, to: str, message: str) -> None: ...

    @abstractmethod
    async def health(self) -> dict[str, object]: ...

    async def aclose(self) -> None:  # noqa: B027
        """Release transport resources."""
