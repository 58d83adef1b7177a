"""WhatsApp connector adapter.

The WhatsApp session itself lives in a separate connector service; this
adapter only forwards outgoing text to its HTTP API.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from marketing_bot.domain.exceptions import MessagingError
from marketing_bot.ports.outbound import MessagingPort

logger = structlog.get_logger(__name__)


class WhatsAppConnector(MessagingPort):
    """HTTP client for the connector's ``/send`` and ``/health`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send_text(self, to: str, message: str) -> None:
        try:
            response = await self._client.post(
                f"{self._base_url}/send",
                json={"to": to, "message": message},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MessagingError(
                f"Connector rejected message ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise MessagingError(f"Connector unreachable: {exc}") from exc
        logger.info("wa_message_sent", to=to, chars=len(message))

    async def health(self) -> dict[str, Any]:
        try:
            response = await self._client.get(f"{self._base_url}/health", timeout=3.0)
        except httpx.HTTPError as exc:
            return {"status": "unreachable", "message": str(exc)}
        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = {}
            return {"status": "connected", **(data if isinstance(data, dict) else {})}
        return {"status": "error", "http_status": response.status_code}

    async def aclose(self) -> None:
        await self._client.aclose()
