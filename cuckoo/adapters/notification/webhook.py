"""Webhook notification adapter.

Implements NotifierPort by POSTing each delivery as JSON to a relay
endpoint that owns the actual chat connections.
"""

import logging

import httpx

from cuckoo.core.ports import NotifierPort

logger = logging.getLogger(__name__)


class WebhookNotifier(NotifierPort):
    """Relays deliveries to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize webhook notifier.

        Args:
            url: Endpoint receiving {"connection", "target", "text"} JSON.
            token: Optional bearer token sent with each request.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.url = url
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def deliver(self, connection: str, target: str, text: str) -> None:
        """POST a delivery to the relay.

        Raises:
            httpx.HTTPError: If the relay is unreachable or rejects it.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                self.url,
                json={"connection": connection, "target": target, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Relay rejected delivery to {target}: {e.response.status_code}",
                extra={"response": e.response.text},
            )
            raise
        except httpx.RequestError as e:
            logger.error(f"Failed to reach relay at {self.url}: {e}")
            raise
