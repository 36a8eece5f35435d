"""
Delivery client: POST a serialized payload to its destination.

send() reports the outcome as a bool; transport errors, timeouts and non-2xx
responses all come back as False.
"""

import logging
from typing import Optional, Protocol

import httpx

from reportrelay.types import Destination

logger = logging.getLogger(__name__)

ACCESS_TOKEN_HEADER = "X-Access-Token"


class Sender(Protocol):
    """Protocol for payload delivery."""

    async def send(self, payload_json: str, destination: Destination) -> bool:
        """Deliver payload_json; True on success. Must not raise for network failures."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpSender:
    """
    Sender that POSTs JSON payloads with httpx.

    One AsyncClient is shared by all destinations; the destination supplies
    the URL and the access token header per request.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send(self, payload_json: str, destination: Destination) -> bool:
        try:
            response = await self._client.post(
                destination.endpoint,
                content=payload_json.encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    ACCESS_TOKEN_HEADER: destination.access_token,
                },
            )
        except httpx.HTTPError as e:
            logger.warning("send to %s failed: %s", destination.endpoint, e)
            return False
        if response.is_success:
            return True
        logger.warning(
            "send to %s rejected: HTTP %d %s",
            destination.endpoint,
            response.status_code,
            response.text[:200],
        )
        return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpSender":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
