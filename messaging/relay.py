"""Webhook relay to the external automation endpoint."""

import logging
from typing import Optional

import httpx

from .exceptions import RelayUnreachable
from .models import RelayEnvelope, ReplyDirective
from .parser import EventParser

logger = logging.getLogger(__name__)


class WebhookRelay:
    """
    Posts relay envelopes to the configured webhook URL.

    The webhook may answer with a JSON body carrying up to three reply
    segments; anything else is treated as "no reply".
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def submit(self, envelope: RelayEnvelope) -> Optional[ReplyDirective]:
        """
        Deliver one envelope.

        Returns:
            ReplyDirective or None when the webhook produced no usable reply

        Raises:
            RelayUnreachable: transport failure, timeout or non-2xx status
        """
        try:
            response = await self._client.post(
                self.url, json=envelope.to_payload(), timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RelayUnreachable(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise RelayUnreachable(f"{type(e).__name__}: {e}") from e

        logger.info(f"Message from {envelope.sender} delivered to webhook")

        if not response.content.strip():
            return None
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Webhook reply is not valid JSON: {e}")
            return None
        return EventParser.parse_reply(body)

    async def aclose(self) -> None:
        await self._client.aclose()
