"""
Inbound Message Handler

Core relay workflow for messages arriving from the network:
filter -> per-sender queue -> contact lookup -> webhook -> paced reply
segments -> broadcast.
"""

import logging
import time
from typing import Any, Dict, List

from .connection import ConnectionManager
from .exceptions import RelayUnreachable
from .filters import rejection_reason
from .hub import BroadcastHub
from .limiter import SegmentOutcome, SegmentPacer
from .models import InboundMessage, RelayEnvelope, ReplyDirective, utc_now_iso
from .queue import SenderQueueManager
from .relay import WebhookRelay

logger = logging.getLogger(__name__)


class InboundMessageHandler:
    """
    Relays admitted inbound messages to the automation webhook.

    This class contains the core logic for:
    - Admission filtering
    - Per-sender ordering
    - Contact enrichment and webhook delivery
    - Sending the webhook's reply segments back
    - Publishing received/relayed/error events
    """

    def __init__(
        self,
        connection: ConnectionManager,
        relay: WebhookRelay,
        hub: BroadcastHub,
        queue: SenderQueueManager,
        pacer: SegmentPacer,
    ):
        self.connection = connection
        self.relay = relay
        self.hub = hub
        self.queue = queue
        self.pacer = pacer

    async def handle_message(self, message: InboundMessage) -> bool:
        """
        Main entry point for an inbound message.

        Returns:
            True if the message was admitted for relay
        """
        reason = rejection_reason(message)
        if reason:
            logger.debug(f"Ignoring message from {message.sender_id}: {reason}")
            return False

        logger.info(f"Message received from {message.sender_id}")
        await self.queue.enqueue(message.sender_id, message, self.process)
        return True

    async def process(self, sender_id: str, message: InboundMessage) -> None:
        """Relay one admitted message. Runs under the sender's queue."""
        try:
            contact = await self.connection.get_contact(sender_id)
            envelope = RelayEnvelope.build(message, contact)
        except Exception as e:
            logger.error(f"Could not prepare relay for {sender_id}: {e}")
            self.hub.publish("message_error", self._error_payload(sender_id, e))
            return

        replies: List[SegmentOutcome] = []
        relayed = False
        try:
            directive = await self.relay.submit(envelope)
            relayed = True
        except RelayUnreachable as e:
            logger.error(f"Webhook relay failed for {sender_id}: {e.message} ({e.details})")
            self.hub.publish("message_error", self._error_payload(sender_id, e))
            directive = None

        if directive is not None:
            replies = await self.send_reply(sender_id, directive)

        self.hub.publish("message_received", envelope.to_payload())
        if relayed:
            self.hub.publish(
                "message_relayed",
                {
                    "from": sender_id,
                    "timestamp": envelope.timestamp,
                    "replies": [o.index for o in replies if o.ok],
                },
            )

    async def send_reply(self, target: str, directive: ReplyDirective) -> List[SegmentOutcome]:
        """
        Send the directive's present segments to target, in order and paced.

        A failed segment is reported but does not stop the following ones.
        """
        tasks = [
            (index, self._segment_sender(target, text))
            for index, text in directive.segments()
        ]
        outcomes = await self.pacer.run(tasks)

        for outcome in outcomes:
            if outcome.ok:
                continue
            logger.warning(f"Reply segment {outcome.index} to {target} failed: {outcome.error}")
            payload = self._error_payload(target, outcome.error)
            payload["segment"] = outcome.index
            self.hub.publish("message_error", payload)
        return outcomes

    def _segment_sender(self, target: str, text: str):
        async def send():
            return await self.connection.request_send(target, text)

        return send

    @staticmethod
    def _error_payload(sender_id: str, error: Any) -> Dict[str, Any]:
        message = getattr(error, "message", None) or str(error)
        return {
            "error": message,
            "from": sender_id,
            "timestamp": int(time.time()),
            "at": utc_now_iso(),
        }
