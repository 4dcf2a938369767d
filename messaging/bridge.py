"""Wires Connection Manager events to the relay pipeline and the Broadcast Hub."""

import logging

from .connection import ConnectionManager
from .handler import InboundMessageHandler
from .hub import BroadcastHub
from .models import ConnectionEvent, ConnectionEventType, utc_now_iso

logger = logging.getLogger(__name__)


class GatewayBridge:
    """Translates internal connection events into push events."""

    def __init__(
        self,
        connection: ConnectionManager,
        hub: BroadcastHub,
        handler: InboundMessageHandler,
    ):
        self.connection = connection
        self.hub = hub
        self.handler = handler

    def attach(self) -> None:
        self.connection.subscribe(self.on_event)

    def detach(self) -> None:
        self.connection.unsubscribe(self.on_event)

    async def on_event(self, event: ConnectionEvent) -> None:
        etype = event.type
        data = event.data

        if etype is ConnectionEventType.INBOUND_MESSAGE:
            await self.handler.handle_message(data["message"])

        elif etype is ConnectionEventType.LOGIN_CHALLENGE:
            self.hub.publish("qr", {"qr": data.get("challenge")})

        elif etype is ConnectionEventType.AUTHENTICATED:
            self.hub.publish(
                "ready",
                {
                    "connected": True,
                    "phone": data.get("account_id"),
                    "timestamp": utc_now_iso(),
                },
            )

        elif etype is ConnectionEventType.AUTH_FAILED:
            self.hub.publish(
                "auth_failure",
                {
                    "error": data.get("error"),
                    "sessionCleaned": bool(data.get("session_cleaned")),
                },
            )

        elif etype is ConnectionEventType.CONNECTION_LOST:
            self.hub.publish("disconnected", {"reason": data.get("reason")})

        elif etype is ConnectionEventType.OUTBOUND_ECHOED:
            self.hub.publish("message_sent", dict(data))
