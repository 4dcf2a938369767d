"""Session lifecycle and message relay core."""

from .base import DriverFactory, MessagingDriver
from .bridge import GatewayBridge
from .connection import ConnectionManager
from .handler import InboundMessageHandler
from .hub import BroadcastHub, Subscriber
from .limiter import SegmentOutcome, SegmentPacer
from .models import (
    ConnectionEvent,
    ConnectionEventType,
    ContactInfo,
    InboundMessage,
    RelayEnvelope,
    ReplyDirective,
    SessionState,
)
from .queue import SenderQueueManager
from .relay import WebhookRelay
from .session import EraseResult, SessionStore

__all__ = [
    "BroadcastHub",
    "ConnectionEvent",
    "ConnectionEventType",
    "ConnectionManager",
    "ContactInfo",
    "DriverFactory",
    "EraseResult",
    "GatewayBridge",
    "InboundMessage",
    "InboundMessageHandler",
    "MessagingDriver",
    "RelayEnvelope",
    "ReplyDirective",
    "SegmentOutcome",
    "SegmentPacer",
    "SenderQueueManager",
    "SessionState",
    "SessionStore",
    "Subscriber",
    "WebhookRelay",
]
