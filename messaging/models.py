"""Data models for the gateway's session and message flow."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


class SessionState(str, Enum):
    """Lifecycle states of the messaging session."""

    UNINITIALIZED = "uninitialized"
    AWAITING_LOGIN = "awaiting_login"
    READY = "ready"
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """
    One connection lifetime to the messaging network.

    `login_challenge` is only set while AWAITING_LOGIN and `account_id`
    only while READY; the Connection Manager is the sole writer.
    """

    path: str
    state: SessionState = SessionState.UNINITIALIZED
    login_challenge: Optional[str] = None
    account_id: Optional[str] = None


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only view of the current session."""

    state: SessionState
    account_id: Optional[str] = None
    has_login_challenge: bool = False
    login_challenge: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.state is SessionState.READY

    @property
    def login_status(self) -> str:
        """Status label used by the login challenge endpoint."""
        if self.has_login_challenge:
            return "waiting"
        if self.connected:
            return "connected"
        return "initializing"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "state": self.state.value,
            "phone": self.account_id,
            "hasQR": self.has_login_challenge,
            "timestamp": utc_now_iso(),
        }


@dataclass(frozen=True)
class InboundMessage:
    """A message received from the network, alive only while it is relayed."""

    sender_id: str
    body: str
    timestamp: int
    is_group_chat: bool = False
    is_status_update: bool = False
    is_self_sent: bool = False
    has_non_text_payload: bool = False
    message_type: str = "chat"
    message_id: Optional[str] = None


@dataclass
class ContactInfo:
    """Contact details resolved for a sender."""

    number: str
    display_name: Optional[str] = None
    push_name: Optional[str] = None
    is_known_contact: bool = False
    avatar_url: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return self.display_name or self.push_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayName": self.name,
            "number": self.number,
            "isKnownContact": self.is_known_contact,
            "avatarUrl": self.avatar_url,
        }


@dataclass
class RelayEnvelope:
    """Normalized payload posted to the automation webhook."""

    sender: str
    body: str
    timestamp: int
    is_group: bool
    message_type: str
    contact_name: Optional[str]
    contact_number: str
    received_at: str = field(default_factory=lambda: utc_now_iso())

    @classmethod
    def build(cls, message: InboundMessage, contact: ContactInfo) -> "RelayEnvelope":
        return cls(
            sender=message.sender_id,
            body=message.body,
            timestamp=message.timestamp,
            is_group=message.is_group_chat,
            message_type=message.message_type,
            contact_name=contact.name,
            contact_number=contact.number,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "body": self.body,
            "timestamp": self.timestamp,
            "isGroup": self.is_group,
            "type": self.message_type,
            "contact": {
                "name": self.contact_name,
                "number": self.contact_number,
            },
            "receivedAt": self.received_at,
        }


@dataclass
class ReplyDirective:
    """Up to three reply segments returned by the webhook."""

    part1: Optional[str] = None
    part2: Optional[str] = None
    part3: Optional[str] = None

    def segments(self) -> Iterator[Tuple[int, str]]:
        """Yield (index, text) for present segments, in order."""
        for index, text in enumerate((self.part1, self.part2, self.part3), start=1):
            if text:
                yield index, text

    def is_empty(self) -> bool:
        return not any(True for _ in self.segments())


@dataclass
class SentMessage:
    """Result of an outbound send."""

    message_id: str
    target: str
    text: str
    sent_at: str = field(default_factory=lambda: utc_now_iso())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messageId": self.message_id,
            "to": self.target,
            "message": self.text,
            "timestamp": self.sent_at,
        }


@dataclass
class ChatSummary:
    """A recent conversation as reported by the driver."""

    id: str
    name: Optional[str]
    is_group: bool
    last_activity: int = 0
    unread_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "isGroup": self.is_group,
            "lastActivityTimestamp": self.last_activity,
            "unreadCount": self.unread_count,
        }


class ConnectionEventType(str, Enum):
    """Events emitted by drivers and re-published by the Connection Manager."""

    LOGIN_CHALLENGE = "login_challenge"
    AUTHENTICATED = "authenticated"
    AUTH_FAILED = "auth_failed"
    CONNECTION_LOST = "connection_lost"
    INBOUND_MESSAGE = "inbound_message"
    OUTBOUND_ECHOED = "outbound_echoed"


@dataclass
class ConnectionEvent:
    """A single connection or message event."""

    type: ConnectionEventType
    data: Dict[str, Any] = field(default_factory=dict)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
