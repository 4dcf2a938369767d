"""Admission filter for inbound messages."""

from typing import Optional

from .models import InboundMessage

STATUS_BROADCAST_ID = "status@broadcast"
GROUP_SUFFIX = "@g.us"


def rejection_reason(message: InboundMessage) -> Optional[str]:
    """Return why a message must not be relayed, or None if it is admissible."""
    if message.sender_id == STATUS_BROADCAST_ID:
        return "status broadcast"
    if message.is_status_update:
        return "status update"
    if message.is_self_sent:
        return "sent by this account"
    if message.is_group_chat:
        return "group chat"
    if message.sender_id.endswith(GROUP_SUFFIX):
        return "group sender"
    if not message.body or not message.body.strip():
        return "empty body"
    return None


def is_admissible(message: InboundMessage) -> bool:
    return rejection_reason(message) is None
