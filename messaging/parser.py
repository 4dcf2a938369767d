"""Parsers for raw driver messages and webhook reply bodies."""

import logging
from typing import Any, Dict, Optional

from .models import InboundMessage, ReplyDirective

logger = logging.getLogger(__name__)

REPLY_KEYS = (
    ("part1", "segment1"),
    ("part2", "segment2"),
    ("part3", "segment3"),
)


class EventParser:
    """Helper to structure raw driver and webhook payloads."""

    @staticmethod
    def parse_message(raw: Any) -> Optional[InboundMessage]:
        """
        Parse a raw driver message mapping into an InboundMessage.

        Args:
            raw: Message mapping as reported by the driver

        Returns:
            InboundMessage or None if the mapping is not a message
        """
        if isinstance(raw, InboundMessage):
            return raw
        if not isinstance(raw, dict):
            return None

        sender = raw.get("from")
        if not sender or not isinstance(sender, str):
            return None

        body = raw.get("body")
        if not isinstance(body, str):
            body = "" if body is None else str(body)

        try:
            timestamp = int(raw.get("timestamp") or 0)
        except (TypeError, ValueError):
            timestamp = 0

        message_id = raw.get("id")
        if isinstance(message_id, dict):
            message_id = message_id.get("_serialized") or message_id.get("id")

        message_type = raw.get("type") or "chat"

        return InboundMessage(
            sender_id=sender,
            body=body,
            timestamp=timestamp,
            is_group_chat=bool(raw.get("isGroup") or raw.get("isGroupMsg")),
            is_status_update=bool(raw.get("isStatus")),
            is_self_sent=bool(raw.get("fromMe")),
            has_non_text_payload=bool(raw.get("hasMedia")) or message_type != "chat",
            message_type=message_type,
            message_id=str(message_id) if message_id else None,
        )

    @staticmethod
    def parse_reply(body: Any) -> Optional[ReplyDirective]:
        """
        Parse a webhook response body into a ReplyDirective.

        n8n answers with either an object or a list holding one object.

        Returns:
            ReplyDirective or None if no segment is present
        """
        if isinstance(body, list):
            if not body:
                return None
            body = body[0]

        if not isinstance(body, dict):
            logger.warning(f"Webhook reply is not an object: {type(body).__name__}")
            return None

        values = [EventParser._segment(body, keys) for keys in REPLY_KEYS]
        directive = ReplyDirective(*values)
        if directive.is_empty():
            return None
        return directive

    @staticmethod
    def _segment(body: Dict[str, Any], keys) -> Optional[str]:
        for key in keys:
            value = body.get(key)
            if value is None:
                continue
            text = value if isinstance(value, str) else str(value)
            if text.strip():
                return text
        return None
