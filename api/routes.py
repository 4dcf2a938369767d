"""HTTP routes for the gateway API."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from messaging.exceptions import InternalError, MissingParameter, NotConnected
from messaging.models import ReplyDirective, SessionState
from messaging.session import EraseResult

from .dependencies import Gateway, get_gateway

logger = logging.getLogger(__name__)

router = APIRouter()

CHAT_SUFFIX = "@c.us"


class SendMessageRequest(BaseModel):
    phone: Optional[str] = None
    message: Optional[str] = None


class SendReplyRequest(BaseModel):
    phone: Optional[str] = None
    part1: Optional[str] = None
    part2: Optional[str] = None
    part3: Optional[str] = None


def to_chat_id(target: str) -> str:
    """Bare phone numbers address a private chat."""
    target = target.strip()
    return target if "@" in target else f"{target}{CHAT_SUFFIX}"


def _require_ready(gateway: Gateway) -> None:
    state = gateway.connection.state
    if state is not SessionState.READY:
        raise NotConnected(state)


@router.get("/")
async def service_info(gateway: Gateway = Depends(get_gateway)):
    status = gateway.connection.request_status()
    return {
        "service": "WhatsApp Gateway",
        "status": "connected" if status.connected else "disconnected",
        "endpoints": {
            "GET /status": "Connection status",
            "GET /qr": "Current login QR code",
            "POST /send-message": "Send a message (body: {phone, message})",
            "POST /send-reply": "Send up to three reply parts (body: {phone, part1..part3})",
            "POST /restart": "Restart the session",
            "POST /clean-session": "Erase the session and log in again",
            "GET /contact/{target}": "Contact details",
            "GET /chats": "Recent conversations",
            "WS /ws": "Real-time events",
        },
    }


@router.get("/status")
async def get_status(gateway: Gateway = Depends(get_gateway)):
    return gateway.connection.request_status().to_dict()


@router.get("/qr")
async def get_qr(gateway: Gateway = Depends(get_gateway)):
    status = gateway.connection.request_status()
    return {"qr": status.login_challenge, "status": status.login_status}


@router.post("/send-message")
async def send_message(
    request_data: SendMessageRequest, gateway: Gateway = Depends(get_gateway)
):
    _require_ready(gateway)

    missing = [
        name
        for name, value in (("phone", request_data.phone), ("message", request_data.message))
        if not value
    ]
    if missing:
        raise MissingParameter(missing)

    sent = await gateway.connection.request_send(
        to_chat_id(request_data.phone), request_data.message
    )
    response = sent.to_dict()
    response["to"] = request_data.phone
    response["success"] = True
    return response


@router.post("/send-reply")
async def send_reply(
    request_data: SendReplyRequest, gateway: Gateway = Depends(get_gateway)
):
    _require_ready(gateway)
    if not request_data.phone:
        raise MissingParameter(["phone"])

    directive = ReplyDirective(
        part1=request_data.part1, part2=request_data.part2, part3=request_data.part3
    )
    outcomes = await gateway.handler.send_reply(to_chat_id(request_data.phone), directive)

    return {
        "success": all(o.ok for o in outcomes),
        "to": request_data.phone,
        "responses": [
            {"segment": o.index, "messageId": o.result.message_id}
            for o in outcomes
            if o.ok
        ],
        "errors": [
            {"segment": o.index, "error": getattr(o.error, "message", str(o.error))}
            for o in outcomes
            if not o.ok
        ],
    }


@router.post("/restart")
async def restart(gateway: Gateway = Depends(get_gateway)):
    if gateway.has_driver:
        gateway.connection.request_restart()
    else:
        logger.warning("Restart requested but no messaging driver is configured")
    return {"success": True, "accepted": True, "message": "Restart scheduled"}


@router.post("/clean-session")
async def clean_session(gateway: Gateway = Depends(get_gateway)):
    if not gateway.has_driver:
        logger.warning("Session clean requested but no messaging driver is configured")
        return {"success": False}
    try:
        result = await gateway.connection.clean_session()
    except Exception as e:
        logger.error(f"Session clean failed: {e}", exc_info=True)
        raise InternalError("Error cleaning session", details=str(e)) from e
    return {"success": result is EraseResult.SUCCESS}


@router.get("/contact/{target}")
async def get_contact(target: str, gateway: Gateway = Depends(get_gateway)):
    contact = await gateway.connection.get_contact(to_chat_id(target))
    response = contact.to_dict()
    response["success"] = True
    return response


@router.get("/chats")
async def list_chats(gateway: Gateway = Depends(get_gateway)):
    chats, total = await gateway.connection.list_chats(limit=gateway.settings.max_chats)
    return {
        "success": True,
        "conversations": [chat.to_dict() for chat in chats],
        "total": total,
    }


@router.post("/webhook")
async def webhook_loopback(request: Request):
    """Acknowledge any payload; handy for pointing the relay at this server."""
    try:
        payload: Dict[str, Any] = await request.json()
    except ValueError:
        payload = {}
    logger.info(f"Webhook loopback received {len(payload)} fields")
    return {"received": True}
