"""WebSocket endpoint for real-time gateway events."""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from messaging.exceptions import GatewayError
from messaging.hub import Subscriber

from .dependencies import Gateway, get_ws_gateway
from .routes import to_chat_id

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketSubscriber(Subscriber):
    """Broadcast Hub handle for one WebSocket connection."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps({"event": event, "data": payload}))


async def _handle_frame(
    gateway: Gateway, subscriber: WebSocketSubscriber, frame: Dict[str, Any]
) -> None:
    """Serve one client request frame."""
    action = frame.get("type")

    if action == "get_status":
        status = gateway.connection.request_status()
        await subscriber.send_event("status_response", status.to_dict())

    elif action == "send_message":
        phone = frame.get("phone")
        text = frame.get("message")
        if not isinstance(phone, str) or not isinstance(text, str) or not phone or not text:
            await subscriber.send_event(
                "error", {"error": "phone and message are required strings"}
            )
            return
        try:
            # The resulting message_sent event reaches every subscriber via the hub
            await gateway.connection.request_send(to_chat_id(phone), text)
        except GatewayError as e:
            await subscriber.send_event("message_error", e.to_response())

    elif action == "restart":
        if gateway.has_driver:
            gateway.connection.request_restart()
        else:
            logger.warning("Restart requested but no messaging driver is configured")
        await subscriber.send_event("restart_accepted", {"accepted": True})

    else:
        await subscriber.send_event("error", {"error": f"Unsupported type: {action}"})


def _decode_frame(message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the JSON object carried by a text frame, or None."""
    raw = message.get("text")
    if raw is None:
        return None
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return frame if isinstance(frame, dict) else None


@router.websocket("/ws")
async def realtime_events(websocket: WebSocket):
    """Push connection and message events to one client."""
    await websocket.accept()
    gateway = get_ws_gateway(websocket)
    if gateway is None:
        await websocket.send_text(json.dumps({"event": "error", "data": {"error": "Gateway not started"}}))
        await websocket.close()
        return

    subscriber = WebSocketSubscriber(websocket)
    gateway.hub.subscribe(subscriber)
    try:
        status = gateway.connection.request_status()
        await subscriber.send_event("status_response", status.to_dict())

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            frame = _decode_frame(message)
            if frame is None:
                await subscriber.send_event("error", {"error": "Invalid websocket frame"})
                continue

            try:
                await _handle_frame(gateway, subscriber, frame)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Websocket frame failed: {e}", exc_info=True)
                await subscriber.send_event(
                    "error", {"error": "An unexpected error occurred.", "type": "internal_error"}
                )
    except WebSocketDisconnect:
        pass
    finally:
        gateway.hub.unsubscribe(subscriber)
