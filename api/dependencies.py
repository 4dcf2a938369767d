"""Dependency injection for FastAPI."""

import importlib
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, WebSocket

from config.settings import Settings
from messaging.base import DriverFactory
from messaging.bridge import GatewayBridge
from messaging.connection import ConnectionManager
from messaging.handler import InboundMessageHandler
from messaging.hub import BroadcastHub
from messaging.limiter import SegmentPacer
from messaging.queue import SenderQueueManager
from messaging.relay import WebhookRelay
from messaging.session import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Every long-lived component of one running gateway."""

    settings: Settings
    store: SessionStore
    connection: ConnectionManager
    hub: BroadcastHub
    relay: WebhookRelay
    handler: InboundMessageHandler
    bridge: GatewayBridge
    has_driver: bool = True

    async def start(self) -> None:
        self.bridge.attach()
        if not self.has_driver:
            logger.warning("No messaging driver configured; connection not started")
            return
        await self.connection.start()

    async def close(self) -> None:
        self.bridge.detach()
        await self.handler.queue.cancel_all()
        await self.connection.stop()
        await self.hub.drain()
        await self.relay.aclose()


def load_driver_factory(path: str) -> DriverFactory:
    """
    Import a driver factory from "package.module:attribute".

    Raises:
        ValueError: the path is malformed or does not name a callable
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Driver path must look like 'module:factory', got '{path}'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"Driver factory '{path}' is not callable")
    return factory


def _missing_driver(path: str):
    raise RuntimeError("No messaging driver configured")


def build_gateway(
    settings: Settings, driver_factory: Optional[DriverFactory] = None
) -> Gateway:
    """Assemble the gateway components from settings."""
    has_driver = True
    if driver_factory is None:
        if settings.messaging_driver:
            driver_factory = load_driver_factory(settings.messaging_driver)
        else:
            driver_factory = _missing_driver
            has_driver = False

    store = SessionStore(
        root=settings.session_root,
        max_attempts=settings.session_erase_attempts,
        backoff=settings.session_erase_backoff,
    )
    connection = ConnectionManager(
        driver_factory,
        store,
        reconnect_delay=settings.reconnect_delay,
        erase_on_disconnect=settings.erase_session_on_disconnect,
    )
    hub = BroadcastHub(send_timeout=settings.subscriber_send_timeout)
    relay = WebhookRelay(settings.webhook_url, timeout=settings.webhook_timeout)
    handler = InboundMessageHandler(
        connection,
        relay,
        hub,
        SenderQueueManager(),
        SegmentPacer(settings.reply_segment_interval),
    )
    bridge = GatewayBridge(connection, hub, handler)
    return Gateway(
        settings=settings,
        store=store,
        connection=connection,
        hub=hub,
        relay=relay,
        handler=handler,
        bridge=bridge,
        has_driver=has_driver,
    )


def get_gateway(request: Request) -> Gateway:
    """Get the running gateway from application state."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Gateway not started")
    return gateway


def get_ws_gateway(websocket: WebSocket) -> Optional[Gateway]:
    return getattr(websocket.app.state, "gateway", None)
