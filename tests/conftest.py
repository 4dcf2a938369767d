"""Shared fixtures: an in-memory messaging driver and gateway settings."""

import asyncio
from typing import Dict, List, Optional

import pytest

from messaging.base import MessagingDriver
from messaging.models import ChatSummary, ConnectionEvent, ConnectionEventType, ContactInfo


class FakeDriver(MessagingDriver):
    """Driver double that records calls and lets tests fire events."""

    name = "fake"

    def __init__(self, path: str, auto_ready: bool = False, account: str = "5511999990000"):
        self.path = path
        self.auto_ready = auto_ready
        self.account = account
        self.handler = None
        self.started = 0
        self.stopped = 0
        self.sent: List[tuple] = []
        self.contacts: Dict[str, ContactInfo] = {}
        self.chats: List[ChatSummary] = []
        self.send_error: Optional[Exception] = None
        self.contact_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.start_gate: Optional[asyncio.Event] = None

    async def start(self) -> None:
        self.started += 1
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error:
            raise self.start_error
        if self.auto_ready:
            await self.emit(ConnectionEventType.LOGIN_CHALLENGE, challenge="qr-code")
            await self.emit(ConnectionEventType.AUTHENTICATED, account_id=self.account)

    async def stop(self) -> None:
        self.stopped += 1
        if self.stop_error:
            raise self.stop_error

    async def send_message(self, chat_id: str, text: str) -> str:
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, text))
        return f"msg-{len(self.sent)}"

    async def get_contact(self, contact_id: str) -> ContactInfo:
        if self.contact_error:
            raise self.contact_error
        return self.contacts.get(
            contact_id,
            ContactInfo(number=contact_id.split("@")[0], push_name="Tester"),
        )

    async def get_chats(self) -> List[ChatSummary]:
        return list(self.chats)

    def on_event(self, handler) -> None:
        self.handler = handler

    @property
    def account_id(self) -> Optional[str]:
        return self.account

    async def emit(self, event_type: ConnectionEventType, **data) -> None:
        await self.handler(ConnectionEvent(type=event_type, data=data))


class DriverRecorder:
    """Driver factory that remembers every driver it created."""

    def __init__(self, auto_ready: bool = False):
        self.auto_ready = auto_ready
        self.drivers: List[FakeDriver] = []
        self.start_gate: Optional[asyncio.Event] = None

    def __call__(self, path: str) -> FakeDriver:
        driver = FakeDriver(path, auto_ready=self.auto_ready)
        driver.start_gate = self.start_gate
        self.drivers.append(driver)
        return driver

    @property
    def current(self) -> FakeDriver:
        return self.drivers[-1]


@pytest.fixture
def driver_factory():
    return DriverRecorder()


@pytest.fixture
def ready_driver_factory():
    return DriverRecorder(auto_ready=True)


@pytest.fixture
def gateway_settings(tmp_path):
    from config.settings import Settings

    return Settings(
        webhook_url="http://localhost:5678/webhook/test",
        session_root=str(tmp_path / "sessions"),
        session_erase_backoff=0,
        reconnect_delay=0,
        reply_segment_interval=0,
        log_file=str(tmp_path / "test.log"),
        _env_file=None,
    )
