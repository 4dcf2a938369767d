"""
Connection Manager

Owns the single messaging-session connection and its state machine:

    UNINITIALIZED -> AWAITING_LOGIN -> READY
    AWAITING_LOGIN -> AUTH_FAILED -> (erase) -> UNINITIALIZED -> ...
    READY -> DISCONNECTED -> (erase, settle) -> UNINITIALIZED -> ...
    any -> restart -> (teardown, erase) -> UNINITIALIZED -> ...

All recovery paths (restart, auth failure, connection loss) run the same
teardown -> erase -> reinit sequence, and at most one of them is in flight.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .base import DriverFactory, MessagingDriver
from .exceptions import (
    AuthFailure,
    LookupFailed,
    NotConnected,
    SendFailed,
    SessionEraseExhausted,
)
from .models import (
    ChatSummary,
    ConnectionEvent,
    ConnectionEventType,
    ContactInfo,
    SentMessage,
    Session,
    SessionState,
    StatusSnapshot,
)
from .parser import EventParser
from .session import EraseResult, SessionStore

logger = logging.getLogger(__name__)

Listener = Callable[[ConnectionEvent], Awaitable[None]]


class RecoveryReason(str, Enum):
    RESTART = "restart"
    RESET = "reset"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


class ConnectionManager:
    """
    Single owner of the messaging session.

    Other components observe it through subscribe() and act on it through
    request_send(), request_restart(), clean_session() and the lookups.
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        store: SessionStore,
        reconnect_delay: float = 3.0,
        erase_on_disconnect: bool = True,
    ):
        self._driver_factory = driver_factory
        self._store = store
        self.reconnect_delay = reconnect_delay
        self.erase_on_disconnect = erase_on_disconnect

        self._session = Session(path="")
        self._driver: Optional[MessagingDriver] = None
        self._generation = 0
        self._listeners: List[Listener] = []
        self._transition_lock = asyncio.Lock()
        self._recovery_task: Optional[asyncio.Task] = None
        self._follow_up: Optional[Tuple[RecoveryReason, bool, float, Optional[str]]] = None
        self._reinitializing = False
        self._stopped = False

    # ==================== Observation ====================

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def session_path(self) -> str:
        return self._session.path

    def subscribe(self, listener: Listener) -> None:
        """Register a listener for connection and message events."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def request_status(self) -> StatusSnapshot:
        session = self._session
        return StatusSnapshot(
            state=session.state,
            account_id=session.account_id,
            has_login_challenge=session.login_challenge is not None,
            login_challenge=session.login_challenge,
        )

    async def _emit(self, event_type: ConnectionEventType, data: Dict[str, Any]) -> None:
        event = ConnectionEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error(f"Listener failed on {event_type.value}: {e}", exc_info=True)

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Initialize the first session, resuming stored credentials if present."""
        self._stopped = False
        async with self._transition_lock:
            path = self._store.latest_path() or self._store.new_path()
            await self._initialize(path)

    async def stop(self) -> None:
        """Shut down: cancel any recovery and disconnect the driver."""
        self._stopped = True
        task = self._recovery_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Recovery ended with error during stop: {e}")
        self._follow_up = None
        async with self._transition_lock:
            await self._teardown()
            self._session = Session(path=self._session.path)
        logger.info("Connection manager stopped")

    def request_restart(self) -> Optional[asyncio.Task]:
        """
        Tear down, erase and reinitialize the session in the background.

        Requests arriving while a recovery is in flight join that recovery.

        Returns:
            The task running the recovery sequence, or None once stopped
        """
        logger.info("Restart requested")
        return self._schedule_recovery(RecoveryReason.RESTART, erase=True, delay=0)

    async def clean_session(self) -> Optional[EraseResult]:
        """
        Run the restart sequence and wait for it.

        Returns:
            The erase result, or None if the joined recovery kept the session
        """
        logger.info("Session clean requested")
        task = self._schedule_recovery(RecoveryReason.RESET, erase=True, delay=0)
        if task is None:
            return None
        return await asyncio.shield(task)

    def _schedule_recovery(
        self,
        reason: RecoveryReason,
        erase: bool,
        delay: float,
        error: Optional[str] = None,
        follow_up: bool = False,
    ) -> Optional[asyncio.Task]:
        if self._stopped:
            logger.info(f"Stopped; ignoring {reason.value} recovery")
            return None

        task = self._recovery_task
        if task is not None and not task.done():
            if follow_up and self._reinitializing and self._follow_up is None:
                # The driver being started failed; run again once it returns
                self._follow_up = (reason, erase, delay, error)
                logger.info(f"Queued {reason.value} recovery after the current one")
            else:
                logger.info(f"Recovery already in progress; joining {reason.value} request")
            return task

        task = asyncio.create_task(self._recover(reason, erase, delay, error))
        task.add_done_callback(self._log_recovery_failure)
        self._recovery_task = task
        return task

    @staticmethod
    def _log_recovery_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Session recovery failed: {exc}", exc_info=exc)

    async def _recover(
        self,
        reason: RecoveryReason,
        erase: bool,
        delay: float,
        error: Optional[str],
    ) -> Optional[EraseResult]:
        """Run one recovery sequence, then any follow-up queued while reinitializing."""
        result = await self._recover_once(reason, erase, delay, error)
        while self._follow_up is not None and not self._stopped:
            follow_up, self._follow_up = self._follow_up, None
            await self._recover_once(*follow_up)
        self._follow_up = None
        return result

    async def _recover_once(
        self,
        reason: RecoveryReason,
        erase: bool,
        delay: float,
        error: Optional[str],
    ) -> Optional[EraseResult]:
        async with self._transition_lock:
            old_path = self._session.path
            await self._teardown()
            if reason in (RecoveryReason.RESTART, RecoveryReason.RESET):
                self._session = Session(path=old_path)

            result: Optional[EraseResult] = None
            if erase and old_path:
                result = await self._store.erase(old_path)
                if result is EraseResult.EXHAUSTED:
                    exhausted = SessionEraseExhausted(old_path, self._store.max_attempts)
                    logger.warning(f"{exhausted.message}; continuing with a fresh path")

            if reason is RecoveryReason.AUTH_FAILURE:
                await self._emit(
                    ConnectionEventType.AUTH_FAILED,
                    {
                        "error": error,
                        "session_cleaned": result is EraseResult.SUCCESS,
                    },
                )

            path = self._store.new_path() if (erase or not old_path) else old_path
            self._session = Session(path=path)
            if self._stopped:
                return result

            if delay > 0:
                logger.info(f"Waiting {delay}s before reinitializing")
                await asyncio.sleep(delay)

            self._reinitializing = True
            try:
                await self._initialize(path)
            finally:
                self._reinitializing = False
            return result

    async def _initialize(self, path: str) -> None:
        """Create and start a driver for path. Caller holds the transition lock."""
        self._generation += 1
        generation = self._generation
        self._session = Session(path=path, state=SessionState.AWAITING_LOGIN)
        logger.info(f"Initializing session at {path}")

        try:
            driver = self._driver_factory(path)

            async def on_event(event: ConnectionEvent) -> None:
                await self._on_driver_event(generation, event)

            driver.on_event(on_event)
            self._driver = driver
            await driver.start()
        except AuthFailure as e:
            await self._handle_auth_failed(e.message)
        except Exception as e:
            logger.error(f"Driver failed to start: {e}")
            await self._handle_connection_lost(f"start failed: {e}")

    async def _teardown(self) -> None:
        """Best-effort driver shutdown; failures never block erasure."""
        driver, self._driver = self._driver, None
        self._generation += 1
        if driver is None:
            return
        try:
            await driver.stop()
            logger.info("Driver stopped")
        except Exception as e:
            logger.warning(f"Driver teardown failed: {e}")

    # ==================== Driver events ====================

    async def _on_driver_event(self, generation: int, event: ConnectionEvent) -> None:
        if generation != self._generation:
            logger.debug(f"Ignoring {event.type.value} from a retired driver")
            return

        etype = event.type
        data = event.data or {}

        if etype is ConnectionEventType.LOGIN_CHALLENGE:
            if self._session.state is not SessionState.AWAITING_LOGIN:
                logger.debug(f"Login challenge ignored in state {self._session.state.value}")
                return
            challenge = data.get("challenge")
            if not challenge:
                return
            self._session.login_challenge = challenge
            logger.info("Login challenge issued; waiting for scan")
            await self._emit(etype, {"challenge": challenge})

        elif etype is ConnectionEventType.AUTHENTICATED:
            if self._session.state is not SessionState.AWAITING_LOGIN:
                logger.debug(f"Authentication ignored in state {self._session.state.value}")
                return
            account_id = data.get("account_id")
            if not account_id and self._driver is not None:
                account_id = self._driver.account_id
            self._session.state = SessionState.READY
            self._session.account_id = account_id
            self._session.login_challenge = None
            logger.info(f"Connected as {account_id}")
            await self._emit(etype, {"account_id": account_id})

        elif etype is ConnectionEventType.AUTH_FAILED:
            await self._handle_auth_failed(data.get("error") or "authentication failed")

        elif etype is ConnectionEventType.CONNECTION_LOST:
            await self._handle_connection_lost(data.get("reason") or "unknown")

        elif etype is ConnectionEventType.INBOUND_MESSAGE:
            message = EventParser.parse_message(data.get("message"))
            if message is None:
                logger.debug("Dropping unparseable inbound event")
                return
            await self._emit(etype, {"message": message})

        elif etype is ConnectionEventType.OUTBOUND_ECHOED:
            target = data.get("target")
            if not target:
                logger.debug("Dropping outbound echo without a target")
                return
            echoed = SentMessage(
                message_id=str(data.get("message_id") or ""),
                target=target,
                text=data.get("text") or "",
            )
            await self._emit(etype, echoed.to_dict())

    async def _handle_auth_failed(self, error: str) -> None:
        logger.error(f"Authentication failed: {error}")
        self._session.state = SessionState.AUTH_FAILED
        self._session.login_challenge = None
        self._session.account_id = None
        self._schedule_recovery(
            RecoveryReason.AUTH_FAILURE, erase=True, delay=0, error=error, follow_up=True
        )

    async def _handle_connection_lost(self, reason: str) -> None:
        logger.warning(f"Connection lost: {reason}")
        self._session.state = SessionState.DISCONNECTED
        self._session.login_challenge = None
        self._session.account_id = None
        await self._emit(ConnectionEventType.CONNECTION_LOST, {"reason": reason})
        self._schedule_recovery(
            RecoveryReason.DISCONNECTED,
            erase=self.erase_on_disconnect,
            delay=self.reconnect_delay,
            follow_up=True,
        )

    # ==================== Operations ====================

    def _ready_driver(self) -> MessagingDriver:
        driver = self._driver
        if self._session.state is not SessionState.READY or driver is None:
            raise NotConnected(self._session.state)
        return driver

    async def request_send(self, target: str, text: str) -> SentMessage:
        """
        Send a text message through the live connection.

        Raises:
            NotConnected: session is not READY
            SendFailed: the driver failed the send
        """
        driver = self._ready_driver()
        try:
            message_id = await driver.send_message(target, text)
        except Exception as e:
            logger.error(f"Send to {target} failed: {e}")
            raise SendFailed(str(e)) from e

        sent = SentMessage(message_id=str(message_id), target=target, text=text)
        logger.info(f"Message sent to {target}")
        await self._emit(ConnectionEventType.OUTBOUND_ECHOED, sent.to_dict())
        return sent

    async def get_contact(self, target: str) -> ContactInfo:
        driver = self._ready_driver()
        try:
            return await driver.get_contact(target)
        except Exception as e:
            raise LookupFailed(str(e)) from e

    async def list_chats(self, limit: int = 20) -> Tuple[List[ChatSummary], int]:
        """
        Return the most recent conversations.

        Returns:
            (up to `limit` chats ordered by last activity, total chat count)
        """
        driver = self._ready_driver()
        try:
            chats = await driver.get_chats()
        except Exception as e:
            raise LookupFailed(str(e)) from e
        chats = sorted(chats, key=lambda c: c.last_activity, reverse=True)
        return chats[:limit], len(chats)
