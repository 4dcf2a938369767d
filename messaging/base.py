"""Abstract base class for messaging network drivers."""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from .models import ChatSummary, ConnectionEvent, ContactInfo

EventHandler = Callable[[ConnectionEvent], Awaitable[None]]


class MessagingDriver(ABC):
    """
    Base class for the client that speaks the messaging network's protocol.

    A driver owns one connection bound to one session directory. It reports
    everything that happens on that connection through the registered event
    handler:

    - LOGIN_CHALLENGE  {"challenge": str}
    - AUTHENTICATED    {"account_id": str}
    - AUTH_FAILED      {"error": str}
    - CONNECTION_LOST  {"reason": str}
    - INBOUND_MESSAGE  {"message": <raw message mapping>}
    - OUTBOUND_ECHOED  {"message_id", "target", "text"} for messages sent
      from another device of the same account
    """

    name: str = "base"

    @abstractmethod
    async def start(self) -> None:
        """
        Begin connecting to the network.

        Returns once the connection attempt has been launched; progress is
        reported through events. May raise AuthFailure when stored
        credentials are rejected outright.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and release the session directory."""
        pass

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> str:
        """
        Send a text message to a chat.

        Args:
            chat_id: Full chat identifier (e.g. "5511999999999@c.us")
            text: Message content

        Returns:
            The network-assigned message ID
        """
        pass

    @abstractmethod
    async def get_contact(self, contact_id: str) -> ContactInfo:
        """Resolve contact details for a chat or sender identifier."""
        pass

    @abstractmethod
    async def get_chats(self) -> List[ChatSummary]:
        """Return the account's conversations, most recent first."""
        pass

    @abstractmethod
    def on_event(self, handler: EventHandler) -> None:
        """
        Register the event handler callback.

        Args:
            handler: Async function receiving every ConnectionEvent
        """
        pass

    @property
    def account_id(self) -> Optional[str]:
        """Identifier of the logged-in account, if known."""
        return None


DriverFactory = Callable[[str], MessagingDriver]
