"""Gateway error taxonomy.

Every error that may reach a transport adapter derives from GatewayError so
the API layer can turn it into a structured response instead of leaking the
raw exception.
"""

from typing import Any, Dict, Iterable, Optional

from .models import SessionState


class GatewayError(Exception):
    """Base class for errors surfaced to gateway callers."""

    status_code: int = 500
    error_type: str = "gateway_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> Dict[str, Any]:
        """Render the error as the JSON body returned by the HTTP API."""
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "type": self.error_type,
        }
        if self.details:
            body["details"] = self.details
        return body


class NotConnected(GatewayError):
    """Operation attempted while the session is not READY."""

    status_code = 400
    error_type = "not_connected"

    def __init__(self, state: SessionState):
        super().__init__("WhatsApp is not connected")
        self.state = state

    @property
    def status_hint(self) -> str:
        if self.state is SessionState.AWAITING_LOGIN:
            return "waiting_qr"
        if self.state is SessionState.DISCONNECTED:
            return "disconnected"
        return "initializing"

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["status"] = self.status_hint
        body["state"] = self.state.value
        return body


class MissingParameter(GatewayError):
    """Caller input is incomplete."""

    status_code = 400
    error_type = "missing_parameter"

    def __init__(self, names: Iterable[str]):
        self.names = list(names)
        super().__init__(
            f"Missing parameters: {', '.join(self.names)} required"
        )


class SendFailed(GatewayError):
    """The network rejected or failed an outbound send."""

    status_code = 500
    error_type = "send_failed"

    def __init__(self, details: str):
        super().__init__("Error sending message", details=details)


class LookupFailed(GatewayError):
    """A contact or chat lookup failed at the network layer."""

    status_code = 502
    error_type = "lookup_failed"

    def __init__(self, details: str):
        super().__init__("Lookup failed", details=details)


class AuthFailure(GatewayError):
    """The messaging network rejected the session credentials."""

    status_code = 401
    error_type = "auth_failure"


class SessionEraseExhausted(GatewayError):
    """Session artifacts could not be removed within the retry budget."""

    error_type = "session_erase_exhausted"

    def __init__(self, path: str, attempts: int):
        super().__init__(
            f"Could not erase session at {path} after {attempts} attempts"
        )
        self.path = path
        self.attempts = attempts


class RelayUnreachable(GatewayError):
    """The external automation webhook could not be reached."""

    status_code = 502
    error_type = "relay_unreachable"

    def __init__(self, details: str):
        super().__init__("Webhook relay failed", details=details)


class InternalError(GatewayError):
    """Unexpected failure inside a gateway operation."""

    error_type = "internal_error"
