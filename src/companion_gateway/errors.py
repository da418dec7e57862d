"""
Error taxonomy for the chat gateway client.

Every failure the core can observe is a GatewayError carrying an ErrorKind.
Auth and transport errors are caught by the state machine and recorded on
the session; usage errors go back to the caller of ChatFacade.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """What went wrong, independent of where."""
    NOT_CONFIGURED = "not_configured"
    REQUEST_FAILED = "request_failed"
    HANDSHAKE_FAILED = "handshake_failed"
    CLOSED = "closed"
    NOT_CONNECTED = "not_connected"
    EMPTY_MESSAGE = "empty_message"


class GatewayError(Exception):
    """
    Base class for all chat gateway errors.

    Attributes:
        kind: The ErrorKind of this failure
        detail: Human readable detail (server message, close reason, ...)
    """

    def __init__(self, kind: ErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    def __eq__(self, other) -> bool:
        if not isinstance(other, GatewayError):
            return NotImplemented
        return type(self) is type(other) and (self.kind, self.detail) == (other.kind, other.detail)

    def __hash__(self) -> int:
        return hash((type(self), self.kind, self.detail))


class AuthError(GatewayError):
    """Token exchange failed (NOT_CONFIGURED or REQUEST_FAILED)."""


class TransportError(GatewayError):
    """Channel failure (HANDSHAKE_FAILED or CLOSED)."""


class UsageError(GatewayError):
    """Caller misuse (NOT_CONNECTED or EMPTY_MESSAGE)."""
