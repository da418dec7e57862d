"""
Conversation state models.

Session is the mutable aggregate owned by the state machine.
SessionSnapshot is the immutable read model handed to the presentation
layer: it can be kept and compared, never used to change state.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..errors import GatewayError


class Origin(str, Enum):
    USER = "user"
    BOT = "bot"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


def wall_clock() -> str:
    """Local time as shown next to a message (HH:MM)."""
    return datetime.now().strftime("%H:%M")


@dataclass(frozen=True)
class Message:
    """
    A chat message.

    Attributes:
        id: Unique within the session. "local-N" for optimistic user
            messages until the server acknowledges them.
        text: Message content
        origin: USER or BOT
        timestamp: Wall-clock string
    """
    id: str
    text: str
    origin: Origin
    timestamp: str = field(default_factory=wall_clock)

    @property
    def is_bot(self) -> bool:
        return self.origin == Origin.BOT


@dataclass(frozen=True)
class PresenceFlags:
    is_typing: bool = False
    is_listening: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session at one instant."""
    status: ConnectionStatus
    messages: tuple[Message, ...]
    presence: PresenceFlags
    last_error: Optional[GatewayError] = None
    server_info: Optional[dict[str, Any]] = None


@dataclass
class Session:
    """
    The conversation aggregate.

    Message order is insertion order, never re-sorted by timestamp.
    """
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    messages: list[Message] = field(default_factory=list)
    presence: PresenceFlags = field(default_factory=PresenceFlags)
    last_error: Optional[GatewayError] = None
    server_info: Optional[dict[str, Any]] = None

    def reset_presence(self) -> None:
        self.presence = PresenceFlags()

    def set_presence(self, **changes: bool) -> None:
        self.presence = replace(self.presence, **changes)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            messages=tuple(self.messages),
            presence=self.presence,
            last_error=self.last_error,
            server_info=dict(self.server_info) if self.server_info is not None else None,
        )
