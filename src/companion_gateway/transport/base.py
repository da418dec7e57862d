"""
Base module for transport sessions.

A transport session owns exactly one logical connection to the bridge.
It is single use: once closed it is replaced, never reopened. Everything
it observes is reported as a TransportEvent tagged with the session's
generation, so the consumer can drop events from superseded sessions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..auth.base import AuthToken


class EventKind(str, Enum):
    OPENED = "opened"
    SERVER_HELLO = "serverHello"
    MESSAGE = "message"
    HISTORY = "history"
    TYPING = "typing"
    LISTENING = "listening"
    STATE = "state"
    CLOSED = "closed"
    TRANSPORT_ERROR = "transportError"


@dataclass(frozen=True)
class TransportEvent:
    """
    Something a transport session observed.

    Attributes:
        kind: Event kind
        generation: Generation of the session that produced it
        payload: Frame fields (without the type) for server events
        detail: Close reason or error detail
    """
    kind: EventKind
    generation: int
    payload: dict[str, Any] = field(default_factory=dict)
    detail: str = ""


EventHandler = Callable[[TransportEvent], None]


class BaseTransportSession(ABC):
    """
    Abstract base class for transport sessions.

    Event handlers are called synchronously, in the order the channel
    received the frames, and must run to completion without suspending.
    """

    def __init__(self, generation: int, on_event: EventHandler):
        self.generation = generation
        self._on_event = on_event

    @abstractmethod
    async def connect(self, token: AuthToken) -> None:
        """
        Open the channel authenticated with `token`.

        A second call while connecting or connected is a no-op. On
        success an OPENED event is emitted and history is requested.

        Raises:
            TransportError: HANDSHAKE_FAILED if the channel cannot be opened
        """
        pass

    @abstractmethod
    def send(self, event: str, payload: Optional[dict] = None) -> None:
        """Queue an event for the server. Fire-and-forget, never blocks."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel locally. No CLOSED event follows."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    def _emit(self, kind: EventKind, payload: Optional[dict] = None, detail: str = "") -> None:
        self._on_event(TransportEvent(kind, self.generation, payload or {}, detail))
