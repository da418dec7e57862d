# Transport Module - persistent channel to the bridge
from .base import BaseTransportSession, EventHandler, EventKind, TransportEvent
from .reconnect import ReconnectTimer
from .websocket_session import SessionState, WebSocketSession

__all__ = [
    "BaseTransportSession",
    "EventHandler",
    "EventKind",
    "TransportEvent",
    "ReconnectTimer",
    "SessionState",
    "WebSocketSession",
]
