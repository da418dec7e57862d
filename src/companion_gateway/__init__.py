"""
Companion Gateway - realtime chat client for the companion bridge.

Authenticates against the bridge, keeps one persistent WebSocket channel,
maintains conversation and presence state and recovers from dropped
connections and expired tokens.
"""

from .chat import ChatFacade, ConnectionStatus, Message, Origin, PresenceFlags, SessionSnapshot
from .config import GatewayConfig, load_config
from .errors import AuthError, ErrorKind, GatewayError, TransportError, UsageError

__version__ = "0.1.0"

__all__ = [
    "ChatFacade",
    "ConnectionStatus",
    "Message",
    "Origin",
    "PresenceFlags",
    "SessionSnapshot",
    "GatewayConfig",
    "load_config",
    "AuthError",
    "ErrorKind",
    "GatewayError",
    "TransportError",
    "UsageError",
]
