# Chat Module - conversation state and the facade used by the UI
from .models import ConnectionStatus, Message, Origin, PresenceFlags, Session, SessionSnapshot
from .state_machine import ChatStateMachine
from .facade import ChatFacade

__all__ = [
    "ChatFacade",
    "ChatStateMachine",
    "ConnectionStatus",
    "Message",
    "Origin",
    "PresenceFlags",
    "Session",
    "SessionSnapshot",
]
