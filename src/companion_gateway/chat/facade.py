"""
ChatFacade - the single interface for the presentation layer.

Reads return immutable snapshots; commands go through the state machine.
Subscribers are called with a fresh SessionSnapshot after every change.

Usage:
    async with ChatFacade.from_config(load_config()) as chat:
        unsubscribe = chat.subscribe(lambda snap: print(snap.status))
        await chat.start()
        chat.send("Hello!")
"""

import functools
import logging
from typing import Callable, Optional

import httpx

from ..auth.base import BaseTokenProvider
from ..auth.bridge_provider import BridgeTokenProvider
from ..config import GatewayConfig
from ..errors import ErrorKind, GatewayError
from ..transport.reconnect import ReconnectTimer
from ..transport.websocket_session import Connector, WebSocketSession
from .models import ConnectionStatus, Message, PresenceFlags, SessionSnapshot
from .state_machine import ChatStateMachine, SessionFactory

logger = logging.getLogger(__name__)

Subscriber = Callable[[SessionSnapshot], None]


class ChatFacade:
    """
    Read/command surface over ChatStateMachine.

    Example:
        chat = ChatFacade.from_config(config)
        await chat.start()
        chat.send("Hi!")
        chat.messages   # tuple of Message
        await chat.close()
    """

    def __init__(self, machine: ChatStateMachine, token_provider: Optional[BaseTokenProvider] = None):
        self._machine = machine
        self._token_provider = token_provider
        self._subscribers: list[Subscriber] = []
        machine.on_change = self._publish

    @classmethod
    def from_config(
        cls,
        config: Optional[GatewayConfig] = None,
        connector: Optional[Connector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ChatFacade":
        """
        Wire a facade with the bridge token provider and WebSocket sessions.

        Args:
            config: Gateway configuration (defaults to built-in defaults)
            connector: Replacement for websockets.connect
            http_client: HTTP client for the token exchange (caller closes it)
        """
        config = config or GatewayConfig()
        provider = BridgeTokenProvider.from_config(config, client=http_client)
        factory: SessionFactory = functools.partial(
            _make_websocket_session, config, connector
        )
        machine = ChatStateMachine(
            provider,
            factory,
            reconnect_timer=ReconnectTimer(config.reconnect_delay),
        )
        if not config.is_configured:
            logger.warning("No API key configured, chat is disabled")
        return cls(machine, token_provider=provider)

    # ==================== Read model ====================

    def snapshot(self) -> SessionSnapshot:
        return self._machine.session.snapshot()

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._machine.session.messages)

    @property
    def status(self) -> ConnectionStatus:
        return self._machine.session.status

    @property
    def presence(self) -> PresenceFlags:
        return self._machine.session.presence

    @property
    def last_error(self) -> Optional[GatewayError]:
        return self._machine.session.last_error

    @property
    def is_enabled(self) -> bool:
        """False once the core is disabled for lack of configuration."""
        error = self.last_error
        disabled = error is not None and error.kind == ErrorKind.NOT_CONFIGURED
        return not (self.status == ConnectionStatus.FAILED and disabled)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a state-change callback.

        Returns:
            A function that removes the callback again
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ==================== Commands ====================

    async def start(self) -> None:
        """Cold start: authenticate and open the channel."""
        await self._machine.connect()

    def send(self, text: str) -> Message:
        """
        Send a chat message (optimistic echo).

        Raises:
            UsageError: EMPTY_MESSAGE; state is left untouched
        """
        return self._machine.send(text)

    def request_history(self, limit: int = 50) -> bool:
        return self._machine.request_history(limit)

    def notify_typing(self) -> bool:
        return self._machine.notify_typing()

    async def reconnect(self) -> None:
        await self._machine.reconnect()

    async def disconnect(self) -> None:
        await self._machine.disconnect()

    async def close(self) -> None:
        """Disconnect, cancel timers and release the HTTP client."""
        await self._machine.disconnect()
        await self._machine.reconnect_timer.wait()
        if self._token_provider is not None:
            await self._token_provider.close()

    async def __aenter__(self) -> "ChatFacade":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Subscriber error: {e}")


def _make_websocket_session(config: GatewayConfig, connector, generation, on_event) -> WebSocketSession:
    return WebSocketSession(
        config.ws_url,
        generation,
        on_event,
        token_param=config.token_param,
        history_limit=config.history_limit,
        connector=connector,
    )
