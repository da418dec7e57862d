"""
WebSocket transport session.

One instance = one connection attempt to the bridge. The access token
travels as a query parameter on the WebSocket URL. Outgoing events go
through a queue drained by a send loop, incoming frames are decoded by a
receive loop and reported as TransportEvents.

Usage:
    session = WebSocketSession("ws://localhost:38191/ws/chat", 1, on_event)
    await session.connect(token)
    session.send("message", {"text": "Hello!"})
    await session.disconnect()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..auth.base import AuthToken
from ..errors import ErrorKind, TransportError
from ..protocol import decode_frame, encode_frame
from .base import BaseTransportSession, EventHandler, EventKind

logger = logging.getLogger(__name__)

# Server frame type -> event kind
INBOUND_EVENTS = {
    "hello": EventKind.SERVER_HELLO,
    "serverHello": EventKind.SERVER_HELLO,
    "message": EventKind.MESSAGE,
    "history": EventKind.HISTORY,
    "typing": EventKind.TYPING,
    "listening": EventKind.LISTENING,
    "state": EventKind.STATE,
}

Connector = Callable[[str], Awaitable[Any]]

# asyncio.TimeoutError is not an OSError before Python 3.11
CONNECTION_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class WebSocketSession(BaseTransportSession):
    """
    Transport session over a WebSocket.

    Attributes:
        url: WebSocket URL of the bridge chat endpoint (without token)
        token_param: Query parameter name carrying the access token
        history_limit: Number of messages requested right after opening
    """

    def __init__(
        self,
        url: str,
        generation: int,
        on_event: EventHandler,
        token_param: str = "token",
        history_limit: int = 50,
        connector: Optional[Connector] = None,
    ):
        super().__init__(generation, on_event)
        self.url = url
        self.token_param = token_param
        self.history_limit = history_limit
        # websockets.connect is awaitable; tests inject a fake
        self._connector = connector or websockets.connect
        self._ws = None
        self._state = SessionState.IDLE
        self._closing = False
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    async def connect(self, token: AuthToken) -> None:
        if self._state in (SessionState.CONNECTING, SessionState.OPEN):
            logger.debug(f"Session {self.generation} already {self._state.value}, ignoring connect")
            return
        if self._state == SessionState.CLOSED:
            raise TransportError(ErrorKind.HANDSHAKE_FAILED, "session already closed")

        self._state = SessionState.CONNECTING
        logger.info(f"Connecting to {self.url} (generation {self.generation})...")

        try:
            ws = await self._connector(self._authenticated_url(token))
        except CONNECTION_ERRORS as e:
            self._state = SessionState.CLOSED
            logger.warning(f"WebSocket handshake failed: {e}")
            raise TransportError(ErrorKind.HANDSHAKE_FAILED, str(e) or type(e).__name__) from e

        if self._closing:
            # disconnect() ran while the handshake was in flight
            await self._close_socket(ws)
            self._state = SessionState.CLOSED
            return

        self._ws = ws
        self._state = SessionState.OPEN
        logger.info("WebSocket connected!")
        self._emit(EventKind.OPENED)

        self.send("history", {"limit": self.history_limit})
        self._tasks = [
            asyncio.create_task(self._send_loop()),
            asyncio.create_task(self._receive_loop()),
        ]

    def send(self, event: str, payload: Optional[dict] = None) -> None:
        if self._state != SessionState.OPEN:
            logger.warning(f"WebSocket not connected, dropping '{event}'")
            return
        self._outbox.put_nowait(encode_frame(event, payload))

    async def disconnect(self) -> None:
        if self._closing:
            return
        self._closing = True

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._ws is not None:
            await self._close_socket(self._ws)
        self._state = SessionState.CLOSED
        logger.info(f"Session {self.generation} disconnected")

    def _authenticated_url(self, token: AuthToken) -> str:
        parts = urlsplit(self.url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.append((self.token_param, token.value))
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def _send_loop(self):
        """Send queued events in order."""
        while True:
            frame = await self._outbox.get()
            try:
                await self._ws.send(frame)
            except ConnectionClosed:
                # The receive loop reports the closure
                break
            except CONNECTION_ERRORS as e:
                logger.error(f"Send error: {e}")
                break

    async def _receive_loop(self):
        """Receive frames until the channel closes."""
        reason = "connection closed by server"
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            reason = str(e) or reason
        except CONNECTION_ERRORS as e:
            reason = str(e) or type(e).__name__
            logger.error(f"Receive error: {reason}")
            self._emit(EventKind.TRANSPORT_ERROR, detail=reason)

        if self._closing:
            return
        self._state = SessionState.CLOSED
        for task in self._tasks:
            if task is not asyncio.current_task():
                task.cancel()
        logger.warning(f"WebSocket closed: {reason}")
        self._emit(EventKind.CLOSED, detail=reason)

    def _dispatch(self, raw) -> None:
        """Decode one frame and report it."""
        try:
            event, payload = decode_frame(raw)
        except ValueError as e:
            logger.warning(f"Failed to parse frame: {e}")
            return

        kind = INBOUND_EVENTS.get(event)
        if kind is None:
            logger.debug(f"Unknown frame type: {event}")
            return
        self._emit(kind, payload)

    @staticmethod
    async def _close_socket(ws) -> None:
        try:
            await ws.close()
        except CONNECTION_ERRORS as e:
            logger.debug(f"Error while closing WebSocket: {e}")
