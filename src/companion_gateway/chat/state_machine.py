"""
Chat state machine.

Owns the Session aggregate and is the only thing that mutates it, in
response to transport events, token provider results and commands from
ChatFacade.

Status transitions:
    DISCONNECTED   --connect-->                     AUTHENTICATING
    AUTHENTICATING --token + channel opened-->      CONNECTED
    AUTHENTICATING --token fetch fails-->           FAILED
    CONNECTED      --channel closed (not local)-->  RECONNECTING
    RECONNECTING   --reconnect succeeds-->          CONNECTED
    RECONNECTING   --attempt fails-->               RECONNECTING (re-armed)
    any            --disconnect-->                  DISCONNECTED

Every connection attempt gets a new generation. Transport events and
token results belonging to an older generation are dropped, so a
superseded session can never touch current state.
"""

import logging
import uuid
from collections import OrderedDict
from typing import Callable, Optional

from pydantic import ValidationError

from ..auth.base import BaseTokenProvider
from ..errors import AuthError, ErrorKind, GatewayError, TransportError, UsageError
from ..protocol import (
    HistoryPayload,
    ListeningPayload,
    ServerMessage,
    StatePayload,
    TypingPayload,
)
from ..transport.base import BaseTransportSession, EventHandler, EventKind, TransportEvent
from ..transport.reconnect import ReconnectTimer
from .models import ConnectionStatus, Message, Origin, Session, wall_clock

logger = logging.getLogger(__name__)

# (generation, event handler) -> transport session
SessionFactory = Callable[[int, EventHandler], BaseTransportSession]


def message_from_server(payload: ServerMessage) -> Message:
    """Convert a bridge message into a Message, filling missing fields."""
    return Message(
        id=str(payload.id) if payload.id is not None else f"srv-{uuid.uuid4().hex}",
        text=payload.text,
        origin=Origin.BOT if payload.from_bot else Origin.USER,
        timestamp=payload.time or wall_clock(),
    )


class ChatStateMachine:
    """
    Conversation and connection state for one chat session.

    Attributes:
        session: The Session aggregate (read it through snapshot())
        on_change: Called with no arguments after every state change
    """

    def __init__(
        self,
        token_provider: BaseTokenProvider,
        session_factory: SessionFactory,
        reconnect_timer: Optional[ReconnectTimer] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.session = Session()
        self.on_change = on_change
        self._token_provider = token_provider
        self._session_factory = session_factory
        self._reconnect_timer = reconnect_timer or ReconnectTimer()
        self._transport: Optional[BaseTransportSession] = None
        self._generation = 0
        self._attempt_in_flight = False
        self._local_seq = 0
        # local id -> text, for messages sent but not yet acknowledged
        self._pending: "OrderedDict[str, str]" = OrderedDict()

        self._handlers = {
            EventKind.OPENED: self._on_opened,
            EventKind.SERVER_HELLO: self._on_server_hello,
            EventKind.MESSAGE: self._on_message,
            EventKind.HISTORY: self._on_history,
            EventKind.TYPING: self._on_typing,
            EventKind.LISTENING: self._on_listening,
            EventKind.STATE: self._on_state,
            EventKind.CLOSED: self._on_closed,
            EventKind.TRANSPORT_ERROR: self._on_transport_error,
        }

    @property
    def status(self) -> ConnectionStatus:
        return self.session.status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def transport(self) -> Optional[BaseTransportSession]:
        return self._transport

    @property
    def reconnect_timer(self) -> ReconnectTimer:
        return self._reconnect_timer

    # ==================== Commands ====================

    async def connect(self) -> None:
        """Start the first connection. Only acts from DISCONNECTED."""
        if self.session.status != ConnectionStatus.DISCONNECTED:
            logger.debug(f"connect() ignored while {self.session.status.value}")
            return
        self._set_status(ConnectionStatus.AUTHENTICATING)
        self._notify()
        await self._open_session()

    async def reconnect(self) -> None:
        """
        Replace the transport session with a fresh one.

        No-op while CONNECTED or while an attempt is in flight. From
        FAILED the error is cleared and authentication starts over.
        Messages are preserved.
        """
        status = self.session.status
        if status == ConnectionStatus.CONNECTED or self._attempt_in_flight:
            logger.debug(f"reconnect() ignored while {status.value}")
            return

        self._reconnect_timer.cancel()
        if status == ConnectionStatus.FAILED:
            self.session.last_error = None
        if status != ConnectionStatus.RECONNECTING:
            self._set_status(ConnectionStatus.AUTHENTICATING)
        self._notify()
        await self._open_session()

    async def disconnect(self) -> None:
        """Close the session for good. No automatic reconnect follows."""
        self._generation += 1
        self._attempt_in_flight = False
        self._reconnect_timer.cancel()
        self._pending.clear()
        transport, self._transport = self._transport, None

        self.session.reset_presence()
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._notify()

        if transport is not None:
            await transport.disconnect()

    def send(self, text: str) -> Message:
        """
        Append the user's message immediately and forward it if connected.

        Returns:
            The optimistic Message

        Raises:
            UsageError: EMPTY_MESSAGE for empty or whitespace-only text
        """
        text = text.strip()
        if not text:
            raise UsageError(ErrorKind.EMPTY_MESSAGE, "message is empty")

        self._local_seq += 1
        message = Message(id=f"local-{self._local_seq}", text=text, origin=Origin.USER)
        self.session.messages.append(message)

        if self._can_send():
            self._transport.send("message", {"text": text, "clientId": message.id})
            self._pending[message.id] = text
            self.session.set_presence(is_typing=True)
        else:
            logger.warning("WebSocket not connected, message kept locally")
            self.session.last_error = UsageError(ErrorKind.NOT_CONNECTED, "message not delivered")

        self._notify()
        return message

    def request_history(self, limit: int = 50) -> bool:
        """Ask the server for the last `limit` messages. False if not connected."""
        if not self._can_send():
            self.session.last_error = UsageError(ErrorKind.NOT_CONNECTED, "history not requested")
            self._notify()
            return False
        self._transport.send("history", {"limit": limit})
        return True

    def notify_typing(self) -> bool:
        """Tell the server the user is typing. Silent no-op if not connected."""
        if not self._can_send():
            return False
        self._transport.send("typing", {})
        return True

    # ==================== Event ingestion ====================

    def handle_event(self, event: TransportEvent) -> None:
        """Apply one transport event. Events from older generations are dropped."""
        if event.generation != self._generation:
            logger.debug(
                f"Dropping stale {event.kind.value} event "
                f"(generation {event.generation}, current {self._generation})"
            )
            return
        try:
            self._handlers[event.kind](event)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {event.kind.value} payload: {e.error_count()} error(s)")
            return
        self._notify()

    def _on_opened(self, event: TransportEvent) -> None:
        self.session.last_error = None
        self._set_status(ConnectionStatus.CONNECTED)

    def _on_server_hello(self, event: TransportEvent) -> None:
        logger.info(f"Server hello: {event.payload}")
        self.session.server_info = dict(event.payload)

    def _on_message(self, event: TransportEvent) -> None:
        payload = ServerMessage.model_validate(event.payload)
        if payload.from_bot:
            self.session.messages.append(message_from_server(payload))
            self.session.set_presence(is_typing=False)
            return

        local_id = self._match_pending(payload)
        if local_id is None:
            # A user message we did not send from here (another client)
            self.session.messages.append(message_from_server(payload))
            return
        self._acknowledge(local_id, payload)

    def _on_history(self, event: TransportEvent) -> None:
        payload = HistoryPayload.model_validate(event.payload)
        self.session.messages = [message_from_server(m) for m in payload.messages]
        self._pending.clear()
        logger.info(f"Loaded {len(self.session.messages)} messages from history")

    def _on_typing(self, event: TransportEvent) -> None:
        payload = TypingPayload.model_validate(event.payload)
        self.session.set_presence(is_typing=payload.is_typing is not False)

    def _on_listening(self, event: TransportEvent) -> None:
        payload = ListeningPayload.model_validate(event.payload)
        self.session.set_presence(is_listening=payload.is_listening is not False)

    def _on_state(self, event: TransportEvent) -> None:
        # Bot state update (speaking, thinking, ...)
        payload = StatePayload.model_validate(event.payload)
        self.session.set_presence(is_typing=payload.state == "speaking")

    def _on_closed(self, event: TransportEvent) -> None:
        self._transport = None
        self._pending.clear()
        self._record_error(TransportError(ErrorKind.CLOSED, event.detail))
        self._enter_reconnecting()

    def _on_transport_error(self, event: TransportEvent) -> None:
        logger.warning(f"Transport error: {event.detail}")
        self._record_error(TransportError(ErrorKind.CLOSED, event.detail))

    # ==================== Internals ====================

    async def _open_session(self) -> None:
        """One connection attempt: fresh token, new transport session."""
        self._generation += 1
        generation = self._generation
        self._attempt_in_flight = True

        previous, self._transport = self._transport, None
        if previous is not None:
            await previous.disconnect()

        try:
            try:
                token = await self._token_provider.fetch_token()
            except AuthError as e:
                if self._is_stale(generation):
                    return
                self._on_auth_failure(e)
                return

            if self._is_stale(generation):
                logger.debug(f"Discarding token fetched for generation {generation}")
                return
            if token.is_expired:
                logger.warning(f"Token for generation {generation} is already expired")

            transport = self._session_factory(generation, self.handle_event)
            self._transport = transport
            try:
                await transport.connect(token)
            except TransportError as e:
                if self._is_stale(generation):
                    return
                self._transport = None
                self._record_error(e)
                self._enter_reconnecting()
                self._notify()
        finally:
            if generation == self._generation:
                self._attempt_in_flight = False

    def _on_auth_failure(self, error: AuthError) -> None:
        self._record_error(error)
        if error.kind == ErrorKind.NOT_CONFIGURED or self.session.status != ConnectionStatus.RECONNECTING:
            # Terminal until the caller explicitly reconnects
            self._set_status(ConnectionStatus.FAILED)
        else:
            self._reconnect_timer.schedule(self._reconnect_attempt)
        self._notify()

    def _enter_reconnecting(self) -> None:
        self.session.reset_presence()
        self._set_status(ConnectionStatus.RECONNECTING)
        self._reconnect_timer.schedule(self._reconnect_attempt)

    async def _reconnect_attempt(self) -> None:
        if self.session.status != ConnectionStatus.RECONNECTING or self._attempt_in_flight:
            return
        await self._open_session()

    def _match_pending(self, payload: ServerMessage) -> Optional[str]:
        """Find the optimistic message a USER echo acknowledges."""
        for candidate in (payload.client_id, payload.id):
            if candidate is not None and str(candidate) in self._pending:
                return str(candidate)
        if payload.id is not None or payload.client_id is not None:
            # Identified echoes that match nothing come from another client
            return None
        for local_id, text in self._pending.items():
            if text == payload.text:
                return local_id
        return None

    def _acknowledge(self, local_id: str, payload: ServerMessage) -> None:
        del self._pending[local_id]
        if payload.id is None or str(payload.id) == local_id:
            return
        for index, message in enumerate(self.session.messages):
            if message.id == local_id:
                self.session.messages[index] = Message(
                    id=str(payload.id),
                    text=message.text,
                    origin=Origin.USER,
                    timestamp=message.timestamp,
                )
                logger.debug(f"Acknowledged {local_id} as {payload.id}")
                return

    def _can_send(self) -> bool:
        return (
            self.session.status == ConnectionStatus.CONNECTED
            and self._transport is not None
            and self._transport.is_open
        )

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _record_error(self, error: GatewayError) -> None:
        self.session.last_error = error

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self.session.status:
            logger.info(f"Chat status: {self.session.status.value} -> {status.value}")
            self.session.status = status

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
