"""Pytest configuration and shared fixtures."""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from companion_gateway.auth.base import AuthToken, BaseTokenProvider
from companion_gateway.chat.state_machine import ChatStateMachine
from companion_gateway.errors import ErrorKind, TransportError
from companion_gateway.transport.base import BaseTransportSession, EventKind
from companion_gateway.transport.reconnect import ReconnectTimer


class FakeTokenProvider(BaseTokenProvider):
    """Hands out numbered tokens; fails with queued errors first."""

    def __init__(self):
        self.calls = 0
        self.errors = []
        self.gate = None
        self.closed = False
        self.lifetime = timedelta(minutes=5)

    async def fetch_token(self) -> AuthToken:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return AuthToken(
            value=f"token-{self.calls}",
            expires_at=datetime.now(timezone.utc) + self.lifetime,
        )

    async def close(self) -> None:
        self.closed = True


class FakeTransportSession(BaseTransportSession):
    """In-memory transport session driven by the test."""

    def __init__(self, generation, on_event, fail=False):
        super().__init__(generation, on_event)
        self.fail = fail
        self.tokens = []
        self.sent = []
        self.open = False
        self.disconnected = False

    @property
    def is_open(self) -> bool:
        return self.open

    async def connect(self, token):
        self.tokens.append(token)
        if self.fail:
            raise TransportError(ErrorKind.HANDSHAKE_FAILED, "connection refused")
        self.open = True
        self._emit(EventKind.OPENED)
        self.send("history", {"limit": 50})

    def send(self, event, payload=None):
        self.sent.append((event, payload or {}))

    async def disconnect(self):
        self.open = False
        self.disconnected = True

    def push(self, kind, payload=None):
        self._emit(kind, payload)

    def drop(self, reason="connection reset"):
        self.open = False
        self._emit(EventKind.CLOSED, detail=reason)


class FakeSessionFactory:
    """Builds FakeTransportSessions; the next `failures` ones refuse to connect."""

    def __init__(self):
        self.sessions = []
        self.failures = 0

    def __call__(self, generation, on_event):
        fail = self.failures > 0
        if fail:
            self.failures -= 1
        session = FakeTransportSession(generation, on_event, fail=fail)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> FakeTransportSession:
        return self.sessions[-1]


class FakeWebSocket:
    """Stands in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = False

    async def send(self, frame):
        self.sent.append(json.loads(frame))

    def feed(self, frame):
        """Queue a frame (dict, raw string, exception, or None for close)."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.incoming.put_nowait(frame)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


@pytest.fixture
def token_provider():
    return FakeTokenProvider()


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def machine(token_provider, session_factory):
    return ChatStateMachine(token_provider, session_factory, reconnect_timer=ReconnectTimer(0.01))


@pytest.fixture
def make_token():
    def _make(value="access-123", minutes=5):
        return AuthToken(value=value, expires_at=datetime.now(timezone.utc) + timedelta(minutes=minutes))
    return _make


@pytest.fixture
def wait_until():
    """Poll a condition on the running loop."""
    async def _wait(predicate, timeout=1.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)
    return _wait
