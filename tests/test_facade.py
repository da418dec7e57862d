"""Tests for ChatFacade."""
import httpx
import pytest
from unittest.mock import MagicMock

from companion_gateway.chat.facade import ChatFacade
from companion_gateway.chat.models import ConnectionStatus, Origin
from companion_gateway.chat.state_machine import ChatStateMachine
from companion_gateway.config import GatewayConfig
from companion_gateway.errors import ErrorKind, UsageError
from companion_gateway.transport.base import EventKind
from companion_gateway.transport.reconnect import ReconnectTimer

from conftest import FakeWebSocket


@pytest.fixture
def facade(machine, token_provider):
    return ChatFacade(machine, token_provider=token_provider)


class TestChatFacade:

    @pytest.mark.asyncio
    async def test_subscribers_get_snapshots(self, facade):
        snapshots = []
        facade.subscribe(snapshots.append)

        await facade.start()
        facade.send("hello")

        statuses = [s.status for s in snapshots]
        assert ConnectionStatus.AUTHENTICATING in statuses
        assert statuses[-1] == ConnectionStatus.CONNECTED
        assert snapshots[-1].messages[-1].text == "hello"
        assert isinstance(snapshots[-1].messages, tuple)

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, facade):
        await facade.start()
        snapshot = facade.snapshot()

        facade.send("after")

        assert snapshot.messages == ()
        assert len(facade.messages) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, facade):
        callback = MagicMock()
        unsubscribe = facade.subscribe(callback)
        unsubscribe()
        unsubscribe()

        await facade.start()

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, facade):
        broken = MagicMock(side_effect=RuntimeError("render failed"))
        working = MagicMock()
        facade.subscribe(broken)
        facade.subscribe(working)

        await facade.start()

        assert working.call_count == broken.call_count
        assert facade.status == ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_send_empty_raises_usage_error(self, facade):
        await facade.start()

        with pytest.raises(UsageError):
            facade.send("   ")

        assert facade.messages == ()

    @pytest.mark.asyncio
    async def test_presence_and_last_error(self, facade, session_factory):
        facade.send("offline")
        assert facade.last_error.kind == ErrorKind.NOT_CONNECTED

        await facade.start()
        session_factory.latest.push(EventKind.LISTENING, {"isListening": True})

        assert facade.presence.is_listening is True
        assert facade.last_error is None

    @pytest.mark.asyncio
    async def test_reconnect_and_disconnect(self, facade, token_provider):
        await facade.start()
        await facade.reconnect()
        assert token_provider.calls == 1

        await facade.disconnect()
        assert facade.status == ConnectionStatus.DISCONNECTED

        await facade.reconnect()
        assert facade.status == ConnectionStatus.CONNECTED
        assert token_provider.calls == 2

    @pytest.mark.asyncio
    async def test_close_releases_provider(self, facade, token_provider):
        async with facade:
            await facade.start()

        assert facade.status == ConnectionStatus.DISCONNECTED
        assert token_provider.closed

    @pytest.mark.asyncio
    async def test_not_configured_disables_chat(self):
        facade = ChatFacade.from_config(GatewayConfig(api_key=None))

        await facade.start()

        assert facade.status == ConnectionStatus.FAILED
        assert facade.last_error.kind == ErrorKind.NOT_CONFIGURED
        assert not facade.is_enabled
        await facade.close()


class TestFromConfig:

    @pytest.mark.asyncio
    async def test_end_to_end_over_fake_socket(self, wait_until):
        ws = FakeWebSocket()
        urls = []

        async def connector(url):
            urls.append(url)
            return ws

        def handler(request):
            return httpx.Response(200, json={"accessToken": "live-token", "expiresIn": 300})

        config = GatewayConfig(bridge_url="http://bridge:38191", api_key="key", history_limit=20)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        facade = ChatFacade.from_config(config, connector=connector, http_client=client)

        await facade.start()

        assert facade.status == ConnectionStatus.CONNECTED
        assert urls == ["ws://bridge:38191/ws/chat?token=live-token"]
        await wait_until(lambda: ws.sent)
        assert ws.sent[0] == {"type": "history", "limit": 20}

        ws.feed({"type": "history", "messages": [
            {"id": "1", "text": "hi", "from": "user", "time": "10:00"},
            {"id": "2", "text": "hey there", "from": "bot", "time": "10:01"},
        ]})
        await wait_until(lambda: len(facade.messages) == 2)

        facade.send("how are you?")
        await wait_until(lambda: len(ws.sent) == 2)
        assert ws.sent[1] == {"type": "message", "text": "how are you?", "clientId": "local-1"}

        ws.feed({"type": "message", "id": "3", "text": "how are you?", "from": "user", "clientId": "local-1"})
        ws.feed({"type": "message", "id": "4", "text": "great", "isBot": True})
        await wait_until(lambda: len(facade.messages) == 4)

        assert [m.id for m in facade.messages] == ["1", "2", "3", "4"]
        assert facade.messages[-1].origin == Origin.BOT
        assert facade.presence.is_typing is False

        await facade.close()
        assert ws.closed
        await client.aclose()


def test_facade_wires_reconnect_delay():
    facade = ChatFacade.from_config(GatewayConfig(api_key="k", reconnect_delay=7.5))

    assert isinstance(facade._machine, ChatStateMachine)
    assert isinstance(facade._machine.reconnect_timer, ReconnectTimer)
    assert facade._machine.reconnect_timer.delay == 7.5
