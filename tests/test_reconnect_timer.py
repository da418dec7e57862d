"""Tests for ReconnectTimer."""
import asyncio

import pytest

from companion_gateway.transport.reconnect import ReconnectTimer


class TestReconnectTimer:

    @pytest.mark.asyncio
    async def test_single_pending_attempt(self):
        calls = []

        async def attempt():
            calls.append("attempt")

        timer = ReconnectTimer(0.01)
        assert timer.schedule(attempt) is True
        assert timer.schedule(attempt) is False
        assert timer.pending

        await asyncio.sleep(0.05)
        await timer.wait()

        assert calls == ["attempt"]
        assert not timer.pending

    @pytest.mark.asyncio
    async def test_can_rearm_after_firing(self):
        calls = []

        async def attempt():
            calls.append(len(calls))
            if len(calls) < 3:
                timer.schedule(attempt)

        timer = ReconnectTimer(0.005)
        timer.schedule(attempt)
        await asyncio.sleep(0.1)

        assert calls == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []

        async def attempt():
            calls.append(1)

        timer = ReconnectTimer(0.01)
        timer.schedule(attempt)
        timer.cancel()
        await asyncio.sleep(0.05)

        assert calls == []
        assert not timer.pending
