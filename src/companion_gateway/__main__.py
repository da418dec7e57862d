#!/usr/bin/env python3
"""
Terminal chat client for the companion bridge.

Usage:
    python -m companion_gateway                       # Use config/config.yaml + env
    python -m companion_gateway --url http://host:38191
    python -m companion_gateway --debug

Commands inside the client:
    /history N   Reload the last N messages
    /reconnect   Force a new connection
    /quit        Leave
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .chat import ChatFacade, ConnectionStatus, SessionSnapshot
from .config import load_config
from .errors import UsageError

logger = logging.getLogger(__name__)


class TerminalView:
    """Prints what changed between two snapshots."""

    def __init__(self):
        self._shown: set[str] = set()
        self._status = None
        self._typing = False

    def render(self, snapshot: SessionSnapshot) -> None:
        if snapshot.status != self._status:
            self._status = snapshot.status
            print(f"[{snapshot.status.value}]")

        for message in snapshot.messages:
            if message.id in self._shown:
                continue
            self._shown.add(message.id)
            if message.is_bot:
                print(f"{message.timestamp} bot: {message.text}")

        if snapshot.presence.is_typing and not self._typing:
            print("... typing")
        self._typing = snapshot.presence.is_typing


async def run(chat: ChatFacade) -> None:
    view = TerminalView()
    chat.subscribe(view.render)
    await chat.start()

    if not chat.is_enabled:
        print("❌ Chat disabled: set COMPANION_API_KEY or gateway.api_key")
        return

    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        line = line.strip()

        if line == "/quit":
            break
        elif line == "/reconnect":
            await chat.reconnect()
        elif line.startswith("/history"):
            parts = line.split()
            limit = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 50
            if not chat.request_history(limit):
                print("⚠️ Not connected")
        elif line:
            try:
                chat.send(line)
            except UsageError as e:
                print(f"⚠️ {e}")
            if chat.status != ConnectionStatus.CONNECTED:
                print("⚠️ Not connected, message kept locally")


def main():
    parser = argparse.ArgumentParser(
        description="Companion chat - terminal client for the bridge"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Config file (default: config/config.yaml)"
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Bridge base URL (overrides config)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    # Reduce noise from client libraries
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    config = load_config(args.config)
    if args.url:
        config.bridge_url = args.url.rstrip("/")

    logger.info("=" * 50)
    logger.info("💬 Companion Chat")
    logger.info("=" * 50)
    logger.info(f"   Bridge: {config.bridge_url}")
    logger.info(f"   Channel: {config.ws_url}")
    logger.info(f"   API key: {'set' if config.is_configured else 'missing'}")
    logger.info("=" * 50)

    async def session():
        async with ChatFacade.from_config(config) as chat:
            await run(chat)

    try:
        asyncio.run(session())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
