"""
Fixed-delay, single-shot reconnect timer.

Each schedule() arms at most one pending attempt; scheduling again while
one is pending is a no-op. Whether to arm it after a failure is the
caller's decision. There is no backoff and no attempt limit.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ReconnectTimer:
    """
    Arms one delayed reconnect attempt on the running event loop.

    Attributes:
        delay: Seconds between a failure and the next attempt
    """

    def __init__(self, delay: float = 2.0):
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """True while an attempt is armed but has not fired yet."""
        return self._handle is not None

    def schedule(self, attempt: Callable[[], Awaitable[None]]) -> bool:
        """
        Arm one attempt after `delay` seconds.

        Returns:
            False if an attempt was already pending
        """
        if self.pending:
            return False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire, attempt)
        logger.info(f"Reconnecting in {self.delay}s...")
        return True

    def cancel(self) -> None:
        """Disarm the pending attempt, if any. A fired attempt keeps running."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait(self) -> None:
        """Wait for the last fired attempt to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _fire(self, attempt: Callable[[], Awaitable[None]]) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(attempt())
        self._task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Reconnect attempt crashed: {task.exception()!r}")
