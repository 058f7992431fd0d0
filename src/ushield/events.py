"""
Change notification channel.

Backend change events are pushed as tokens onto an asyncio queue and
consumed by one dedicated task that performs the refresh. Event arrival
rate is thereby decoupled from refresh execution, and refreshes never
overlap each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

from ushield.gateway.base import Subscription


logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Coroutine[Any, Any, None]]


class ChangeEventChannel:
    """
    Queue-backed consumer for "device topology changed" tokens.

    Tokens that pile up while a refresh is running are coalesced into a
    single follow-up refresh; a redundant refresh is harmless, a skipped
    one is not.
    """

    def __init__(self, refresh: RefreshCallback) -> None:
        """
        Initialize channel.

        Args:
            refresh: Coroutine function run once per drained batch of tokens
        """
        self._refresh = refresh
        self._queue: asyncio.Queue[None] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._refresh_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def refresh_count(self) -> int:
        """Number of refreshes performed so far."""
        return self._refresh_count

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the consumer task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._consume())
        logger.debug("Change event consumer started")

    async def stop(self) -> None:
        """Cancel the consumer task and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Change event consumer stopped")

    def notify(self) -> None:
        """Event handler: enqueue one token. Safe to call at any rate."""
        self._queue.put_nowait(None)

    async def join(self) -> None:
        """Wait until every queued token has been handled."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            await self._queue.get()
            drained = 1
            while True:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                drained += 1

            try:
                await self._refresh()
                self._refresh_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Gateway failures are reported by the refresh itself
                logger.error("Device refresh after change event failed: %s", e, exc_info=True)
            finally:
                for _ in range(drained):
                    self._queue.task_done()


class ChangeSubscription:
    """
    Live subscription to backend change events.

    Couples the event source's handle with the consumer task; releasing it
    unsubscribes from the source and stops the consumer, exactly once.
    """

    def __init__(self, handle: Subscription, channel: ChangeEventChannel) -> None:
        self._handle = handle
        self._channel = channel
        self._released = False

    @property
    def channel(self) -> ChangeEventChannel:
        return self._channel

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._handle.unsubscribe()
        finally:
            await self._channel.stop()
        logger.info("Unsubscribed from device change events")
