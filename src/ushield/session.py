"""
Session lifecycle.

A :class:`Session` owns the store, the error channel and the controller for
one client session. Activation loads the initial state in the background
and reports readiness once the change subscription is in place;
deactivation releases that subscription exactly once, waiting for a pending
initialization to settle first.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

from ushield.controller import SyncController
from ushield.errors import ErrorChannel
from ushield.events import ChangeSubscription
from ushield.gateway.base import DEVICE_CHANGED_EVENT, ChangeEventSource, CommandGateway
from ushield.store import SessionStore


logger = logging.getLogger(__name__)


class Session:
    """
    Owned context for one client session.

    Usage::

        async with Session(gateway, events) as session:
            await session.controller.toggle_autoblock()
    """

    def __init__(
        self,
        gateway: CommandGateway,
        events: ChangeEventSource | None = None,
        event_name: str = DEVICE_CHANGED_EVENT,
        autoblock_default: bool = True,
    ) -> None:
        self.store = SessionStore(autoblock_enabled=autoblock_default)
        self.errors = ErrorChannel()
        self.controller = SyncController(
            gateway,
            self.store,
            self.errors,
            events=events,
            event_name=event_name,
        )

        self._init_task: asyncio.Task | None = None
        self._subscription: ChangeSubscription | None = None
        self._ready = asyncio.Event()
        self._deactivated = False

    @property
    def ready(self) -> bool:
        """True once initial state is loaded and the subscription attempted."""
        return self._ready.is_set()

    @property
    def active(self) -> bool:
        return self._init_task is not None and not self._deactivated

    @property
    def subscription(self) -> ChangeSubscription | None:
        return self._subscription

    def activate(self) -> asyncio.Task:
        """
        Start initialization in the background.

        Returns:
            The initialization task. Calling again returns the same task.
        """
        if self._deactivated:
            raise RuntimeError("Session has been deactivated")
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())
        return self._init_task

    async def wait_ready(self) -> None:
        await self._ready.wait()

    async def start(self) -> Session:
        """Activate and wait until ready."""
        await self.activate()
        return self

    async def deactivate(self) -> None:
        """
        End the session.

        Waits for a pending initialization, releases the subscription if one
        was obtained, and closes the store to late writes. Repeated calls are
        no-ops. If the wait is cancelled, the initialization task releases
        its subscription itself once it settles.
        """
        if self._deactivated:
            return
        self._deactivated = True

        try:
            if self._init_task is not None and not self._init_task.done():
                logger.debug("Deactivation deferred until initialization settles")
                try:
                    await asyncio.shield(self._init_task)
                except Exception as e:
                    logger.error("Session initialization failed: %s", e)
        finally:
            try:
                await self._release_subscription()
            finally:
                self.store.close()
                logger.info("Session deactivated")

    async def _release_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.release()

    async def _initialize(self) -> None:
        try:
            self._subscription = await self.controller.initialize()
            if self._deactivated:
                # Deactivation stopped waiting for us
                await self._release_subscription()
        finally:
            self._ready.set()
            logger.info("Session ready")

    async def __aenter__(self) -> Session:
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.deactivate()
