"""
Tests for the session lifecycle.
"""

from __future__ import annotations

import asyncio

import pytest

from ushield.gateway.memory import InMemoryBackend
from ushield.session import Session


class TestSessionLifecycle:
    """Tests for activation and deactivation."""

    @pytest.mark.asyncio
    async def test_start_loads_state(self, session, backend) -> None:
        await session.start()

        assert session.ready
        assert session.active
        assert len(session.store.devices) == 1
        assert session.store.autoblock_enabled is False
        assert session.subscription is not None
        assert backend.subscribe_calls == 1

        await session.deactivate()

    @pytest.mark.asyncio
    async def test_ready_after_subscription_failure(self, session, backend) -> None:
        """Readiness does not depend on the subscription succeeding."""
        backend.fail("subscribe", "denied")

        await session.start()

        assert session.ready
        assert session.subscription is None
        assert session.errors.current == "Failed to subscribe to device changes: denied"

        await session.deactivate()
        assert backend.unsubscribe_calls == 0

    @pytest.mark.asyncio
    async def test_activate_returns_same_task(self, session) -> None:
        first = session.activate()
        second = session.activate()

        assert first is second
        await first
        await session.deactivate()

    @pytest.mark.asyncio
    async def test_wait_ready(self, session) -> None:
        session.activate()

        await asyncio.wait_for(session.wait_ready(), timeout=1)

        assert session.ready
        await session.deactivate()

    @pytest.mark.asyncio
    async def test_unsubscribe_exactly_once(self, session, backend) -> None:
        await session.start()

        await session.deactivate()
        await session.deactivate()

        assert backend.unsubscribe_calls == 1
        assert session.subscription is None
        assert not session.active

    @pytest.mark.asyncio
    async def test_deactivate_before_init_settles(self, session, backend) -> None:
        """Deactivating mid-initialization waits and then releases once."""
        gate = backend.hold("get_usb_devices")
        session.activate()
        await asyncio.sleep(0)

        deactivation = asyncio.create_task(session.deactivate())
        await asyncio.sleep(0)
        assert not deactivation.done()

        gate.set()
        await deactivation

        assert backend.subscribe_calls == 1
        assert backend.unsubscribe_calls == 1
        assert session.store.closed

    @pytest.mark.asyncio
    async def test_cancelled_deactivation_still_releases(self, session, backend) -> None:
        """Cancelling deactivate mid-wait does not leak the subscription."""
        gate = backend.hold("get_usb_devices")
        init = session.activate()
        await asyncio.sleep(0)

        deactivation = asyncio.create_task(session.deactivate())
        await asyncio.sleep(0)
        deactivation.cancel()
        with pytest.raises(asyncio.CancelledError):
            await deactivation

        gate.set()
        await init
        await session.deactivate()

        assert backend.subscribe_calls == 1
        assert backend.unsubscribe_calls == 1
        assert session.subscription is None
        assert session.store.closed
        assert await backend.emit_change() == 0

    @pytest.mark.asyncio
    async def test_no_events_after_deactivate(self, session, backend, sandisk) -> None:
        await session.start()
        await session.deactivate()
        backend.plug(sandisk)
        backend.calls.clear()

        assert await backend.emit_change() == 0
        assert backend.calls == []
        assert len(session.store.devices) == 1

    @pytest.mark.asyncio
    async def test_late_write_discarded(self, session, backend) -> None:
        """A command still in flight at deactivation cannot write the store."""
        await session.start()
        gate = backend.hold("get_usb_devices")

        refresh = asyncio.create_task(session.controller.refresh_devices())
        await asyncio.sleep(0)
        await session.deactivate()
        backend.unplug(0x046D, 0xC52B)
        gate.set()
        await refresh

        assert len(session.store.devices) == 1

    @pytest.mark.asyncio
    async def test_activate_after_deactivate_rejected(self, session) -> None:
        await session.deactivate()

        with pytest.raises(RuntimeError):
            session.activate()

    @pytest.mark.asyncio
    async def test_deactivate_without_activate(self, session, backend) -> None:
        await session.deactivate()

        assert session.store.closed
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_autoblock_default(self) -> None:
        backend = InMemoryBackend()
        backend.fail("get_autoblock_mode", "unavailable")

        async with Session(backend, autoblock_default=False) as session:
            assert session.store.autoblock_enabled is False


class TestSessionContextManager:
    """Tests for async context manager usage."""

    @pytest.mark.asyncio
    async def test_context_manager(self, backend) -> None:
        async with Session(backend, backend) as session:
            assert session.ready
            await session.controller.toggle_autoblock()
            assert session.store.autoblock_enabled is True

        assert backend.unsubscribe_calls == 1
        assert session.store.closed

    @pytest.mark.asyncio
    async def test_live_updates(self, backend, sandisk) -> None:
        async with Session(backend, backend) as session:
            backend.plug(sandisk)
            await backend.emit_change()
            await session.subscription.channel.join()

            assert len(session.store.devices) == 2

    @pytest.mark.asyncio
    async def test_deactivates_on_exception(self, backend) -> None:
        with pytest.raises(ValueError):
            async with Session(backend, backend) as session:
                raise ValueError("boom")

        assert session.store.closed
        assert backend.unsubscribe_calls == 1
