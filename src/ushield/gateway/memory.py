"""
In-memory simulated backend.

Implements both the command gateway and the change event source over plain
Python state. Used by ``ushield --simulate`` and throughout the tests; it
records every call and supports per-command fault injection.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import replace
from typing import Any, Iterable

from ushield.errors import GatewayError
from ushield.gateway.base import (
    ADD_TRUSTED_DEVICE,
    BLOCK_ALL_USB_PORTS,
    DEVICE_CHANGED_EVENT,
    GET_AUTOBLOCK_MODE,
    GET_TRUSTED_DEVICES,
    GET_USB_DEVICES,
    REMOVE_TRUSTED_DEVICE,
    RESTART_USB_SERVICE,
    SET_AUTOBLOCK_MODE,
    UNBLOCK_USB_PORT,
    ChangeEventSource,
    CommandGateway,
    EventHandler,
    Subscription,
)
from ushield.models import Device, TrustedPair


logger = logging.getLogger(__name__)


class _MemorySubscription(Subscription):
    def __init__(self, backend: InMemoryBackend, event: str, handler: EventHandler) -> None:
        self._backend = backend
        self._event = event
        self._handler = handler

    async def unsubscribe(self) -> None:
        self._backend.unsubscribe_calls += 1
        handlers = self._backend._handlers.get(self._event, [])
        if self._handler in handlers:
            handlers.remove(self._handler)


class InMemoryBackend(CommandGateway, ChangeEventSource):
    """
    Simulated privileged backend.

    The ``trusted`` flag of every reported device is computed from the
    trusted set at read time, as the real backend does.

    Attributes:
        calls: Every command invoked, as ``(name, args)`` tuples
        subscribe_calls: Number of subscriptions made
        unsubscribe_calls: Number of unsubscribe calls received
        blocked: Whether ports are currently blocked
    """

    def __init__(
        self,
        devices: Iterable[Device] = (),
        trusted: Iterable[TrustedPair | tuple[int, int]] = (),
        autoblock: bool = True,
        latency: float = 0.0,
    ) -> None:
        """
        Initialize simulated backend.

        Args:
            devices: Initially attached devices
            trusted: Initial allow-list
            autoblock: Initial autoblock policy
            latency: Seconds every command sleeps before answering
        """
        self._devices: list[Device] = list(devices)
        self._trusted: dict[TrustedPair, None] = {TrustedPair(*p): None for p in trusted}
        self.autoblock = autoblock
        self.blocked = False
        self.latency = latency

        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0

        self._failures: dict[str, str] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._handlers: dict[str, list[EventHandler]] = {}

    # ------------------------------------------------------------------
    # Test and simulation controls
    # ------------------------------------------------------------------

    def fail(self, command: str, message: str) -> None:
        """Make every subsequent call to ``command`` raise GatewayError."""
        self._failures[command] = message

    def recover(self, command: str | None = None) -> None:
        """Remove injected failures (all of them when command is None)."""
        if command is None:
            self._failures.clear()
        else:
            self._failures.pop(command, None)

    def hold(self, command: str) -> asyncio.Event:
        """
        Suspend calls to ``command`` until the returned event is set.

        Returns:
            Event that releases the held calls.
        """
        gate = asyncio.Event()
        self._gates[command] = gate
        return gate

    def plug(self, device: Device) -> None:
        """Attach a device without notifying subscribers."""
        self._devices.append(device)

    def unplug(self, vendor_id: int, product_id: int) -> None:
        self._devices = [
            d for d in self._devices
            if (d.vendor_id, d.product_id) != (vendor_id, product_id)
        ]

    @property
    def trusted(self) -> set[TrustedPair]:
        return set(self._trusted)

    def commands(self) -> list[str]:
        """Names of the commands invoked so far, in order."""
        return [name for name, _ in self.calls]

    async def emit_change(self, event: str = DEVICE_CHANGED_EVENT) -> int:
        """
        Publish an event to every subscribed handler.

        Returns:
            Number of handlers notified.
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            result = handler()
            if inspect.isawaitable(result):
                await result
        return len(handlers)

    async def _invoke(self, command: str, *args: Any) -> None:
        self.calls.append((command, args))
        if self.latency:
            await asyncio.sleep(self.latency)
        gate = self._gates.get(command)
        if gate is not None:
            await gate.wait()
        if command in self._failures:
            raise GatewayError(self._failures[command], command=command)

    # ------------------------------------------------------------------
    # CommandGateway
    # ------------------------------------------------------------------

    async def get_usb_devices(self) -> list[Device]:
        await self._invoke(GET_USB_DEVICES)
        return [replace(d, trusted=d.identity in self._trusted) for d in self._devices]

    async def get_trusted_devices(self) -> list[TrustedPair]:
        await self._invoke(GET_TRUSTED_DEVICES)
        return list(self._trusted)

    async def get_autoblock_mode(self) -> bool:
        await self._invoke(GET_AUTOBLOCK_MODE)
        return self.autoblock

    async def add_trusted_device(self, vendor_id: int, product_id: int) -> None:
        await self._invoke(ADD_TRUSTED_DEVICE, vendor_id, product_id)
        self._trusted[TrustedPair(vendor_id, product_id)] = None

    async def remove_trusted_device(self, vendor_id: int, product_id: int) -> None:
        await self._invoke(REMOVE_TRUSTED_DEVICE, vendor_id, product_id)
        self._trusted.pop(TrustedPair(vendor_id, product_id), None)

    async def set_autoblock_mode(self, enabled: bool) -> None:
        await self._invoke(SET_AUTOBLOCK_MODE, enabled)
        self.autoblock = enabled

    async def block_all_usb_ports(self) -> None:
        await self._invoke(BLOCK_ALL_USB_PORTS)
        self.blocked = True

    async def restart_usb_service(self) -> None:
        await self._invoke(RESTART_USB_SERVICE)

    async def unblock_usb_port(self) -> None:
        await self._invoke(UNBLOCK_USB_PORT)
        self.blocked = False

    # ------------------------------------------------------------------
    # ChangeEventSource
    # ------------------------------------------------------------------

    async def subscribe(self, event: str, handler: EventHandler) -> Subscription:
        self.subscribe_calls += 1
        if "subscribe" in self._failures:
            raise GatewayError(self._failures["subscribe"], command="subscribe")
        self._handlers.setdefault(event, []).append(handler)
        logger.debug("Simulated backend: handler subscribed to '%s'", event)
        return _MemorySubscription(self, event, handler)


def demo_backend() -> InMemoryBackend:
    """Backend pre-populated with a few devices for ``--simulate`` runs."""
    return InMemoryBackend(
        devices=[
            Device(
                vendor_id=0x046D,
                product_id=0xC52B,
                manufacturer="Logitech",
                product="USB Receiver",
                port_number=1,
            ),
            Device(
                vendor_id=0x0781,
                product_id=0x5567,
                manufacturer="SanDisk",
                product="Cruzer Blade",
                serial_number="4C530001230524118253",
                port_number=2,
            ),
            Device(vendor_id=0x1D6B, product_id=0x0002, manufacturer="Linux Foundation", product="2.0 root hub"),
        ],
        trusted=[(0x1D6B, 0x0002)],
    )
