"""
Synchronization controller.

Keeps the session store consistent with the backend and orchestrates the
privileged operations. Every operation catches gateway failures at its own
boundary, reports them on the error channel and returns normally.

Two update strategies are kept separate:

- :meth:`SyncController.resync_from_gateway` discards any assumed effect of
  a mutation and re-reads the affected state (trust, block, unblock).
- :meth:`SyncController.apply_confirmed_value` writes the requested value
  once the backend has accepted it (autoblock).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator

from ushield.errors import ErrorChannel, GatewayError
from ushield.events import ChangeEventChannel, ChangeSubscription
from ushield.gateway.base import DEVICE_CHANGED_EVENT, ChangeEventSource, CommandGateway
from ushield.models import Device, OperationStatus, TrustedPair
from ushield.store import SessionStore


logger = logging.getLogger(__name__)


class SyncController:
    """
    Orchestrates fetch cycles and mutations against the command gateway.

    The controller is the only writer of its :class:`SessionStore`.
    """

    def __init__(
        self,
        gateway: CommandGateway,
        store: SessionStore,
        errors: ErrorChannel,
        events: ChangeEventSource | None = None,
        event_name: str = DEVICE_CHANGED_EVENT,
    ) -> None:
        """
        Initialize controller.

        Args:
            gateway: Backend command gateway
            store: Store to keep in sync
            errors: Error channel failures are reported to
            events: Change event source; None disables live updates
            event_name: Name of the topology-changed event
        """
        self.gateway = gateway
        self.store = store
        self.errors = errors
        self.events = events
        self.event_name = event_name

    # ------------------------------------------------------------------
    # Presentation-facing state
    # ------------------------------------------------------------------

    @property
    def devices(self) -> tuple[Device, ...]:
        return self.store.devices

    @property
    def trusted_devices(self) -> list[Device]:
        return self.store.trusted_devices

    @property
    def untrusted_devices(self) -> list[Device]:
        return self.store.untrusted_devices

    @property
    def trusted_pairs(self) -> tuple[TrustedPair, ...]:
        return self.store.trusted_pairs

    @property
    def autoblock_enabled(self) -> bool:
        return self.store.autoblock_enabled

    @property
    def status(self) -> OperationStatus:
        return self.store.status

    @property
    def error(self) -> str | None:
        return self.errors.current

    def dismiss_error(self) -> None:
        self.errors.dismiss()

    # ------------------------------------------------------------------
    # Initialization and subscription
    # ------------------------------------------------------------------

    async def initialize(self) -> ChangeSubscription | None:
        """
        Load the initial state and subscribe to change events.

        The three fetches run concurrently and fail independently. The
        subscription is only attempted once all of them have settled.

        Returns:
            The live subscription, or None if none could be established.
        """
        logger.info("Loading initial USB state")
        await asyncio.gather(
            self.refresh_devices(),
            self.refresh_trusted_devices(),
            self.check_autoblock_mode(),
        )
        return await self.subscribe_to_changes()

    async def subscribe_to_changes(self) -> ChangeSubscription | None:
        """Route every change event to a devices-only refresh."""
        if self.events is None:
            logger.info("No change event source configured, live updates disabled")
            return None

        channel = ChangeEventChannel(self.refresh_devices)
        channel.start()
        try:
            handle = await self.events.subscribe(self.event_name, channel.notify)
        except GatewayError as e:
            await channel.stop()
            self.errors.report(f"Failed to subscribe to device changes: {e}")
            return None

        logger.info("Subscribed to '%s' events", self.event_name)
        return ChangeSubscription(handle, channel)

    # ------------------------------------------------------------------
    # Fetches
    # ------------------------------------------------------------------

    async def refresh_devices(self) -> None:
        """Replace the device snapshot with the backend's current one."""
        mark = self.errors.mark()
        try:
            devices = await self.gateway.get_usb_devices()
        except GatewayError as e:
            self.errors.report(f"Failed to fetch devices: {e}")
            return

        self.store.replace_devices(devices)
        self.errors.clear(since=mark)
        logger.debug("Device snapshot refreshed: %d devices", len(devices))

    async def refresh_trusted_devices(self) -> None:
        mark = self.errors.mark()
        try:
            pairs = await self.gateway.get_trusted_devices()
        except GatewayError as e:
            self.errors.report(f"Failed to fetch trusted devices: {e}")
            return

        self.store.replace_trusted(pairs)
        self.errors.clear(since=mark)
        logger.debug("Trusted list refreshed: %d entries", len(pairs))

    async def check_autoblock_mode(self) -> None:
        try:
            enabled = await self.gateway.get_autoblock_mode()
        except GatewayError as e:
            self.errors.report(f"Failed to get autoblock status: {e}")
            return

        self.store.set_policy(bool(enabled))

    # ------------------------------------------------------------------
    # Update strategies
    # ------------------------------------------------------------------

    async def resync_from_gateway(self, devices: bool = True, trusted: bool = False) -> None:
        """
        Re-read authoritative state after a mutation.

        Requested slices are fetched concurrently; each reports its own
        failure without affecting the other.
        """
        fetches = []
        if devices:
            fetches.append(self.refresh_devices())
        if trusted:
            fetches.append(self.refresh_trusted_devices())
        await asyncio.gather(*fetches)

    def apply_confirmed_value(self, enabled: bool) -> None:
        """Write a policy value the backend has just accepted."""
        self.store.set_policy(enabled)

    @contextmanager
    def _operation(self, status: OperationStatus) -> Iterator[None]:
        self.store.set_status(status)
        try:
            yield
        finally:
            self.store.set_status(OperationStatus.IDLE)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def toggle_device_trust(self, device: Device) -> None:
        """Grant trust to an untrusted device, or revoke it from a trusted one."""
        vendor_id, product_id = device.identity
        try:
            if device.trusted:
                logger.info("Revoking trust for %s", device.identity)
                await self.gateway.remove_trusted_device(vendor_id, product_id)
            else:
                logger.info("Granting trust to %s", device.identity)
                await self.gateway.add_trusted_device(vendor_id, product_id)
        except GatewayError as e:
            self.errors.report(f"Failed to update device trust: {e}")
            return

        await self.resync_from_gateway(devices=True, trusted=True)

    async def toggle_autoblock(self) -> None:
        new_mode = not self.store.autoblock_enabled
        logger.info("Setting autoblock mode to %s", new_mode)
        try:
            await self.gateway.set_autoblock_mode(new_mode)
        except GatewayError as e:
            self.errors.report(f"Failed to toggle autoblock: {e}")
            return

        self.apply_confirmed_value(new_mode)

    async def block_all_ports(self) -> None:
        """
        Block every USB port, then restart the USB service.

        The restart is only attempted when blocking succeeded. Failures are
        reported with the backend's message as-is. Status is BLOCKING for the
        duration of the call and IDLE afterwards, whatever the outcome.
        """
        with self._operation(OperationStatus.BLOCKING):
            logger.info("Blocking all USB ports")
            try:
                await self.gateway.block_all_usb_ports()
                await self.gateway.restart_usb_service()
            except GatewayError as e:
                self.errors.report(str(e))
                return

            await self.resync_from_gateway(devices=True)

    async def unblock_ports(self) -> None:
        # Status stays IDLE while unblocking, pending a product decision on UNBLOCKING
        logger.info("Unblocking USB ports")
        try:
            await self.gateway.unblock_usb_port()
        except GatewayError as e:
            self.errors.report(f"Failed to unblock ports: {e}")
            return

        await self.resync_from_gateway(devices=True)
