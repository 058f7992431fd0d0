"""
Interfaces to the privileged backend.

The backend exposes named remote commands (:class:`CommandGateway`) and a
single change notification (:class:`ChangeEventSource`). Every command may
raise :class:`~ushield.errors.GatewayError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine

from ushield.models import Device, TrustedPair


# Event published by the backend whenever the USB topology changes
DEVICE_CHANGED_EVENT = "usb-device-changed"

# Command names understood by the backend
GET_USB_DEVICES = "get_usb_devices"
GET_TRUSTED_DEVICES = "get_trusted_devices"
GET_AUTOBLOCK_MODE = "get_autoblock_mode"
ADD_TRUSTED_DEVICE = "add_trusted_device"
REMOVE_TRUSTED_DEVICE = "remove_trusted_device"
SET_AUTOBLOCK_MODE = "set_autoblock_mode"
BLOCK_ALL_USB_PORTS = "block_all_usb_ports"
RESTART_USB_SERVICE = "restart_usb_service"
UNBLOCK_USB_PORT = "unblock_usb_port"

# Handlers receive no payload
EventHandler = Callable[[], Coroutine[Any, Any, None] | None]


class CommandGateway(ABC):
    """Request/response access to backend commands."""

    @abstractmethod
    async def get_usb_devices(self) -> list[Device]:
        """Snapshot of every USB device the backend can see."""

    @abstractmethod
    async def get_trusted_devices(self) -> list[TrustedPair]:
        """Current allow-list."""

    @abstractmethod
    async def get_autoblock_mode(self) -> bool:
        """Global auto-block policy flag."""

    @abstractmethod
    async def add_trusted_device(self, vendor_id: int, product_id: int) -> None:
        ...

    @abstractmethod
    async def remove_trusted_device(self, vendor_id: int, product_id: int) -> None:
        ...

    @abstractmethod
    async def set_autoblock_mode(self, enabled: bool) -> None:
        ...

    @abstractmethod
    async def block_all_usb_ports(self) -> None:
        ...

    @abstractmethod
    async def restart_usb_service(self) -> None:
        ...

    @abstractmethod
    async def unblock_usb_port(self) -> None:
        ...

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""


class Subscription(ABC):
    """Handle returned by :meth:`ChangeEventSource.subscribe`."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering events to the handler."""


class ChangeEventSource(ABC):
    """Publish channel for backend change notifications."""

    @abstractmethod
    async def subscribe(self, event: str, handler: EventHandler) -> Subscription:
        """
        Register a handler for an event.

        Args:
            event: Event name, normally :data:`DEVICE_CHANGED_EVENT`
            handler: Called once per delivered event; may be async

        Returns:
            Subscription handle to release the handler.

        Raises:
            GatewayError: If the subscription cannot be established.
        """

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
