"""
Data model for the UShield client.

Devices and trusted pairs are immutable values; every refresh replaces them
wholesale rather than editing them in place.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, NamedTuple

from ushield.errors import ProtocolError


USB_ID_MAX = 0xFFFF
PORT_NUMBER_MAX = 0xFF


def format_usb_id(value: int) -> str:
    """Render a vendor/product id the way device cards show it (0x046d)."""
    return f"0x{value:04x}"


def _require_int(data: dict[str, Any], key: str, maximum: int) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProtocolError(f"Field '{key}' must be an integer, got {value!r}")
    if not 0 <= value <= maximum:
        raise ProtocolError(f"Field '{key}' out of range: {value}")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise ProtocolError(f"Field '{key}' must be a string or null, got {value!r}")


def _require_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ProtocolError(f"Field '{key}' must be a boolean, got {value!r}")
    return value


class OperationStatus(str, Enum):
    """Long-running privileged operation currently in flight."""

    IDLE = "idle"
    BLOCKING = "blocking"
    UNBLOCKING = "unblocking"


class TrustedPair(NamedTuple):
    """Allow-list entry: a vendor/product pair, independent of connection."""

    vendor_id: int
    product_id: int

    @classmethod
    def from_wire(cls, data: Any) -> TrustedPair:
        """Parse the backend's ``[vendor_id, product_id]`` array."""
        if not isinstance(data, (list, tuple)) or len(data) != 2:
            raise ProtocolError(f"Trusted device must be a [vendor_id, product_id] pair, got {data!r}")
        fields = dict(zip(cls._fields, data))
        return cls(
            vendor_id=_require_int(fields, "vendor_id", USB_ID_MAX),
            product_id=_require_int(fields, "product_id", USB_ID_MAX),
        )

    def __str__(self) -> str:
        return f"{format_usb_id(self.vendor_id)}:{format_usb_id(self.product_id)}"


@dataclass(frozen=True)
class Device:
    """
    A USB device as reported by the backend.

    Attributes:
        vendor_id: USB vendor id (u16)
        product_id: USB product id (u16)
        manufacturer: Manufacturer string descriptor, if readable
        product: Product string descriptor, if readable
        serial_number: Serial number string descriptor, if readable
        port_number: Physical port number (u8), if known
        connected: Whether the device is currently attached
        trusted: Trust flag as computed by the backend
    """

    vendor_id: int
    product_id: int
    manufacturer: str | None = None
    product: str | None = None
    serial_number: str | None = None
    port_number: int | None = None
    connected: bool = True
    trusted: bool = False

    @property
    def identity(self) -> TrustedPair:
        """Key used by the backend for trust status."""
        return TrustedPair(self.vendor_id, self.product_id)

    @property
    def display_name(self) -> str:
        return self.product or "Unknown Device"

    @classmethod
    def from_dict(cls, data: Any) -> Device:
        """
        Build a device from the backend's JSON object.

        Raises:
            ProtocolError: If a field is missing, mistyped or out of range.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Device entry must be an object, got {type(data).__name__}")

        port_number = data.get("port_number")
        if port_number is not None:
            port_number = _require_int(data, "port_number", PORT_NUMBER_MAX)

        return cls(
            vendor_id=_require_int(data, "vendor_id", USB_ID_MAX),
            product_id=_require_int(data, "product_id", USB_ID_MAX),
            manufacturer=_optional_str(data, "manufacturer"),
            product=_optional_str(data, "product"),
            serial_number=_optional_str(data, "serial_number"),
            port_number=port_number,
            connected=_require_bool(data, "connected", False),
            trusted=_require_bool(data, "trusted", False),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
