"""
Pydantic schemas for API request/response validation.

Provides type-safe models for all dashboard API endpoints.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from ushield.models import Device, TrustedPair, format_usb_id
from ushield.store import StoreSnapshot


# ============================================================================
# Enums
# ============================================================================


class OperationStatusSchema(str, Enum):
    """Privileged operation in flight."""

    IDLE = "idle"
    BLOCKING = "blocking"
    UNBLOCKING = "unblocking"


# ============================================================================
# Device Schemas
# ============================================================================


class DeviceResponse(BaseModel):
    """USB device as last reported by the backend."""

    vendor_id: int = Field(..., ge=0, le=0xFFFF)
    product_id: int = Field(..., ge=0, le=0xFFFF)
    vid: str = Field(..., description="Vendor id rendered as 0x%04x")
    pid: str = Field(..., description="Product id rendered as 0x%04x")
    name: str
    manufacturer: str | None = None
    product: str | None = None
    serial_number: str | None = None
    port_number: int | None = Field(None, ge=0, le=0xFF)
    connected: bool
    trusted: bool

    @classmethod
    def from_device(cls, device: Device) -> DeviceResponse:
        return cls(
            vid=format_usb_id(device.vendor_id),
            pid=format_usb_id(device.product_id),
            name=device.display_name,
            **device.to_dict(),
        )


class TrustedPairResponse(BaseModel):
    """Allow-list entry."""

    vendor_id: int = Field(..., ge=0, le=0xFFFF)
    product_id: int = Field(..., ge=0, le=0xFFFF)

    @classmethod
    def from_pair(cls, pair: TrustedPair) -> TrustedPairResponse:
        return cls(vendor_id=pair.vendor_id, product_id=pair.product_id)


class DeviceListResponse(BaseModel):
    """Device list response."""

    items: list[DeviceResponse]
    total: int


class DeviceStatistics(BaseModel):
    """Device counts."""

    total: int = 0
    trusted: int = 0
    untrusted: int = 0


# ============================================================================
# Session State
# ============================================================================


class StateResponse(BaseModel):
    """Complete client state as seen by the dashboard."""

    ready: bool
    devices: list[DeviceResponse]
    trusted_devices: list[TrustedPairResponse]
    autoblock_enabled: bool
    status: OperationStatusSchema
    error: str | None = None
    statistics: DeviceStatistics

    @classmethod
    def build(cls, snapshot: StoreSnapshot, error: str | None, ready: bool) -> StateResponse:
        return cls(
            ready=ready,
            devices=[DeviceResponse.from_device(d) for d in snapshot.devices],
            trusted_devices=[TrustedPairResponse.from_pair(p) for p in snapshot.trusted_pairs],
            autoblock_enabled=snapshot.autoblock_enabled,
            status=OperationStatusSchema(snapshot.status.value),
            error=error,
            statistics=DeviceStatistics(**snapshot.statistics()),
        )


class HealthCheck(BaseModel):
    """Health check response."""

    status: str
    version: str
    ready: bool


class ErrorResponse(BaseModel):
    """Error response body."""

    error: str
    detail: str | None = None
