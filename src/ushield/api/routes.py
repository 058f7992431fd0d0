"""
REST API routes for the UShield dashboard.

Every mutating endpoint runs the corresponding controller operation and
returns the resulting state. Operation failures are not HTTP errors: they
are reported in the ``error`` field of the state, exactly as the controller
surfaces them.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ushield import __version__
from ushield.api.schemas import DeviceListResponse, DeviceResponse, HealthCheck, StateResponse
from ushield.models import format_usb_id
from ushield.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Dependencies
# ============================================================================


class ServiceDependencies:
    """
    Container for service dependencies.

    Set after app initialization to inject the running session.
    """

    session: Session | None = None


deps = ServiceDependencies()


def get_session() -> Session:
    """Get the active session."""
    if deps.session is None or not deps.session.ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session not ready",
        )
    return deps.session


def _state(session: Session) -> StateResponse:
    return StateResponse.build(
        session.store.snapshot(),
        error=session.errors.current,
        ready=session.ready,
    )


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthCheck, tags=["Health"])
async def health_check() -> HealthCheck:
    ready = deps.session is not None and deps.session.ready
    return HealthCheck(
        status="healthy" if ready else "starting",
        version=__version__,
        ready=ready,
    )


# ============================================================================
# State and devices
# ============================================================================


@router.get("/state", response_model=StateResponse, tags=["State"])
async def get_state(session: Session = Depends(get_session)) -> StateResponse:
    return _state(session)


@router.get("/devices", response_model=DeviceListResponse, tags=["Devices"])
async def list_devices(
    trusted: bool | None = Query(None, description="Only trusted (true) or untrusted (false) devices"),
    session: Session = Depends(get_session),
) -> DeviceListResponse:
    """List devices from the current snapshot, optionally by trust status."""
    store = session.store
    if trusted is None:
        devices = list(store.devices)
    elif trusted:
        devices = store.trusted_devices
    else:
        devices = store.untrusted_devices

    return DeviceListResponse(
        items=[DeviceResponse.from_device(d) for d in devices],
        total=len(devices),
    )


@router.post("/devices/refresh", response_model=StateResponse, tags=["Devices"])
async def refresh_devices(session: Session = Depends(get_session)) -> StateResponse:
    await session.controller.refresh_devices()
    return _state(session)


@router.post(
    "/devices/{vendor_id}/{product_id}/trust",
    response_model=StateResponse,
    tags=["Devices"],
)
async def toggle_device_trust(
    vendor_id: int = Path(..., ge=0, le=0xFFFF),
    product_id: int = Path(..., ge=0, le=0xFFFF),
    session: Session = Depends(get_session),
) -> StateResponse:
    """
    Grant or revoke trust for a connected device.

    The device's current trust flag in the snapshot decides the direction.
    """
    device = next(
        (d for d in session.store.devices if d.identity == (vendor_id, product_id)),
        None,
    )
    if device is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Device not found: {format_usb_id(vendor_id)}:{format_usb_id(product_id)}",
        )

    await session.controller.toggle_device_trust(device)
    return _state(session)


# ============================================================================
# Policy and ports
# ============================================================================


@router.post("/autoblock/toggle", response_model=StateResponse, tags=["Policy"])
async def toggle_autoblock(session: Session = Depends(get_session)) -> StateResponse:
    await session.controller.toggle_autoblock()
    return _state(session)


@router.post("/ports/block", response_model=StateResponse, tags=["Ports"])
async def block_all_ports(session: Session = Depends(get_session)) -> StateResponse:
    await session.controller.block_all_ports()
    return _state(session)


@router.post("/ports/unblock", response_model=StateResponse, tags=["Ports"])
async def unblock_ports(session: Session = Depends(get_session)) -> StateResponse:
    await session.controller.unblock_ports()
    return _state(session)


@router.delete("/error", response_model=StateResponse, tags=["State"])
async def dismiss_error(session: Session = Depends(get_session)) -> StateResponse:
    session.controller.dismiss_error()
    return _state(session)
