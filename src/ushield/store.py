"""
Device/trust/policy store.

Holds the last-known-good snapshot of backend state. Only whole-snapshot
replacement is supported, so readers never see a half-updated collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ushield.models import Device, OperationStatus, TrustedPair


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable view of every store field at one point in time."""

    devices: tuple[Device, ...]
    trusted_pairs: tuple[TrustedPair, ...]
    autoblock_enabled: bool
    status: OperationStatus

    @property
    def trusted_devices(self) -> list[Device]:
        return [d for d in self.devices if d.trusted]

    @property
    def untrusted_devices(self) -> list[Device]:
        return [d for d in self.devices if not d.trusted]

    def statistics(self) -> dict[str, int]:
        """Device counts for summary displays."""
        trusted = len(self.trusted_devices)
        return {
            "total": len(self.devices),
            "trusted": trusted,
            "untrusted": len(self.devices) - trusted,
        }


class SessionStore:
    """
    In-memory holder of the latest backend state.

    Once closed, replace operations are ignored so that calls still in flight
    when the session ended cannot write into it.
    """

    def __init__(self, autoblock_enabled: bool = True) -> None:
        self._devices: tuple[Device, ...] = ()
        self._trusted_pairs: tuple[TrustedPair, ...] = ()
        self._autoblock_enabled = autoblock_enabled
        self._status = OperationStatus.IDLE
        self._closed = False

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def devices(self) -> tuple[Device, ...]:
        return self._devices

    @property
    def trusted_pairs(self) -> tuple[TrustedPair, ...]:
        return self._trusted_pairs

    @property
    def trusted_set(self) -> frozenset[TrustedPair]:
        return frozenset(self._trusted_pairs)

    @property
    def autoblock_enabled(self) -> bool:
        return self._autoblock_enabled

    @property
    def status(self) -> OperationStatus:
        return self._status

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def trusted_devices(self) -> list[Device]:
        """Devices the backend reports as trusted, in snapshot order."""
        return [d for d in self._devices if d.trusted]

    @property
    def untrusted_devices(self) -> list[Device]:
        return [d for d in self._devices if not d.trusted]

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            devices=self._devices,
            trusted_pairs=self._trusted_pairs,
            autoblock_enabled=self._autoblock_enabled,
            status=self._status,
        )

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def replace_devices(self, devices: Iterable[Device]) -> None:
        if self._discard("devices"):
            return
        self._devices = tuple(devices)

    def replace_trusted(self, pairs: Iterable[TrustedPair]) -> None:
        if self._discard("trusted devices"):
            return
        self._trusted_pairs = tuple(pairs)

    def set_policy(self, enabled: bool) -> None:
        if self._discard("autoblock policy"):
            return
        self._autoblock_enabled = enabled

    def set_status(self, status: OperationStatus) -> None:
        if self._discard("operation status"):
            return
        self._status = status

    def close(self) -> None:
        """Stop accepting writes."""
        self._closed = True

    def _discard(self, what: str) -> bool:
        if self._closed:
            logger.debug("Discarding late %s write to closed store", what)
            return True
        return False
