"""
Tests for the session store and the error channel.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from ushield.errors import ErrorChannel, GatewayError, ProtocolError
from ushield.models import OperationStatus, TrustedPair
from ushield.store import SessionStore


class TestSessionStore:
    """Tests for SessionStore."""

    def test_defaults(self, store) -> None:
        """Fresh store: empty snapshots, autoblock on, idle."""
        assert store.devices == ()
        assert store.trusted_pairs == ()
        assert store.autoblock_enabled is True
        assert store.status == OperationStatus.IDLE
        assert not store.closed

    def test_autoblock_default_override(self) -> None:
        assert SessionStore(autoblock_enabled=False).autoblock_enabled is False

    def test_replace_devices_is_wholesale(self, store, logitech, sandisk) -> None:
        store.replace_devices([logitech, sandisk])
        store.replace_devices([sandisk])

        assert store.devices == (sandisk,)

    def test_replace_devices_copies_input(self, store, logitech) -> None:
        """Mutating the source list afterwards does not affect the store."""
        source = [logitech]
        store.replace_devices(source)
        source.clear()

        assert store.devices == (logitech,)

    def test_trusted_set(self, store) -> None:
        store.replace_trusted([TrustedPair(0x046D, 0xC52B), TrustedPair(0x0781, 0x5567)])

        assert TrustedPair(0x046D, 0xC52B) in store.trusted_set
        assert (0x0781, 0x5567) in store.trusted_set

    def test_trusted_partition(self, store, logitech, sandisk) -> None:
        trusted_logitech = replace(logitech, trusted=True)
        store.replace_devices([trusted_logitech, sandisk])

        assert store.trusted_devices == [trusted_logitech]
        assert store.untrusted_devices == [sandisk]

    def test_snapshot_statistics(self, store, logitech, sandisk) -> None:
        store.replace_devices([replace(logitech, trusted=True), sandisk])

        assert store.snapshot().statistics() == {"total": 2, "trusted": 1, "untrusted": 1}

    def test_snapshot_is_immutable_view(self, store, logitech) -> None:
        store.replace_devices([logitech])
        snapshot = store.snapshot()
        store.replace_devices([])

        assert snapshot.devices == (logitech,)
        assert snapshot.untrusted_devices == [logitech]
        with pytest.raises(AttributeError):
            snapshot.autoblock_enabled = False

    def test_writes_discarded_after_close(self, store, logitech) -> None:
        store.replace_devices([logitech])
        store.close()

        store.replace_devices([])
        store.replace_trusted([TrustedPair(1, 2)])
        store.set_policy(False)
        store.set_status(OperationStatus.BLOCKING)

        assert store.closed
        assert store.devices == (logitech,)
        assert store.trusted_pairs == ()
        assert store.autoblock_enabled is True
        assert store.status == OperationStatus.IDLE


class TestErrorChannel:
    """Tests for ErrorChannel."""

    def test_empty(self, errors) -> None:
        assert errors.current is None

    def test_most_recent_wins(self, errors) -> None:
        errors.report("first")
        errors.report("second")

        assert errors.current == "second"

    def test_dismiss(self, errors) -> None:
        errors.report("Failed to fetch devices: timeout")
        errors.dismiss()

        assert errors.current is None

    def test_dismiss_when_empty(self, errors) -> None:
        errors.dismiss()
        assert errors.current is None

    def test_clear_since_mark(self, errors) -> None:
        errors.report("stale")
        mark = errors.mark()

        errors.clear(since=mark)

        assert errors.current is None

    def test_clear_keeps_newer_report(self, errors) -> None:
        """An error reported after the mark survives a clear."""
        mark = errors.mark()
        errors.report("Failed to fetch trusted devices: denied")

        errors.clear(since=mark)

        assert errors.current == "Failed to fetch trusted devices: denied"

    def test_unconditional_clear(self) -> None:
        errors = ErrorChannel()
        errors.report("x")
        errors.clear()
        assert errors.current is None

    def test_report_logs_warning(self, errors, caplog) -> None:
        with caplog.at_level("WARNING", logger="ushield.errors"):
            errors.report("Failed to unblock ports: busy")

        assert "Failed to unblock ports: busy" in caplog.text


class TestGatewayError:
    """Tests for the gateway exception types."""

    def test_str_is_message(self) -> None:
        error = GatewayError("Access is denied.", command="block_all_usb_ports")

        assert str(error) == "Access is denied."
        assert error.command == "block_all_usb_ports"

    def test_protocol_error_is_gateway_error(self) -> None:
        assert issubclass(ProtocolError, GatewayError)
