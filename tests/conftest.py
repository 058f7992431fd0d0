"""
Pytest configuration and shared fixtures for UShield tests.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
import yaml

from ushield.controller import SyncController
from ushield.errors import ErrorChannel
from ushield.gateway.memory import InMemoryBackend
from ushield.models import Device
from ushield.session import Session
from ushield.store import SessionStore


LOGITECH_RECEIVER = Device(
    vendor_id=0x046D,
    product_id=0xC52B,
    manufacturer="Logitech",
    product="USB Receiver",
    port_number=1,
    connected=True,
)

SANDISK_STICK = Device(
    vendor_id=0x0781,
    product_id=0x5567,
    manufacturer="SanDisk",
    product="Cruzer Blade",
    serial_number="4C530001230524118253",
    port_number=2,
    connected=True,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample configuration file."""
    config_path = temp_dir / "ushield.yaml"
    config_data = {
        "client": {
            "log_level": "debug",
        },
        "gateway": {
            "base_url": "http://127.0.0.1:9999",
            "api_key": "test-key",
            "reconnect_delay": 0.5,
        },
        "api": {
            "port": 8080,
        },
    }
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def logitech() -> Device:
    """Untrusted Logitech Unifying receiver."""
    return LOGITECH_RECEIVER


@pytest.fixture
def sandisk() -> Device:
    return SANDISK_STICK


@pytest.fixture
def backend() -> InMemoryBackend:
    """Backend with one untrusted Logitech receiver and an empty allow-list."""
    return InMemoryBackend(devices=[LOGITECH_RECEIVER], trusted=[], autoblock=False)


@pytest.fixture
def two_device_backend() -> InMemoryBackend:
    """Backend with a trusted receiver and an untrusted storage stick."""
    return InMemoryBackend(
        devices=[LOGITECH_RECEIVER, SANDISK_STICK],
        trusted=[(0x046D, 0xC52B)],
        autoblock=True,
    )


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def errors() -> ErrorChannel:
    return ErrorChannel()


@pytest.fixture
def controller(backend: InMemoryBackend, store: SessionStore, errors: ErrorChannel) -> SyncController:
    return SyncController(backend, store, errors, events=backend)


@pytest.fixture
def session(backend: InMemoryBackend) -> Session:
    return Session(backend, backend)
