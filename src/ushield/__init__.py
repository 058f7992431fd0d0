"""
UShield - client control surface for a USB port security backend.

Mirrors the backend's view of attached USB devices, the trusted-device
allow-list and the auto-block policy, and issues the privileged commands
that change them.
"""

__version__ = "0.1.0"
__author__ = "UShield Contributors"

from ushield.config import UShieldConfig, load_config
from ushield.controller import SyncController
from ushield.errors import ErrorChannel, GatewayError, ProtocolError, UShieldError
from ushield.models import Device, OperationStatus, TrustedPair
from ushield.session import Session
from ushield.store import SessionStore, StoreSnapshot

__all__ = [
    "__version__",
    "Device",
    "ErrorChannel",
    "GatewayError",
    "OperationStatus",
    "ProtocolError",
    "Session",
    "SessionStore",
    "StoreSnapshot",
    "SyncController",
    "TrustedPair",
    "UShieldConfig",
    "UShieldError",
    "load_config",
]
