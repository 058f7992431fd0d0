"""
Backend gateway - command and event boundary to the privileged backend.
"""

from ushield.gateway.base import (
    DEVICE_CHANGED_EVENT,
    ChangeEventSource,
    CommandGateway,
    EventHandler,
    Subscription,
)
from ushield.gateway.http import (
    HttpChangeEventSource,
    HttpCommandGateway,
    create_http_transport,
    iter_sse_events,
)
from ushield.gateway.memory import InMemoryBackend, demo_backend

__all__ = [
    "DEVICE_CHANGED_EVENT",
    "ChangeEventSource",
    "CommandGateway",
    "EventHandler",
    "Subscription",
    "HttpChangeEventSource",
    "HttpCommandGateway",
    "create_http_transport",
    "iter_sse_events",
    "InMemoryBackend",
    "demo_backend",
]
