"""
Error types and the single-slot error channel.

Gateway failures never escape an operation: they are converted into a
human-readable message and written to the :class:`ErrorChannel`, which holds
at most one pending message.
"""

from __future__ import annotations

import logging


logger = logging.getLogger(__name__)


class UShieldError(Exception):
    """Base class for UShield client errors."""


class GatewayError(UShieldError):
    """
    A remote command failed.

    Attributes:
        message: Displayable reason reported by the backend or transport
        command: Name of the failing command, when known
    """

    def __init__(self, message: str, command: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.command = command

    def __str__(self) -> str:
        return self.message


class ProtocolError(GatewayError):
    """The backend answered with a payload that does not match the wire format."""


class ErrorChannel:
    """
    Most-recent-wins error slot.

    A new report overwrites any unacknowledged message; :meth:`dismiss`
    clears it.
    """

    def __init__(self) -> None:
        self._message: str | None = None
        self._generation = 0

    @property
    def current(self) -> str | None:
        """Pending error message, or None."""
        return self._message

    def mark(self) -> int:
        """Token identifying the reports seen so far, for :meth:`clear`."""
        return self._generation

    def report(self, message: str) -> None:
        logger.warning("%s", message)
        self._generation += 1
        self._message = message

    def clear(self, since: int | None = None) -> None:
        """
        Clear after a successful read that resolves the failure condition.

        Args:
            since: Value of :meth:`mark` taken when the read started. If a
                newer error has been reported in the meantime it is kept.
        """
        if since is not None and since != self._generation:
            return
        self._message = None

    def dismiss(self) -> None:
        """Explicit acknowledgement by the user."""
        if self._message is not None:
            logger.debug("Error dismissed: %s", self._message)
        self._message = None
