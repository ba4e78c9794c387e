"""
Exception hierarchy for the Axpert gateway.

All errors raised by the gateway inherit from :class:`GatewayError` so the
HTTP layer can translate them into responses with a single ``except``.

CHANGELOG:
- 2026-03-04: Add DiscoveryError for startup device discovery (STORY-008)
- 2026-03-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all gateway errors."""


class NotFoundError(GatewayError):
    """A requested inverter or command does not exist."""


class UnknownCommandError(NotFoundError):
    """The command name is not in the command table."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"unknown command: {command}")


class InverterNotFoundError(NotFoundError):
    """No known inverter has the requested serial number."""

    def __init__(self, serial_no: str) -> None:
        self.serial_no = serial_no
        super().__init__(f"inverter with serial number {serial_no} not found")


class ValidationError(GatewayError):
    """Command input is malformed, out of range, or violates a cross-field rule."""


class MappingError(GatewayError):
    """A wire code returned by a device has no canonical token.

    Args:
        domain: Name of the mapping domain (e.g. ``"output source priority"``).
        code: The offending wire code.
    """

    def __init__(self, domain: str, code: object) -> None:
        self.domain = domain
        self.code = code
        super().__init__(f"unrecognized {domain} wire code: {code!r}")


class DeviceIOError(GatewayError):
    """Connector-level failure while talking to a device."""


class DiscoveryError(GatewayError):
    """No inverters could be discovered at startup."""
