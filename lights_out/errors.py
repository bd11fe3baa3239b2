"""Errors raised by the device transports."""


class LightsOutError(Exception):
    """Base error for lights-out."""


class DeviceNotFound(LightsOutError):
    """Raised when no matching device is enumerated."""


class PermissionDenied(LightsOutError):
    """Raised when the device exists but the caller may not open it."""


class TransportError(LightsOutError):
    """Raised on open, write, timeout or protocol mismatch failures."""


class TransportTimeout(TransportError):
    """Raised when a transport call is abandoned after its timeout."""
