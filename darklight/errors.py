"""Exception hierarchy for the cover calibrator core."""


class DeviceError(Exception):
    """Base exception for all cover calibrator errors."""


class TransportError(DeviceError):
    """Serial-level failure (port unavailable, write failure, retries exhausted)."""


class ChannelTimeoutError(TransportError):
    """Every attempt of a transaction timed out waiting for the device."""

    def __init__(self, message, *, attempts=0):
        self.attempts = attempts
        super().__init__(message)


class ChannelIOError(TransportError):
    """Port not open, or the command could not be written."""


class ProtocolError(DeviceError):
    """Response was malformed, oversized or carried an unexpected code."""

    def __init__(self, message, *, payload=""):
        self.payload = payload
        super().__init__(message)


class RangeError(DeviceError):
    """Value outside its declared domain; rejected before transmission."""


class InterlockError(DeviceError):
    """Operation refused by a device-state interlock; nothing was sent."""
