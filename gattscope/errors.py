"""
Error taxonomy for the GATT diagnostic client.

Decode problems are not errors: they degrade to hex and are reported on
the DecodeResult instead (see gattscope.codec.byte_codec).
"""


class GattScopeError(Exception):
    """Base class for all client errors."""


class TransportUnavailable(GattScopeError):
    """No Bluetooth adapter, or no device link to work with."""


class LinkInactive(GattScopeError):
    """The device link exists but is not connected."""


class DiscoveryFailed(GattScopeError):
    """Service or characteristic lookup failed (after retries, where retried)."""


class UnsupportedOperation(GattScopeError):
    """The characteristic advertises no capability matching the request."""


class InvalidInput(GattScopeError, ValueError):
    """User-supplied text could not be encoded, or a parameter is out of range."""
