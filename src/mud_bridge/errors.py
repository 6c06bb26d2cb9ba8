"""Exception taxonomy shared by the protocol codec and the client session."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for every error raised by mud_bridge."""


class ProtocolDecodeError(BridgeError, ValueError):
    """Raised when an inbound frame is not a well-formed envelope."""

    def __init__(self, message: str, raw: str | bytes | bytearray) -> None:
        super().__init__(message)
        self.raw = raw


class KwargMissingError(BridgeError, LookupError):
    """Raised when a kwarg is requested but the envelope does not carry it."""

    def __init__(self, key: str) -> None:
        super().__init__(f"kwarg {key!r} is not present")
        self.key = key


class KwargTypeError(BridgeError, TypeError):
    """Raised when a stored kwarg cannot be read as the requested type."""

    def __init__(self, key: str, expected: Any, actual: Any) -> None:
        expected_name = getattr(expected, "__name__", str(expected))
        super().__init__(f"kwarg {key!r} holds {actual}, cannot read as {expected_name}")
        self.key = key
        self.expected = expected
        self.actual = actual


class NotConnectedError(BridgeError):
    """Raised when sending while the session is not ready for traffic."""


class TransportError(BridgeError):
    """Raised when the underlying websocket fails to open, read, or write."""


class HandshakeError(BridgeError):
    """Raised when the options handshake cannot complete."""


class HandshakeTimeoutError(HandshakeError):
    """Raised when the server never answers the options request."""


class BackpressureError(BridgeError):
    """Raised when queued outbound bytes exceed the configured bound."""
