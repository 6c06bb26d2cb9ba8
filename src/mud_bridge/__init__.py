"""
mud_bridge: websocket client for MUD-style text game servers

Speaks the ``[command, args, kwargs]`` JSON envelope protocol, negotiates
client options on connect, and routes incoming frames to listeners by
command name.
"""

__version__ = "0.1.0"

from mud_bridge.client import ClientServerOptions, ConnectionSession, SessionState
from mud_bridge.config import ClientConfig, load_client_config
from mud_bridge.errors import (
    BridgeError,
    KwargMissingError,
    KwargTypeError,
    NotConnectedError,
    ProtocolDecodeError,
    TransportError,
)
from mud_bridge.protocol import MessageEnvelope, decode, encode, new_message

__all__ = [
    "BridgeError",
    "ClientConfig",
    "ClientServerOptions",
    "ConnectionSession",
    "KwargMissingError",
    "KwargTypeError",
    "MessageEnvelope",
    "NotConnectedError",
    "ProtocolDecodeError",
    "SessionState",
    "TransportError",
    "__version__",
    "decode",
    "encode",
    "load_client_config",
    "new_message",
]
