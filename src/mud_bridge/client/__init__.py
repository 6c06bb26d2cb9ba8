"""Client side of the bridge: session lifecycle, dispatch, and handshake."""

from __future__ import annotations

from .listeners import FunctionListener, ListenerRegistry, MessageListener
from .options import ClientServerOptions, OptionsNegotiator
from .session import ConnectionSession, SessionState, SessionStats
from .transport import Transport, WebsocketTransport

__all__ = [
    "ClientServerOptions",
    "ConnectionSession",
    "FunctionListener",
    "ListenerRegistry",
    "MessageListener",
    "OptionsNegotiator",
    "SessionState",
    "SessionStats",
    "Transport",
    "WebsocketTransport",
]
