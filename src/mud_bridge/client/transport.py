"""Websocket transport used by :class:`~mud_bridge.client.session.ConnectionSession`.

The session only depends on the small :class:`Transport` protocol: open a URL,
iterate received frames, send text, close. Library exceptions are translated
to :class:`~mud_bridge.errors.TransportError` at this boundary.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from mud_bridge.errors import TransportError

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (OSError, EOFError, WebSocketException)


class Transport(Protocol):
    async def open(self, url: str) -> None:
        ...

    async def send_text(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        ...


class WebsocketTransport:
    """:class:`Transport` backed by a ``websockets`` client connection."""

    def __init__(self, *, max_size: Optional[int] = 2**20) -> None:
        self._max_size = max_size
        self._ws = None
        self.url: str | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def open(self, url: str) -> None:
        if self._ws is not None:
            raise TransportError("transport is already open")
        try:
            self._ws = await websockets.connect(url, max_size=self._max_size)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"could not connect to {url}: {exc}") from exc
        self.url = url
        logger.debug("websocket open: %s", url)

    async def send_text(self, text: str) -> None:
        ws = self._ws
        if ws is None:
            raise TransportError("transport is not open")
        try:
            await ws.send(text)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"send failed: {exc}") from exc

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close()
        except _TRANSPORT_ERRORS:
            logger.debug("websocket close failed", exc_info=True)

    async def _frames(self) -> AsyncIterator[str | bytes]:
        ws = self._ws
        if ws is None:
            raise TransportError("transport is not open")
        try:
            async for message in ws:
                yield message
        except ConnectionClosedOK:
            return
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(f"connection lost: {exc}") from exc

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._frames()


__all__ = ["Transport", "WebsocketTransport"]
