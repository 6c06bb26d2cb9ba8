from __future__ import annotations

import asyncio
import json
from typing import Callable, Optional

import pytest

from mud_bridge.config import ClientConfig
from mud_bridge.client.session import ConnectionSession

_CLOSED = object()

OPTIONS_REPLY = json.dumps(
    ["client_options", [], {"ENCODING": "utf-8", "NOCOLOR": False, "UTF-8": True, "INPUTDEBUG": False}]
)


class FakeTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self, responder: Optional[Callable[[str], list[str]]] = None) -> None:
        self.responder = responder
        self.sent: list[str] = []
        self.opened_url: str | None = None
        self.closed = False
        self.fail_open: BaseException | None = None
        self.fail_send: BaseException | None = None
        self.open_gate: asyncio.Event | None = None
        self.send_gate: asyncio.Event | None = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def open(self, url: str) -> None:
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.fail_open is not None:
            raise self.fail_open
        self.opened_url = url

    async def send_text(self, text: str) -> None:
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(text)
        if self.responder is not None:
            for reply in self.responder(text):
                self.feed(reply)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSED)

    def feed(self, raw: str | bytes) -> None:
        self._incoming.put_nowait(raw)

    def remote_close(self) -> None:
        self._incoming.put_nowait(_CLOSED)

    def remote_error(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    async def _frames(self):
        while True:
            item = await self._incoming.get()
            if item is _CLOSED:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def __aiter__(self):
        return self._frames()


class TransportFactory:
    def __init__(self) -> None:
        self.created: list[FakeTransport] = []
        self.responder: Optional[Callable[[str], list[str]]] = None
        self.configure: Optional[Callable[[FakeTransport], None]] = None

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(self.responder)
        if self.configure is not None:
            self.configure(transport)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def transport_factory() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def make_session(transport_factory):
    def _make(**overrides) -> ConnectionSession:
        values = {"handshake_timeout_s": 0.0, "connect_timeout_s": 1.0}
        values.update(overrides)
        return ConnectionSession(ClientConfig(**values), transport_factory=transport_factory)

    return _make


@pytest.fixture
def settle():
    async def _settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def options_reply() -> str:
    return OPTIONS_REPLY
