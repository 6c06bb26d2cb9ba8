from __future__ import annotations

import asyncio
import json
import socket

import pytest

websockets = pytest.importorskip("websockets")

from mud_bridge.client.session import ConnectionSession, SessionState
from mud_bridge.client.transport import WebsocketTransport
from mud_bridge.config import ClientConfig
from mud_bridge.errors import TransportError
from mud_bridge.protocol import build_text


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _echo_game(ws) -> None:
    async for raw in ws:
        command, args, kwargs = json.loads(raw)
        if command == "hello" and kwargs.get("get"):
            await ws.send(
                json.dumps(
                    ["client_options", [], {"ENCODING": "utf-8", "NOCOLOR": True, "UTF-8": True, "INPUTDEBUG": False}]
                )
            )
            await ws.send(json.dumps(["text", ["Welcome!"], {}]))
        elif command == "text":
            await ws.send(json.dumps(["text", [f"You said: {args[0]}"], {}]))


def test_session_against_websocket_server() -> None:
    async def scenario():
        async with websockets.serve(_echo_game, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            session = ConnectionSession(ClientConfig(host="127.0.0.1", port=port))
            texts: list[str] = []
            session.register_listener(lambda env: texts.append(env.args[0]), "text")

            session.connect()
            assert await session.wait_ready(5.0)
            assert session.options.no_color is True

            await asyncio.wait_for(session.send(build_text("look")), 5.0)
            for _ in range(200):
                if len(texts) >= 2:
                    break
                await asyncio.sleep(0.01)
            await session.close()
            return texts, session.state

    texts, state = asyncio.run(scenario())
    assert texts == ["Welcome!", "You said: look"]
    assert state is SessionState.DISCONNECTED


def test_server_closing_moves_session_to_disconnected() -> None:
    async def _hang_up(ws) -> None:
        await ws.recv()
        await ws.close()

    async def scenario():
        async with websockets.serve(_hang_up, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            session = ConnectionSession(ClientConfig(host="127.0.0.1", port=port, handshake_timeout_s=5.0))
            task = session.connect()
            await asyncio.wait_for(task, 5.0)
            return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.DISCONNECTED
    assert session.stats.connects == 1


def test_open_refused_raises_transport_error() -> None:
    port = _free_port()

    async def scenario():
        transport = WebsocketTransport()
        with pytest.raises(TransportError):
            await transport.open(f"ws://127.0.0.1:{port}")
        assert not transport.is_open

    asyncio.run(scenario())


def test_send_before_open_raises_transport_error() -> None:
    async def scenario():
        with pytest.raises(TransportError):
            await WebsocketTransport().send_text("[]")

    asyncio.run(scenario())
