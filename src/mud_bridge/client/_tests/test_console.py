from __future__ import annotations

import asyncio
import io
import json
import os

import pytest

from mud_bridge.client.console import ConsoleListener, run_console, stdin_lines
from mud_bridge.protocol import new_message


def test_console_listener_prints_text_payload() -> None:
    out = io.StringIO()
    listener = ConsoleListener(out)
    listener.on_message(new_message("text", ["You are standing in a field."]))
    listener.on_message(new_message("text"))
    listener.on_message(new_message("prompt", [">"]))
    assert out.getvalue() == "You are standing in a field.\n"


def test_run_console_connects_and_forwards_lines(make_session, transport_factory, options_reply) -> None:
    def _server(text: str) -> list[str]:
        command, args, _ = json.loads(text)
        if command == "hello":
            return [options_reply]
        return [json.dumps(["text", [f"echo {args[0]}"], {}])]

    transport_factory.responder = _server

    async def lines():
        yield "look"
        yield ""
        yield "inventory"

    async def scenario():
        session = make_session(poll_interval_s=0.01)
        out = io.StringIO()
        sent = await run_console(session, lines(), output=out)
        return session, sent

    session, sent = asyncio.run(scenario())
    assert sent == 2
    assert transport_factory.last.sent == [
        '["hello", [], {"get": true}]',
        '["text", ["look"], {}]',
        '["text", ["inventory"], {}]',
    ]
    assert not session.is_connected()
    assert transport_factory.last.closed


def test_cancel_while_waiting_for_input_closes_promptly(make_session, transport_factory, options_reply) -> None:
    transport_factory.responder = lambda text: [options_reply] if json.loads(text)[0] == "hello" else []
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "r")

    async def scenario():
        session = make_session(poll_interval_s=0.01)
        task = asyncio.create_task(run_console(session, stdin_lines(reader), output=io.StringIO()))
        assert await session.wait_ready(1.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 1.0)
        return session

    try:
        session = asyncio.run(scenario())
        assert not session.is_connected()
        assert transport_factory.last.closed
    finally:
        os.close(write_fd)


def test_stdin_lines_reads_until_end_of_input() -> None:
    read_fd, write_fd = os.pipe()
    with os.fdopen(write_fd, "w") as writer:
        writer.write("look\r\nsay hi\n")

    async def scenario():
        with os.fdopen(read_fd, "r") as reader:
            return [line async for line in stdin_lines(reader)]

    assert asyncio.run(scenario()) == ["look", "say hi"]
