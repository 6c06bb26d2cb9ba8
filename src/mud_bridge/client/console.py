"""Line-oriented text console on top of a :class:`ConnectionSession`.

Prints every ``text`` frame from the server and forwards each input line as a
``text`` envelope. It also owns the polling tick that (re)connects the
session, since reconnect policy belongs to the caller rather than the session.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from contextlib import suppress
from typing import AsyncIterator, Optional, TextIO

from mud_bridge.errors import BridgeError
from mud_bridge.protocol import TEXT, MessageEnvelope, build_text

from .session import ConnectionSession

logger = logging.getLogger(__name__)


class ConsoleListener:
    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def on_message(self, envelope: MessageEnvelope) -> None:
        if envelope.command != TEXT or not envelope.args:
            return
        stream = self._stream if self._stream is not None else sys.stdout
        print(envelope.args[0], file=stream, flush=True)


async def stdin_lines(stream: Optional[TextIO] = None) -> AsyncIterator[str]:
    """Yield input lines read on a daemon thread."""

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
    source = stream if stream is not None else sys.stdin

    def _deliver(line: Optional[str]) -> None:
        # The loop may already be closed when input arrives after shutdown.
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(queue.put_nowait, line)

    def _pump() -> None:
        try:
            for line in iter(source.readline, ""):
                _deliver(line)
        except (OSError, ValueError):
            logger.debug("console input closed", exc_info=True)
        finally:
            _deliver(None)

    threading.Thread(target=_pump, name="mud-bridge-stdin", daemon=True).start()
    while True:
        line = await queue.get()
        if line is None:
            return
        yield line.rstrip("\r\n")


async def poll_forever(session: ConnectionSession, interval: float) -> None:
    while True:
        session.poll()
        await asyncio.sleep(interval)


async def run_console(
    session: ConnectionSession,
    lines: Optional[AsyncIterator[str]] = None,
    *,
    output: Optional[TextIO] = None,
) -> int:
    """Run until *lines* is exhausted; return the number of lines sent."""

    session.register_listener(ConsoleListener(output), TEXT)
    poller = asyncio.create_task(poll_forever(session, session.config.poll_interval_s))
    wait_s = session.config.connect_timeout_s + session.config.handshake_timeout_s
    sent = 0
    try:
        async for line in lines if lines is not None else stdin_lines():
            if not line:
                continue
            if not session.is_ready() and not await session.wait_ready(wait_s or None):
                logger.warning("not connected; dropped input %r", line)
                continue
            try:
                delivery = session.send(build_text(line))
            except BridgeError as exc:
                logger.warning("input %r not sent: %s", line, exc)
                continue
            await asyncio.wait([delivery])
            if delivery.cancelled() or delivery.exception() is not None:
                logger.warning("input %r not delivered; connection dropped", line)
                continue
            sent += 1
    finally:
        poller.cancel()
        await asyncio.gather(poller, return_exceptions=True)
        await session.close()
    return sent


__all__ = ["ConsoleListener", "poll_forever", "run_console", "stdin_lines"]
