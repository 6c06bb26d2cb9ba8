"""Connection lifecycle for the mud_bridge client.

:class:`ConnectionSession` owns the transport and the listener registry and
walks the state machine::

    disconnected -> connecting -> connected -> ready -> disconnected

``connected`` means the socket is open but the options handshake has not been
answered yet. Any close or error drops straight back to ``disconnected``;
reconnecting always takes an explicit :meth:`ConnectionSession.connect` (or a
:meth:`ConnectionSession.poll` tick from the caller).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Coroutine, Optional

from mud_bridge.config import ClientConfig, load_client_config, resolve_url
from mud_bridge.errors import (
    BackpressureError,
    BridgeError,
    HandshakeError,
    HandshakeTimeoutError,
    NotConnectedError,
    ProtocolDecodeError,
    TransportError,
)
from mud_bridge.protocol import MessageEnvelope, decode, describe, new_message, prepare_outbound

from .listeners import ListenerRegistry, MessageListener
from .options import ClientServerOptions, OptionsNegotiator
from .transport import Transport, WebsocketTransport

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    NOT_NEGOTIATED = "connected"
    READY = "ready"


_TRANSITIONS = {
    SessionState.DISCONNECTED: {SessionState.CONNECTING},
    SessionState.CONNECTING: {SessionState.NOT_NEGOTIATED, SessionState.DISCONNECTED},
    SessionState.NOT_NEGOTIATED: {SessionState.READY, SessionState.DISCONNECTED},
    SessionState.READY: {SessionState.DISCONNECTED},
}


@dataclass
class SessionStats:
    connects: int = 0
    frames_in: int = 0
    frames_out: int = 0
    decode_errors: int = 0
    dropped_frames: int = 0
    listener_failures: int = 0


@dataclass
class _Outbound:
    text: str
    future: asyncio.Future[None]
    size: int


def _consume_result(future: asyncio.Future[None]) -> None:
    # Mark the exception retrieved; callers that await the future still see it.
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("send failed: %s", exc)


class ConnectionSession:
    """Client side of one game-server connection."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport_factory: Callable[[], Transport] | None = None,
        negotiator: OptionsNegotiator | None = None,
    ) -> None:
        self.config = config if config is not None else load_client_config()
        self._transport_factory: Callable[[], Transport] = transport_factory or WebsocketTransport
        self._registry = ListenerRegistry()
        self._state = SessionState.DISCONNECTED
        self._transport: Transport | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._sender_task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[_Outbound] | None = None
        self._pending_bytes = 0
        self._handshake_timer: asyncio.TimerHandle | None = None
        self._ready_event = asyncio.Event()
        self._background: set[asyncio.Task[Any]] = set()
        self.url: str | None = None
        self.last_error: BaseException | None = None
        self.last_protocol_error: ProtocolDecodeError | None = None
        self.stats = SessionStats()
        # Registered first so options are current before other client_options listeners run.
        self.negotiator = negotiator if negotiator is not None else OptionsNegotiator()
        self.negotiator.attach(self)

    def __repr__(self) -> str:
        return f"<ConnectionSession {self.url or self.config.url} {self._state.value}>"

    # --- State ------------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def options(self) -> ClientServerOptions:
        return self.negotiator.options

    @property
    def registry(self) -> ListenerRegistry:
        return self._registry

    def is_connected(self) -> bool:
        return self._state in (SessionState.NOT_NEGOTIATED, SessionState.READY)

    def is_connecting(self) -> bool:
        return self._state is SessionState.CONNECTING

    def is_negotiating(self) -> bool:
        return self._state is SessionState.NOT_NEGOTIATED

    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def _transition(self, new: SessionState) -> None:
        old = self._state
        if new not in _TRANSITIONS[old]:
            raise RuntimeError(f"invalid session transition {old.value} -> {new.value}")
        self._state = new
        logger.info("Session %s -> %s", old.value, new.value)

    # --- Consumer API -----------------------------------------------------------------
    def register_listener(self, subscriber: MessageListener | Callable[[MessageEnvelope], Any], command: str) -> bool:
        return self._registry.register(subscriber, command)

    @staticmethod
    def new_message(command: str = "", args: Any = None, kwargs: Any = None) -> MessageEnvelope:
        return new_message(command, args, kwargs)

    def connect(self, address: Optional[str] = None) -> asyncio.Task[None] | None:
        """Start a connection attempt; a no-op unless currently disconnected.

        Must be called from a running event loop. Returns the task driving the
        connection, or None when the call was ignored.
        """

        if self._state is not SessionState.DISCONNECTED:
            logger.debug("connect ignored; session is %s", self._state.value)
            return None
        url = resolve_url(address, self.config)
        loop = asyncio.get_running_loop()
        transport = self._transport_factory()
        self.url = url
        self.last_error = None
        self._transport = transport
        self._transition(SessionState.CONNECTING)
        self.stats.connects += 1
        task = loop.create_task(self._run_connection(transport, url))
        self._connect_task = task
        return task

    def poll(self) -> bool:
        """External tick: attempt a connection when neither connecting nor connected."""

        if self._state is SessionState.DISCONNECTED:
            return self.connect() is not None
        return False

    async def wait_ready(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def send(self, envelope: MessageEnvelope) -> asyncio.Future[None]:
        """Queue *envelope* for delivery; only allowed once the session is ready.

        The returned future resolves when the frame has been written, fails
        with :class:`TransportError` if the write fails, and is cancelled if the
        connection drops first.
        """

        if self._state is not SessionState.READY:
            raise NotConnectedError(f"cannot send {envelope.command!r}: session is {self._state.value}")
        return self._submit(envelope)

    def send_handshake(self, envelope: MessageEnvelope) -> asyncio.Future[None]:
        """Like :meth:`send`, but also accepted before negotiation completes."""

        if not self.is_connected():
            raise NotConnectedError(f"cannot send {envelope.command!r}: session is {self._state.value}")
        return self._submit(envelope)

    async def close(self) -> None:
        """Cancel any in-flight connect, close the transport, and disconnect."""

        task = self._connect_task
        self._connect_task = None
        transport = self._drop_connection()
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if transport is not None:
            await self._close_quietly(transport)

    # --- Handshake hooks (used by the negotiator) -------------------------------------
    def mark_ready(self) -> None:
        if self._state is not SessionState.NOT_NEGOTIATED:
            return
        self._cancel_handshake_timer()
        self._transition(SessionState.READY)
        self._ready_event.set()

    def fail_handshake(self, exc: BaseException) -> None:
        if self._state is not SessionState.NOT_NEGOTIATED:
            logger.debug("fail_handshake ignored; session is %s", self._state.value)
            return
        logger.error("Options handshake failed: %s", exc)
        self.last_error = exc
        self._close_in_background(self._drop_connection())

    def _on_handshake_timeout(self, transport: Transport) -> None:
        self._handshake_timer = None
        if self._transport is transport and self._state is SessionState.NOT_NEGOTIATED:
            timeout = self.config.handshake_timeout_s
            self.fail_handshake(HandshakeTimeoutError(f"no client_options within {timeout:.1f}s"))

    def _cancel_handshake_timer(self) -> None:
        timer = self._handshake_timer
        self._handshake_timer = None
        if timer is not None:
            timer.cancel()

    # --- Transport events -------------------------------------------------------------
    def handle_open(self) -> None:
        if self._state is not SessionState.CONNECTING:
            logger.warning("open event while %s; ignoring", self._state.value)
            return
        loop = asyncio.get_running_loop()
        transport = self._transport
        if transport is None:
            raise RuntimeError("open event without a transport")
        outbox: asyncio.Queue[_Outbound] = asyncio.Queue()
        self._outbox = outbox
        self._pending_bytes = 0
        self._transition(SessionState.NOT_NEGOTIATED)
        logger.info("Connected to %s", self.url)
        self._sender_task = loop.create_task(self._sender(transport, outbox))
        timeout = self.config.handshake_timeout_s
        if timeout > 0:
            self._handshake_timer = loop.call_later(timeout, self._on_handshake_timeout, transport)
        try:
            self.negotiator.on_connected()
        except BridgeError as exc:
            self.fail_handshake(HandshakeError(f"options request failed: {exc}"))

    def handle_message(self, raw: str | bytes | bytearray) -> MessageEnvelope | None:
        """Decode one inbound frame and dispatch it; return the envelope or None if dropped."""

        state = self._state
        if state in (SessionState.DISCONNECTED, SessionState.CONNECTING):
            self.stats.dropped_frames += 1
            logger.warning("protocol violation: frame received while %s; dropped", state.value)
            return None
        self.stats.frames_in += 1
        try:
            envelope = decode(raw)
        except ProtocolDecodeError as exc:
            self.stats.decode_errors += 1
            self.last_protocol_error = exc
            logger.warning("dropping malformed frame: %s", exc)
            return None
        if self.config.log_policy.log_frames:
            logger.debug("<- %s", describe(envelope))
        failures = self._registry.dispatch(envelope)
        self.stats.listener_failures += len(failures)
        return envelope

    def handle_close(self) -> None:
        if self._state is SessionState.DISCONNECTED:
            return
        logger.info("Connection to %s closed", self.url)
        self._close_in_background(self._drop_connection())

    def handle_error(self, exc: BaseException) -> None:
        logger.warning("Transport error on %s: %s", self.url, exc)
        self.last_error = exc
        self._close_in_background(self._drop_connection())

    # --- Internals --------------------------------------------------------------------
    async def _run_connection(self, transport: Transport, url: str) -> None:
        logger.info("Connecting to %s", url)
        timeout = self.config.connect_timeout_s or None
        try:
            await asyncio.wait_for(transport.open(url), timeout)
        except asyncio.TimeoutError:
            if self._transport is transport:
                self.handle_error(TransportError(f"connect to {url} timed out"))
            await self._close_quietly(transport)
            return
        except TransportError as exc:
            if self._transport is transport:
                self.handle_error(exc)
            return
        if self._transport is not transport:
            await self._close_quietly(transport)
            return
        self.handle_open()
        try:
            async for raw in transport:
                if self._transport is not transport:
                    break
                self.handle_message(raw)
        except TransportError as exc:
            if self._transport is transport:
                self.handle_error(exc)
            return
        except Exception as exc:
            logger.exception("connection reader failed")
            if self._transport is transport:
                self.handle_error(TransportError(f"reader failed: {exc!r}"))
            return
        if self._transport is transport:
            self.handle_close()

    async def _sender(self, transport: Transport, outbox: asyncio.Queue[_Outbound]) -> None:
        while True:
            item = await outbox.get()
            try:
                await transport.send_text(item.text)
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except TransportError as exc:
                if not item.future.done():
                    item.future.set_exception(exc)
                if self._transport is transport:
                    self.handle_error(exc)
                return
            finally:
                if self._outbox is outbox:
                    self._pending_bytes = max(0, self._pending_bytes - item.size)
            self.stats.frames_out += 1
            if not item.future.done():
                item.future.set_result(None)

    def _submit(self, envelope: MessageEnvelope) -> asyncio.Future[None]:
        text = prepare_outbound(envelope)
        outbox = self._outbox
        if outbox is None:
            raise NotConnectedError("no active connection")
        size = len(text.encode("utf-8"))
        limit = self.config.max_pending_bytes
        if limit and self._pending_bytes and self._pending_bytes + size > limit:
            raise BackpressureError(
                f"{self._pending_bytes} bytes already queued; refusing {size} more (limit {limit})"
            )
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_result)
        outbox.put_nowait(_Outbound(text, future, size))
        self._pending_bytes += size
        if self.config.log_policy.log_frames:
            logger.debug("-> %s", text)
        return future

    def _drop_connection(self) -> Transport | None:
        """Enter ``disconnected`` and release per-connection state; return the old transport."""

        transport = self._transport
        self._transport = None
        self._cancel_handshake_timer()
        sender = self._sender_task
        self._sender_task = None
        if sender is not None and sender is not asyncio.current_task():
            sender.cancel()
        self._drain_outbox()
        self._ready_event.clear()
        if self._state is not SessionState.DISCONNECTED:
            self._transition(SessionState.DISCONNECTED)
        return transport

    def _drain_outbox(self) -> None:
        outbox = self._outbox
        self._outbox = None
        self._pending_bytes = 0
        if outbox is None:
            return
        dropped = 0
        while not outbox.empty():
            item = outbox.get_nowait()
            if not item.future.done():
                item.future.cancel()
            dropped += 1
        if dropped:
            logger.info("dropped %d queued frame(s)", dropped)

    def _close_in_background(self, transport: Transport | None) -> None:
        if transport is None:
            return
        self._spawn(self._close_quietly(transport))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception:
            logger.debug("transport close failed", exc_info=True)


__all__ = ["ConnectionSession", "SessionState", "SessionStats"]
