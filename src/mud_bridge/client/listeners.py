"""Command-name based fan-out of decoded envelopes to subscribers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Protocol, runtime_checkable

from mud_bridge.protocol import MessageEnvelope

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageListener(Protocol):
    """Anything that wants to receive envelopes for one or more commands."""

    def on_message(self, envelope: MessageEnvelope) -> None:
        ...


@dataclass(frozen=True)
class FunctionListener:
    """Adapts a plain callable to :class:`MessageListener`.

    Two adapters around the same callable compare equal, so registering a
    function twice for one command is still a no-op.
    """

    callback: Callable[[MessageEnvelope], Any]

    def on_message(self, envelope: MessageEnvelope) -> None:
        self.callback(envelope)


@dataclass(frozen=True)
class ListenerRegistration:
    subscriber: MessageListener
    command: str


@dataclass(frozen=True)
class DispatchFailure:
    registration: ListenerRegistration
    error: BaseException


def as_listener(subscriber: MessageListener | Callable[[MessageEnvelope], Any]) -> MessageListener:
    if hasattr(subscriber, "on_message"):
        return subscriber  # type: ignore[return-value]
    if callable(subscriber):
        return FunctionListener(subscriber)
    raise TypeError(f"{subscriber!r} is neither a MessageListener nor callable")


def _same_listener(a: MessageListener, b: MessageListener) -> bool:
    if isinstance(a, FunctionListener) and isinstance(b, FunctionListener):
        return a == b
    return a is b


class ListenerRegistry:
    """Ordered (subscriber, command) registrations.

    There is no removal: subscribers live as long as the registry does.
    """

    def __init__(self) -> None:
        self._registrations: List[ListenerRegistration] = []

    def register(
        self,
        subscriber: MessageListener | Callable[[MessageEnvelope], Any],
        command: str,
    ) -> bool:
        """Add a registration; return False when the pair is already present."""

        if not isinstance(command, str) or not command:
            raise ValueError("command name must be a non-empty string")
        listener = as_listener(subscriber)
        for registration in self._registrations:
            if registration.command == command and _same_listener(registration.subscriber, listener):
                return False
        self._registrations.append(ListenerRegistration(listener, command))
        logger.debug("registered %r for %s", listener, command)
        return True

    def registrations(self, command: str | None = None) -> list[ListenerRegistration]:
        if command is None:
            return list(self._registrations)
        return [r for r in self._registrations if r.command == command]

    def __len__(self) -> int:
        return len(self._registrations)

    def dispatch(self, envelope: MessageEnvelope) -> list[DispatchFailure]:
        """Deliver *envelope* to every matching subscriber in registration order.

        A subscriber that raises is logged and skipped; delivery continues with
        the next one. The failures are returned to the caller.
        """

        failures: list[DispatchFailure] = []
        # Snapshot so a subscriber registering during dispatch does not see this frame.
        for registration in self.registrations(envelope.command):
            try:
                registration.subscriber.on_message(envelope)
            except Exception as exc:
                logger.exception(
                    "listener %r failed handling %s", registration.subscriber, envelope.command
                )
                failures.append(DispatchFailure(registration, exc))
        return failures


__all__ = [
    "DispatchFailure",
    "FunctionListener",
    "ListenerRegistration",
    "ListenerRegistry",
    "MessageListener",
    "as_listener",
]
