from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from mud_bridge.client.listeners import FunctionListener, ListenerRegistry
from mud_bridge.protocol import MessageEnvelope, new_message


class _Recorder:
    def __init__(self, log: list, name: str) -> None:
        self.log = log
        self.name = name

    def on_message(self, envelope: MessageEnvelope) -> None:
        self.log.append((self.name, envelope.command, list(envelope.args)))


def test_duplicate_registration_dispatches_once() -> None:
    registry = ListenerRegistry()
    log: list = []
    listener = _Recorder(log, "a")

    assert registry.register(listener, "text") is True
    assert registry.register(listener, "text") is False
    assert len(registry) == 1

    registry.dispatch(new_message("text", ["look"]))
    assert log == [("a", "text", ["look"])]


def test_same_listener_may_watch_several_commands() -> None:
    registry = ListenerRegistry()
    log: list = []
    listener = _Recorder(log, "a")
    registry.register(listener, "text")
    registry.register(listener, "prompt")

    registry.dispatch(new_message("prompt", [">"]))
    assert log == [("a", "prompt", [">"])]


def test_dispatch_only_reaches_matching_command() -> None:
    registry = ListenerRegistry()
    log: list = []
    registry.register(_Recorder(log, "texter"), "text")
    registry.register(_Recorder(log, "options"), "client_options")

    registry.dispatch(new_message("text", ["hi"]))
    assert [name for name, _, _ in log] == ["texter"]

    log.clear()
    registry.dispatch(new_message("unknown"))
    assert log == []


def test_dispatch_preserves_registration_order() -> None:
    registry = ListenerRegistry()
    log: list = []
    for name in ("first", "second", "third"):
        registry.register(_Recorder(log, name), "text")

    registry.dispatch(new_message("text", ["x"]))
    assert [name for name, _, _ in log] == ["first", "second", "third"]


def test_failing_subscriber_is_isolated() -> None:
    registry = ListenerRegistry()
    log: list = []

    def _broken(envelope: MessageEnvelope) -> None:
        raise ValueError("bad listener")

    registry.register(_broken, "text")
    registry.register(_Recorder(log, "after"), "text")

    failures = registry.dispatch(new_message("text", ["hi"]))

    assert log == [("after", "text", ["hi"])]
    assert len(failures) == 1
    assert isinstance(failures[0].error, ValueError)
    assert failures[0].registration.command == "text"


def test_plain_callables_are_deduplicated() -> None:
    registry = ListenerRegistry()
    seen: list = []
    assert registry.register(seen.append, "text") is True
    assert registry.register(seen.append, "text") is False
    assert registry.register(FunctionListener(seen.append), "text") is False

    registry.dispatch(new_message("text", ["once"]))
    assert len(seen) == 1


def test_listener_registered_during_dispatch_waits_for_next_frame() -> None:
    registry = ListenerRegistry()
    late: list = []

    def _register_more(envelope: MessageEnvelope) -> None:
        registry.register(late.append, "text")

    registry.register(_register_more, "text")
    registry.dispatch(new_message("text", ["1"]))
    assert late == []
    registry.dispatch(new_message("text", ["2"]))
    assert [env.args for env in late] == [["2"]]


def test_register_rejects_bad_arguments() -> None:
    registry = ListenerRegistry()
    with pytest.raises(ValueError):
        registry.register(lambda env: None, "")
    with pytest.raises(TypeError):
        registry.register(object(), "text")  # type: ignore[arg-type]


def test_distinct_listeners_that_compare_equal_are_both_registered() -> None:
    @dataclass
    class _ValueListener:
        log: list = field(default_factory=list)

        def on_message(self, envelope: MessageEnvelope) -> None:
            self.log.append(envelope.args)

    first, second = _ValueListener(), _ValueListener()
    assert first == second

    registry = ListenerRegistry()
    assert registry.register(first, "text") is True
    assert registry.register(second, "text") is True
    assert registry.register(first, "text") is False

    registry.dispatch(new_message("text", ["hi"]))
    assert first.log == [["hi"]]
    assert second.log == [["hi"]]
