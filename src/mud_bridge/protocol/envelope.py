"""Envelope data type and the JSON wire codec.

Every frame exchanged with the game server is a single JSON array::

    ["text", ["look"], {}]

holding the command name, the positional ``args`` and the keyed ``kwargs``.
:func:`encode` and :func:`decode` are exact inverses; :func:`prepare_outbound`
adds the transport clean-up applied right before a frame is written.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from mud_bridge.errors import KwargTypeError, ProtocolDecodeError

from .kwargs import KwargStore

# Well-known commands
TEXT = "text"
HELLO = "hello"
CLIENT_OPTIONS = "client_options"

# Keys carried by a client_options frame
OPTION_ENCODING = "ENCODING"
OPTION_NOCOLOR = "NOCOLOR"
OPTION_UTF8 = "UTF-8"
OPTION_INPUTDEBUG = "INPUTDEBUG"

ZERO_WIDTH_SPACE = "\u200b"


@dataclass(slots=True)
class MessageEnvelope:
    """One protocol unit: a command with positional and keyed arguments.

    Outbound envelopes may be filled in step by step; a command is only
    required once the envelope is encoded.
    """

    command: str = ""
    args: List[str] = field(default_factory=list)
    kwargs: KwargStore = field(default_factory=KwargStore)

    def __post_init__(self) -> None:
        if self.args is None:
            self.args = []
        else:
            self.args = list(self.args)
        if self.kwargs is None:
            self.kwargs = KwargStore()
        elif not isinstance(self.kwargs, KwargStore):
            self.kwargs = KwargStore(self.kwargs)

    def set_kwarg(self, key: str, value: Any) -> "MessageEnvelope":
        self.kwargs.set(key, value)
        return self

    def to_wire(self) -> list[Any]:
        if not isinstance(self.command, str) or not self.command:
            raise ValueError("envelope command must be a non-empty string")
        return [self.command, list(self.args), self.kwargs.to_json()]


def new_message(
    command: str = "",
    args: Optional[Iterable[str]] = None,
    kwargs: Optional[Mapping[str, Any]] = None,
) -> MessageEnvelope:
    """Create an outbound envelope."""

    return MessageEnvelope(
        command=command,
        args=[str(arg) for arg in args or ()],
        kwargs=KwargStore(kwargs),
    )


def build_text(text: str) -> MessageEnvelope:
    return new_message(TEXT, [text])


def build_hello() -> MessageEnvelope:
    """Options request: ``["hello", [], {"get": true}]``."""

    return new_message(HELLO, kwargs={"get": True})


def encode(envelope: MessageEnvelope) -> str:
    """Serialise *envelope*; raise ValueError for content that is not strict JSON."""

    return json.dumps(envelope.to_wire(), ensure_ascii=False, allow_nan=False)


def strip_zero_width(text: str) -> str:
    return text.replace(ZERO_WIDTH_SPACE, "")


def prepare_outbound(envelope: MessageEnvelope) -> str:
    """Encode *envelope* and apply the outbound transport clean-up."""

    return strip_zero_width(encode(envelope))


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite number {token} is not JSON")


def _as_args(value: Any, raw: str | bytes | bytearray) -> List[str]:
    if not isinstance(value, list):
        raise ProtocolDecodeError("envelope args must be a JSON array", raw)
    for position, item in enumerate(value):
        if not isinstance(item, str):
            raise ProtocolDecodeError(f"envelope arg {position} must be a string", raw)
    return list(value)


def decode(raw: str | bytes | bytearray) -> MessageEnvelope:
    """Parse one wire frame; raise :class:`ProtocolDecodeError` on any defect."""

    text = raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolDecodeError("frame is not valid UTF-8", raw) from exc
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (TypeError, ValueError) as exc:
        raise ProtocolDecodeError(f"frame is not valid JSON: {exc}", raw) from exc
    except RecursionError as exc:
        raise ProtocolDecodeError("frame is nested too deeply", raw) from exc

    if not isinstance(data, list) or len(data) != 3:
        raise ProtocolDecodeError("frame must be a JSON array of [command, args, kwargs]", raw)
    command, args, kwargs = data
    if not isinstance(command, str) or not command:
        raise ProtocolDecodeError("envelope command must be a non-empty string", raw)
    parsed_args = _as_args(args, raw)
    if not isinstance(kwargs, dict):
        raise ProtocolDecodeError("envelope kwargs must be a JSON object", raw)
    try:
        store = KwargStore.from_json(kwargs)
    except KwargTypeError as exc:
        raise ProtocolDecodeError(str(exc), raw) from exc
    except RecursionError as exc:
        raise ProtocolDecodeError("kwargs are nested too deeply", raw) from exc
    return MessageEnvelope(command=command, args=parsed_args, kwargs=store)


def describe(envelope: MessageEnvelope, *, limit: int = 120) -> str:
    """Short single-line rendering used in log messages."""

    try:
        text = encode(envelope)
    except ValueError:
        text = repr(envelope)
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


__all__ = [
    "CLIENT_OPTIONS",
    "HELLO",
    "OPTION_ENCODING",
    "OPTION_INPUTDEBUG",
    "OPTION_NOCOLOR",
    "OPTION_UTF8",
    "TEXT",
    "ZERO_WIDTH_SPACE",
    "MessageEnvelope",
    "build_hello",
    "build_text",
    "decode",
    "describe",
    "encode",
    "new_message",
    "prepare_outbound",
    "strip_zero_width",
]
