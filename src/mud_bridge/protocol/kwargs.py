"""Typed storage for the keyed arguments of an envelope.

Values are kept as :class:`KwargValue` instances, a small tagged variant that
records the JSON type a value arrived with. Decoding never coerces; coercion
only happens when a caller asks for a value with :meth:`KwargStore.get`, and a
mismatch between the stored tag and the requested type raises
:class:`~mud_bridge.errors.KwargTypeError` instead of guessing.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, TypeVar

from mud_bridge.errors import KwargMissingError, KwargTypeError

T = TypeVar("T")


class KwargKind(Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    MAPPING = "mapping"
    ARRAY = "array"
    NULL = "null"


@dataclass(frozen=True, eq=True)
class KwargValue:
    """A JSON value together with the tag of the type it was stored as."""

    kind: KwargKind
    value: Any

    @classmethod
    def from_json(cls, raw: Any, *, key: str = "?") -> "KwargValue":
        # bool is a subclass of int, so it has to be checked first.
        if raw is None:
            return cls(KwargKind.NULL, None)
        if isinstance(raw, bool):
            return cls(KwargKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and not math.isfinite(raw):
                raise KwargTypeError(key, "a finite number", repr(raw))
            return cls(KwargKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(KwargKind.STRING, raw)
        if isinstance(raw, Mapping):
            return cls(KwargKind.MAPPING, {str(k): copy.deepcopy(v) for k, v in raw.items()})
        if isinstance(raw, (list, tuple)):
            return cls(KwargKind.ARRAY, copy.deepcopy(list(raw)))
        raise KwargTypeError(key, "a JSON value", type(raw).__name__)

    def to_json(self) -> Any:
        if self.kind in (KwargKind.MAPPING, KwargKind.ARRAY):
            return copy.deepcopy(self.value)
        return self.value


def _read_as(key: str, item: KwargValue, expected: type) -> Any:
    kind = item.kind
    if expected is bool:
        if kind is KwargKind.BOOLEAN:
            return item.value
    elif expected is str:
        if kind is KwargKind.STRING:
            return item.value
    elif expected is int:
        if kind is KwargKind.NUMBER:
            if isinstance(item.value, int):
                return item.value
            if float(item.value).is_integer():
                return int(item.value)
    elif expected is float:
        if kind is KwargKind.NUMBER:
            return float(item.value)
    elif expected in (dict, Mapping):
        if kind is KwargKind.MAPPING:
            return copy.deepcopy(item.value)
    elif expected is list:
        if kind is KwargKind.ARRAY:
            return copy.deepcopy(item.value)
    elif expected is KwargValue:
        return item
    else:
        raise TypeError(f"unsupported kwarg read type: {expected!r}")
    raise KwargTypeError(key, expected, kind.value)


class KwargStore:
    """Keyed, heterogeneous argument storage with strict typed reads.

    The backing mapping is created on the first :meth:`set`; an untouched store
    still answers :meth:`has` and :meth:`count` without raising.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Optional[Dict[str, KwargValue]] = None
        if values:
            for key, value in values.items():
                self.set(key, value)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "KwargStore":
        store = cls()
        for key, raw in data.items():
            store._ensure()[str(key)] = KwargValue.from_json(raw, key=str(key))
        return store

    def _ensure(self) -> Dict[str, KwargValue]:
        if self._values is None:
            self._values = {}
        return self._values

    def get(self, key: str, expected: type[T]) -> T:
        values = self._values
        if values is None or key not in values:
            raise KwargMissingError(key)
        return _read_as(key, values[key], expected)

    def get_str(self, key: str) -> str:
        return self.get(key, str)

    def get_bool(self, key: str) -> bool:
        return self.get(key, bool)

    def get_int(self, key: str) -> int:
        return self.get(key, int)

    def get_float(self, key: str) -> float:
        return self.get(key, float)

    def get_mapping(self, key: str) -> Dict[str, Any]:
        return self.get(key, dict)

    def kind_of(self, key: str) -> KwargKind:
        return self.get(key, KwargValue).kind

    def set(self, key: str, value: Any) -> None:
        item = value if isinstance(value, KwargValue) else KwargValue.from_json(value, key=key)
        self._ensure()[str(key)] = item

    def has(self, key: str) -> bool:
        values = self._values
        return values is not None and key in values

    def count(self) -> int:
        values = self._values
        return 0 if values is None else len(values)

    def keys(self) -> list[str]:
        return list(self._values or ())

    def to_json(self) -> Dict[str, Any]:
        return {key: item.to_json() for key, item in (self._values or {}).items()}

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return self.count()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KwargStore):
            return NotImplemented
        return (self._values or {}) == (other._values or {})

    def __repr__(self) -> str:
        return f"KwargStore({self.to_json()!r})"


__all__ = ["KwargKind", "KwargStore", "KwargValue"]
