"""Wire protocol for the mud_bridge client: envelopes, codec, and kwargs."""

from __future__ import annotations

from .envelope import *  # noqa: F401,F403
from .kwargs import KwargKind, KwargStore, KwargValue

__all__ = [name for name in globals().keys() if not name.startswith("_")]
