"""Logging toggles for the mud_bridge client.

Env parsing for anything log related happens here; the rest of the package
consumes the resulting :class:`LoggingPolicy`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

_LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
_PACKAGE_LOGGER = "mud_bridge"


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "on", "dbg", "debug"}:
        return True
    if val in {"0", "false", "no", "off", ""}:
        return False
    try:
        return bool(int(raw))
    except Exception:
        return default


def _env_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw if raw else default


@dataclass(frozen=True)
class LoggingPolicy:
    level: str = "INFO"
    debug: bool = False
    log_frames: bool = False

    @property
    def effective_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        value = logging.getLevelName(self.level.upper())
        return value if isinstance(value, int) else logging.INFO


def load_logging_policy(env: Optional[Mapping[str, str]] = None) -> LoggingPolicy:
    env = os.environ if env is None else env
    return LoggingPolicy(
        level=_env_str(env, "MUD_BRIDGE_LOG_LEVEL", "INFO") or "INFO",
        debug=_env_bool(env, "MUD_BRIDGE_DEBUG", False),
        log_frames=_env_bool(env, "MUD_BRIDGE_LOG_FRAMES", False),
    )


def configure_logging(policy: LoggingPolicy) -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    logger = logging.getLogger(_PACKAGE_LOGGER)
    has_local = any(getattr(h, "_mud_bridge_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        setattr(handler, "_mud_bridge_local", True)
        logger.addHandler(handler)
    level = policy.effective_level
    for handler in logger.handlers:
        if getattr(handler, "_mud_bridge_local", False):
            handler.setLevel(level)
    logger.setLevel(level)
    logger.propagate = False
    return logger


__all__ = ["LoggingPolicy", "configure_logging", "load_logging_policy"]
