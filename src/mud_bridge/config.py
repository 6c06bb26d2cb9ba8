"""Client configuration.

``load_client_config()`` is called once at start-up and the resulting
:class:`ClientConfig` is handed to the session; nothing else reads the
environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from mud_bridge.logging_policy import LoggingPolicy, _env_bool, _env_str, load_logging_policy

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4008


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    v = env.get(name)
    if v is None:
        return int(default)
    try:
        return int(v)
    except Exception:
        logger.warning("ignoring malformed %s=%r", name, v)
        return int(default)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    v = env.get(name)
    if v is None:
        return float(default)
    try:
        return float(v)
    except Exception:
        logger.warning("ignoring malformed %s=%r", name, v)
        return float(default)


@dataclass(frozen=True)
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connect_timeout_s: float = 10.0
    handshake_timeout_s: float = 5.0
    ready_on_request: bool = False
    poll_interval_s: float = 0.3
    max_pending_bytes: int = 1 << 20
    log_policy: LoggingPolicy = field(default_factory=LoggingPolicy)

    @property
    def url(self) -> str:
        return build_url(self.host, self.port)

    def with_overrides(self, **changes: object) -> "ClientConfig":
        """Return a copy with every non-None keyword applied."""

        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def build_url(host: str, port: int | str) -> str:
    return f"ws://{host}:{int(port)}"


def resolve_url(address: Optional[str], config: ClientConfig) -> str:
    """Turn ``None``, ``"host:port"``, ``"host"`` or a ws:// URL into a URL."""

    if address is None:
        return config.url
    address = address.strip()
    if address.startswith(("ws://", "wss://")):
        return address
    host, sep, port = address.rpartition(":")
    if not sep:
        return build_url(address, config.port)
    if not host or not port.isdigit():
        raise ValueError(f"invalid address {address!r}; expected host:port")
    return build_url(host, port)


def load_client_config(env: Optional[Mapping[str, str]] = None) -> ClientConfig:
    env = os.environ if env is None else env
    return ClientConfig(
        host=_env_str(env, "MUD_BRIDGE_HOST", DEFAULT_HOST) or DEFAULT_HOST,
        port=_env_int(env, "MUD_BRIDGE_PORT", DEFAULT_PORT),
        connect_timeout_s=max(0.0, _env_float(env, "MUD_BRIDGE_CONNECT_TIMEOUT", 10.0)),
        handshake_timeout_s=max(0.0, _env_float(env, "MUD_BRIDGE_HANDSHAKE_TIMEOUT", 5.0)),
        ready_on_request=_env_bool(env, "MUD_BRIDGE_READY_ON_REQUEST", False),
        poll_interval_s=max(0.01, _env_float(env, "MUD_BRIDGE_POLL_INTERVAL", 0.3)),
        max_pending_bytes=max(0, _env_int(env, "MUD_BRIDGE_MAX_PENDING_BYTES", 1 << 20)),
        log_policy=load_logging_policy(env),
    )


__all__ = ["ClientConfig", "build_url", "load_client_config", "resolve_url"]
