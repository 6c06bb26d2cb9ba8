"""Session options negotiated with the server right after connecting.

The exchange is::

    client -> ["hello", [], {"get": true}]
    server -> ["client_options", [], {"ENCODING": ..., "NOCOLOR": ..., "UTF-8": ..., "INPUTDEBUG": ...}]
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict

from mud_bridge.errors import BridgeError, HandshakeError
from mud_bridge.protocol import (
    CLIENT_OPTIONS,
    OPTION_ENCODING,
    OPTION_INPUTDEBUG,
    OPTION_NOCOLOR,
    OPTION_UTF8,
    KwargStore,
    MessageEnvelope,
    build_hello,
)

if TYPE_CHECKING:
    from .session import ConnectionSession

logger = logging.getLogger(__name__)


@dataclass
class ClientServerOptions:
    encoding: str = "utf-8"
    no_color: bool = False
    use_utf8: bool = True
    input_debug: bool = False

    def update_from(self, kwargs: KwargStore) -> None:
        """Overwrite every field from *kwargs*.

        All four keys are read before anything is assigned, so a missing or
        mistyped key leaves the current values untouched and raises.
        """

        encoding = kwargs.get_str(OPTION_ENCODING)
        no_color = kwargs.get_bool(OPTION_NOCOLOR)
        use_utf8 = kwargs.get_bool(OPTION_UTF8)
        input_debug = kwargs.get_bool(OPTION_INPUTDEBUG)
        self.encoding = encoding
        self.no_color = no_color
        self.use_utf8 = use_utf8
        self.input_debug = input_debug

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OptionsNegotiator:
    """Requests the server's option set and records the reply.

    Attached to exactly one session. ``on_connected`` is invoked by the session
    once per connection; the reply arrives through the listener registry.
    """

    def __init__(self, options: ClientServerOptions | None = None) -> None:
        self.options = options if options is not None else ClientServerOptions()
        self._session: ConnectionSession | None = None
        self.requests_sent = 0
        self.replies_handled = 0

    def attach(self, session: ConnectionSession) -> None:
        if self._session is not None and self._session is not session:
            raise RuntimeError("negotiator is already attached to another session")
        self._session = session
        session.register_listener(self, CLIENT_OPTIONS)

    def on_connected(self) -> None:
        session = self._require_session()
        hello = build_hello()
        session.send_handshake(hello)
        self.requests_sent += 1
        logger.debug("options requested")
        if session.config.ready_on_request:
            session.mark_ready()

    def on_message(self, envelope: MessageEnvelope) -> None:
        session = self._require_session()
        try:
            self.options.update_from(envelope.kwargs)
        except BridgeError as exc:
            if session.is_negotiating():
                session.fail_handshake(HandshakeError(f"client_options rejected: {exc}"))
            raise
        self.replies_handled += 1
        logger.info("negotiated options: %s", self.options.to_dict())
        if session.is_negotiating():
            session.mark_ready()

    def _require_session(self) -> ConnectionSession:
        session = self._session
        if session is None:
            raise RuntimeError("negotiator is not attached to a session")
        return session


__all__ = ["ClientServerOptions", "OptionsNegotiator"]
