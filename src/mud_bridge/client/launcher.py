"""Command-line entry point for the text console."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from typing import Optional, Sequence

from mud_bridge.config import load_client_config
from mud_bridge.logging_policy import configure_logging

from .console import run_console
from .session import ConnectionSession

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Text console for websocket MUD servers'
    )
    parser.add_argument(
        '--host',
        default=None,
        help='Server host (default: MUD_BRIDGE_HOST or localhost)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Server websocket port (default: MUD_BRIDGE_PORT or 4008)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging, including every frame sent and received'
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    config = load_client_config().with_overrides(host=args.host, port=args.port)
    if args.debug:
        config = replace(config, log_policy=replace(config.log_policy, debug=True, log_frames=True))
    configure_logging(config.log_policy)

    session = ConnectionSession(config)
    logger.info("launcher: console for %s", config.url)
    try:
        asyncio.run(run_console(session))
    except KeyboardInterrupt:
        logger.info("launcher: interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
