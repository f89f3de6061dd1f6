"""
cli.py

Command-line entry for running a coordinator behind the WebSocket relay.

Usage examples
--------------
$ speedrelay serve
$ speedrelay serve --host 0.0.0.0 --port 9000 --log-level debug
$ speedrelay serve --settings '{"defaultSpeed": 1.5, "rememberLastSpeed": false}'

Set ``NATS_BROKER`` to also publish every broadcast event to NATS.
"""

import argparse
import asyncio
from typing import List, Optional

from pydantic import ValidationError

from speedrelay.broadcast.nats_sink import NatsBroadcastSink
from speedrelay.config import (
    LOG_LEVEL,
    NATS_BROKER,
    SPEEDRELAY_HOST,
    SPEEDRELAY_PORT,
    SpeedSettings,
    default_settings,
)
from speedrelay.coordinator import Coordinator
from speedrelay.logging import logger, set_log_level
from speedrelay.transport.websocket_server import RelayWebSocketServer

LOG_LEVELS = ("debug", "info", "warning", "error")


def _settings_arg(value: str) -> SpeedSettings:
    try:
        return SpeedSettings.model_validate_json(value)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(f"invalid settings: {e.error_count()} validation error(s)")


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


async def serve(host: str, port: int, settings: Optional[SpeedSettings]) -> None:
    """Run the relay until cancelled."""
    server = RelayWebSocketServer(host=host, port=port)
    coordinator = Coordinator(transport=server, settings=settings or default_settings)
    server.bind(coordinator)

    sink: Optional[NatsBroadcastSink] = None
    if NATS_BROKER:
        sink = NatsBroadcastSink({"servers": NATS_BROKER})
        await sink.connect()
        coordinator.broadcast.subscribe(sink)
        logger.info("Publishing broadcast events to NATS")

    try:
        await server.serve_forever()
    finally:
        await server.stop()
        if sink is not None:
            await sink.close()


# --------------------------------------------------------------------------- #
# Parser helpers
# --------------------------------------------------------------------------- #


def build_parser() -> argparse.ArgumentParser:
    """Construct and return the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="speedrelay",
        description="Playback speed coordinator.",
    )
    subparsers = parser.add_subparsers(title="commands", dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the WebSocket relay.")
    serve_parser.add_argument("--host", default=SPEEDRELAY_HOST, help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=SPEEDRELAY_PORT, help="Port to bind.")
    serve_parser.add_argument(
        "--settings",
        type=_settings_arg,
        metavar="JSON",
        help="Initial settings as a JSON object with camelCase keys.",
    )
    serve_parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=LOG_LEVEL.lower(),
        help="Log level of the speedrelay logger.",
    )
    serve_parser.set_defaults(func=lambda ns: serve(ns.host, ns.port, ns.settings))

    return parser


# --------------------------------------------------------------------------- #
# Entry point helpers
# --------------------------------------------------------------------------- #


async def _async_main(argv: List[str] | None = None) -> None:  # pragma: no cover
    parser = build_parser()
    ns = parser.parse_args(argv)
    set_log_level(ns.log_level)
    await ns.func(ns)


def main(argv: List[str] | None = None) -> None:  # pragma: no cover
    """Synchronously invoked entry that boots the asyncio event loop."""
    try:
        asyncio.run(_async_main(argv))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":  # pragma: no cover
    main()
