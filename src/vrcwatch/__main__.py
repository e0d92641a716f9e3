"""Command-line entry point: ``vrcwatch`` / ``python -m vrcwatch``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from vrcwatch.app import WatchApp
from vrcwatch.config import WatchConfig
from vrcwatch.exceptions import VrcConfigError

_logger = logging.getLogger("vrcwatch")


def _log_level(verbose: bool) -> int:
    if verbose:
        return logging.DEBUG
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


async def run(config: WatchConfig) -> None:
    """Run until SIGINT or SIGTERM, then shut down cleanly."""
    app = WatchApp(config)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await app.start()
        await stop.wait()
        _logger.info("Received shutdown signal")
    finally:
        await app.shutdown()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="vrcwatch",
        description="Watch VRChat friends and post location changes to Discord",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(args.verbose),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = WatchConfig.from_env()
    except VrcConfigError as exc:
        _logger.error("%s:", exc)
        for error in exc.errors:
            _logger.error("  - %s", error)
        return 1

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
