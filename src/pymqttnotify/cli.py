"""Command line entry point: ``mqtt-notify``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Sequence

import aiohttp

from pymqttnotify import __version__
from pymqttnotify._redact import redact_for_log
from pymqttnotify.config import AppConfig
from pymqttnotify.exceptions import MqttNotifyConfigError, SessionsTerminatedError
from pymqttnotify.notify import LogSink, NotificationSink, PushoverSink
from pymqttnotify.supervisor import Supervisor

_logger = logging.getLogger("pymqttnotify")

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_SESSIONS_TERMINATED = 2


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mqtt-notify",
        description="Watch MQTT brokers for sensor events and send push notifications.",
    )
    parser.add_argument(
        "--config",
        "-c",
        default="config.toml",
        help="Config file to use (default: %(default)s).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="More output; repeat for debug logs.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only log errors.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _log_level(verbose: int, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


async def _run(config: AppConfig, *, dry_run: bool) -> None:
    async with aiohttp.ClientSession() as http_session:
        sink: NotificationSink
        if dry_run:
            sink = LogSink()
        else:
            sink = PushoverSink(user=config.pushover.user, token=config.pushover.token, http_session=http_session)

        supervisor = Supervisor.from_config(config, sink)
        main_task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        if main_task is not None:
            for signum in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(signum, main_task.cancel)

        try:
            await supervisor.run()
        finally:
            await supervisor.stop()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=_log_level(args.verbose, args.quiet),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = AppConfig.from_file(args.config)
    except MqttNotifyConfigError as exc:
        _logger.error("Could not load config: %s", exc)
        return EXIT_CONFIG

    _logger.debug("Config: %s", redact_for_log(config.model_dump()))

    try:
        asyncio.run(_run(config, dry_run=args.dry_run))
    except SessionsTerminatedError as exc:
        _logger.error("%s", exc)
        return EXIT_SESSIONS_TERMINATED
    except (KeyboardInterrupt, asyncio.CancelledError):
        _logger.info("Shutting down")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
