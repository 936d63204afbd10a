"""Native messaging host entry point.

Launched by the browser when the extension calls ``connectNative()``; the
default ``run`` command answers every request with ``{"echo": <request>}``.
``install`` / ``uninstall`` manage the host manifest, ``check-update`` runs the
daily update check immediately.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any

from .config import HostConfig
from .host import Host

logger = logging.getLogger("native_host")
_COMMANDS = ("run", "install", "uninstall", "check-update")


def configure_logging() -> None:
    # Native messaging requires strict stdout framing. Never write logs to stdout.
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file := os.environ.get("NATIVE_HOST_LOG_FILE"):
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    level = os.environ.get("NATIVE_HOST_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )


def echo(message: Any) -> dict[str, Any]:
    return {"echo": message}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="native-messaging-host")
    parser.add_argument("command", nargs="?", default="run", help="one of: " + ", ".join(_COMMANDS))
    parser.add_argument("origin", nargs="*")
    return parser


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    # Browsers launch the host with the caller origin (and on Windows `--parent-window=`) as arguments.
    args, _unknown = _build_parser().parse_known_args(argv)
    if args.command not in _COMMANDS:
        args.origin.insert(0, args.command)
        args.command = "run"
    try:
        host = Host(HostConfig.from_env())
    except ValueError as exc:
        logger.error("invalid_configuration %s", exc)
        raise SystemExit(2) from None

    if args.command == "install":
        report = host.install()
        raise SystemExit(0 if report.ok else 1)
    if args.command == "uninstall":
        host.uninstall()
        return
    if args.command == "check-update":
        host.checker.auto_update_check()
        return

    logger.info("host_started app=%s origin=%s", host.config.app_name, args.origin)
    try:
        host.run(echo, sys.stdin.buffer, sys.stdout.buffer)
    except KeyboardInterrupt:
        raise SystemExit(0) from None


if __name__ == "__main__":
    main()
