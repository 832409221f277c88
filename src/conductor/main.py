"""
Conductor entry point.

Parses the command line, prepares logging and the data directory, then serves the HTTP API. In
``cli`` mode the API runs on a background thread and the terminal client takes the foreground.
"""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path

from conductor.config import settings

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    for noisy in ("httpx", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="conductor", description="Route a reasoning engine's tool calls to stdio providers"
    )
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Serve the HTTP API only, or the API plus an interactive shell (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Log verbosity, also passed to provider processes (default: %(default)s)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="API bind address (default: %(default)s)")
    parser.add_argument(
        "--port", type=int, default=settings.API_PORT, help="API port (default: %(default)s)"
    )
    return parser.parse_args(argv)


def _ensure_data_dir() -> bool:
    data_dir = Path(settings.DATA_DIR)
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Cannot create data directory %s: %s", data_dir, exc)
        return False
    if not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        return False
    return True


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """Run conductor in the requested mode."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    # Provider subprocesses read LOG_LEVEL from the environment they inherit.
    settings.LOG_LEVEL = args.log_level
    settings.API_PORT = args.port
    os.environ["LOG_LEVEL"] = args.log_level
    _init_logging(settings.LOG_LEVEL)

    if not _ensure_data_dir():
        sys.exit(1)

    logger.info("Starting conductor [%s mode] on %s:%d", args.mode, args.host, args.port)
    logger.debug("Settings: %s", settings.model_dump(exclude={"ANTHROPIC_API_KEY"}))

    # Deferred so `--help` works without the web stack installed
    from conductor.api.app import run_api  # pylint: disable=import-outside-toplevel

    if args.mode == "api":
        run_api(host=args.host, port=args.port, reload=settings.DEBUG)
        return

    from conductor.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    threading.Thread(
        target=run_api,
        kwargs={"host": args.host, "port": args.port, "reload": False, "log_level": "warning"},
        name="conductor-api",
        daemon=True,
    ).start()
    run_cli(f"http://localhost:{args.port}")


if __name__ == "__main__":
    main()
