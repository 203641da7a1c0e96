"""Daemon entrypoint. Parses arguments, configures logging, runs the bus."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence

from loguru import logger

from busd.core.constants import EXIT_FAILURE, EXIT_SUCCESS, USAGE, VERSION_BANNER
from busd.core.errors import UsageError, VersionRequested
from busd.daemon import run
from busd.options import parse_args

# Standard-library loggers to intercept and route through loguru
_INTERCEPTED_LIBRARIES = ["asyncio"]


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.patch(
            lambda r: r.update(
                name=record.name,
                function=record.funcName,
                line=record.lineno,
            ),
        ).opt(exception=record.exc_info).log(level, record.getMessage())


def _intercept_logging(level: str) -> None:
    """Route asyncio's logs to loguru."""
    handler = InterceptHandler()
    logging.basicConfig(handlers=[handler], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [handler]
        lib_logger.propagate = False
        lib_logger.setLevel(level)


def setup_logging() -> None:
    """Configure loguru. Replace default logging.
    Level comes from LOG_LEVEL (DEBUG, INFO, WARNING, ERROR); default INFO."""
    level = "INFO"
    env_level = (os.environ.get("LOG_LEVEL") or "").upper()
    if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        level = env_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    _intercept_logging(level)


def main(argv: Sequence[str] | None = None) -> None:
    """Main entrypoint."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        options = parse_args(args)
    except VersionRequested:
        print(VERSION_BANNER)
        sys.exit(EXIT_SUCCESS)
    except UsageError as exc:
        if str(exc):
            print(exc, file=sys.stderr)
        if exc.show_usage:
            print(USAGE, file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    setup_logging()
    sys.exit(run(options, args))


if __name__ == "__main__":
    main()
