"""Logging for Dealflow.

Every module logs through ``get_logger(__name__)``. Handlers live on a
single application logger (``src``) so that one ``--log-level`` switch
or ``LOG_LEVEL`` value governs scrapers, mail sync and the reconciler
alike:

- colored console output via colorlog
- ``logs/dealflow.log``, rotated at 10 MB with 5 backups

HTTP client and ORM loggers are held at WARNING unless the application
runs at DEBUG.
"""

import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

import colorlog

APP_LOGGER = "src"
LOG_FILE_NAME = "dealflow.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

CONSOLE_FORMAT = "%(log_color)s%(levelname)-8s%(reset)s %(cyan)s%(name)s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    "DEBUG": "white",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "sqlalchemy.engine", "aiosqlite", "asyncio")


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _default_log_dir() -> Path:
    env_dir = os.environ.get("LOG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(__file__).resolve().parent.parent.parent / "logs"


def _console_handler() -> logging.Handler:
    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS))
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _quiet_libraries(app_level: int) -> None:
    floor = logging.DEBUG if app_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)


def _configure_app_logger(level: int, log_dir: Optional[Path]) -> logging.Logger:
    app_logger = logging.getLogger(APP_LOGGER)
    if not app_logger.handlers:
        app_logger.addHandler(_console_handler())
        app_logger.addHandler(_file_handler(log_dir or _default_log_dir()))
        app_logger.propagate = False
        app_logger.setLevel(level)
        _quiet_libraries(level)
    return app_logger


def get_logger(name: str, log_dir: Optional[Path] = None, level: Optional[str] = None) -> logging.Logger:
    """Logger for a module, configuring the application handlers on first use.

    Args:
        name: Module name, normally ``__name__``
        log_dir: Directory for ``dealflow.log`` (default: ``LOG_DIR`` or ``logs/``)
        level: Level name for the application logger; falls back to
            ``LOG_LEVEL``, then INFO. Only applied on first configuration.

    Returns:
        The named logger. Names outside the ``src`` package get their
        own copy of the handlers.
    """
    resolved = _resolve_level(level)
    app_logger = _configure_app_logger(resolved, log_dir)
    if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
        return logging.getLogger(name)

    # Scripts and __main__ modules
    logger = logging.getLogger(name)
    if not logger.handlers:
        for handler in app_logger.handlers:
            logger.addHandler(handler)
        logger.setLevel(app_logger.level)
        logger.propagate = False
    return logger


def set_log_level(logger: logging.Logger, level: str) -> None:
    """Change the level of the application logger tree.

    ``logger`` may be any module logger; the change applies to the whole
    ``src`` hierarchy, to ``logger`` itself if it lives outside it, and
    to the library loggers held back by default.
    """
    new_level = _resolve_level(level)
    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(new_level)
    if logger is not app_logger and not logger.name.startswith(APP_LOGGER + "."):
        logger.setLevel(new_level)
    _quiet_libraries(new_level)
    logger.debug(f"Log level set to {logging.getLevelName(new_level)}")


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str) -> Iterator[None]:
    """Log how long a block took, and whether it raised.

    Usage:
        with log_execution_time(logger, "scrape"):
            await pipeline.run_all()
    """
    started = time.perf_counter()
    try:
        yield
    except BaseException:
        logger.warning(f"{operation} aborted after {time.perf_counter() - started:.2f}s")
        raise
    logger.info(f"{operation} finished in {time.perf_counter() - started:.2f}s")


def log_exception(logger: logging.Logger, operation: str, exception: BaseException) -> None:
    """Log a failure with its traceback; application errors add code and context."""
    code = getattr(exception, "code", None)
    context = getattr(exception, "context", None)
    message = getattr(exception, "message", None) or repr(exception)
    details = f" [{code}]" if code else ""
    if context:
        details += " " + ", ".join(f"{key}={value}" for key, value in context.items())
    logger.error(
        f"{operation} failed{details}: {message}",
        exc_info=(type(exception), exception, exception.__traceback__),
    )
