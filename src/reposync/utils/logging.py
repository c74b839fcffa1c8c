"""Structured logging for reposync.

structlog renders every event through the stdlib root logger, so a single
pair of handlers (colored console, rotating JSON-ish file) serves both
structlog loggers and third-party libraries such as aiohttp or apscheduler.
"""

import functools
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import Optional

import colorlog
import structlog
from structlog.typing import Processor


LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

FILE_MAX_BYTES = 10 * 1024 * 1024
FILE_BACKUPS = 5

# Marks handlers installed here so a repeated setup can replace them
_OWNED = "_reposync_handler"


def _level_number(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def _processors(format_type: str) -> list[Processor]:
    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if format_type == "json":
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    return chain


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None
) -> None:
    """Configure structlog and install the reposync handlers.

    Arguments override the ``LOG_*`` settings. Passing ``log_file=""``
    disables file output even when the settings name a file.
    """
    from ..config.settings import get_settings

    logging_settings = get_settings().logging
    level = log_level or logging_settings.level
    format_type = log_format or logging_settings.format
    file_path = logging_settings.file_path if log_file is None else log_file

    root = logging.getLogger()
    root.setLevel(_level_number(level))
    for handler in [h for h in root.handlers if getattr(h, _OWNED, False)]:
        root.removeHandler(handler)
        handler.close()

    structlog.configure(
        processors=_processors(format_type),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if file_path:
        setup_file_logging(file_path, level)
    setup_console_logging(level)


def setup_file_logging(file_path: str, level: str) -> None:
    """Append a size-rotated log file to the root logger."""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        file_path, maxBytes=FILE_MAX_BYTES, backupCount=FILE_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(_level_number(level))
    handler.setFormatter(logging.Formatter(
        '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
        '"logger": "%(name)s", "message": "%(message)s"}'
    ))
    setattr(handler, _OWNED, True)
    logging.getLogger().addHandler(handler)


def setup_console_logging(level: str) -> None:
    """Write colored records to stdout."""
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(_level_number(level))
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        reset=True,
        log_colors=LOG_COLORS,
    ))
    setattr(handler, _OWNED, True)
    logging.getLogger().addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def _elapsed(started: float) -> str:
    return f"{time.perf_counter() - started:.4f}s"


def log_execution_time(func):
    """Log how long ``func`` took; failures are logged and re-raised."""
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error("Call failed", function=func.__qualname__, elapsed=_elapsed(started), error=str(e))
            raise
        logger.debug("Call finished", function=func.__qualname__, elapsed=_elapsed(started))
        return result

    return wrapper


def log_async_execution_time(func):
    """Coroutine variant of :func:`log_execution_time`."""
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error("Operation failed", function=func.__qualname__, elapsed=_elapsed(started), error=str(e))
            raise
        logger.info("Operation finished", function=func.__qualname__, elapsed=_elapsed(started))
        return result

    return wrapper
