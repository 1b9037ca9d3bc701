import logging
import os
from logging.handlers import RotatingFileHandler

import orjson
import pendulum
import structlog
from structlog.processors import add_log_level

from .config import DEFAULT_SETTINGS

LOGGER_NAME = "dataset_forge"


def _pendulum_timestamper(tz: str):
    def _add_timestamp(logger, method_name, event_dict: dict) -> dict:
        # structlog processors receive (logger, method_name, event_dict)
        event_dict["timestamp"] = pendulum.now(tz).isoformat()
        return event_dict

    return _add_timestamp


def _orjson_renderer(_, __, event_dict: dict) -> str:
    # default=str covers paths and exceptions that orjson cannot encode
    return orjson.dumps(event_dict, default=str).decode("utf-8")


def configure_logging(
    log_path: str,
    max_bytes: int = DEFAULT_SETTINGS.log_max_bytes,
    backup_count: int = DEFAULT_SETTINGS.log_backup_count,
    level: int = logging.INFO,
    tz: str = DEFAULT_SETTINGS.timezone,
) -> logging.Logger:
    """
    Route structlog events to a size-rotating JSONL file.

    - Creates parent directory if missing.
    - One orjson-encoded event per line, UTF-8.
    - Calling again replaces the previous handler.
    """
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    close_logging(logger)

    handler = RotatingFileHandler(
        filename=log_path,
        mode="a",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        delay=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            add_log_level,
            _pendulum_timestamper(tz),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _orjson_renderer,
        ],
        # every module logger shares the package logger and its handler
        logger_factory=lambda *args: logging.getLogger(LOGGER_NAME),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


def close_logging(logger: logging.Logger = None) -> None:
    """Flush, close and remove handlers (also used by tests)."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        try:
            h.flush()
            h.close()
        finally:
            logger.removeHandler(h)
