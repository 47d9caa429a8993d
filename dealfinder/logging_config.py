"""Structured logging configuration.

Console output stays human-readable; logs/app.log and logs/error.log carry one
JSON object per record so that context fields (watch_id, provider, ...) can be
queried.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from pythonjsonlogger import jsonlogger

from dealfinder.config import settings

# Libraries that log every request or job execution at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "apscheduler.executors.default", "aiosqlite")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp, level, source location and service fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"
        log_record.setdefault('service', 'dealfinder')

        if record.funcName:
            log_record['function'] = record.funcName
        if record.exc_info and 'exc_info' not in log_record:
            log_record['exc_info'] = self.formatException(record.exc_info)


def setup_logging(base_dir: str | Path | None = None, level: str | None = None):
    """Configure logging for the application.

    Args:
        base_dir: Directory to place the logs/ folder in (default: cwd)
        level: Root level name; defaults to settings.log_level
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
    logs_dir.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    json_formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    app_handler = logging.FileHandler(logs_dir / "app.log", encoding="utf-8")
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(json_formatter)
    root_logger.addHandler(app_handler)

    error_handler = logging.FileHandler(logs_dir / "error.log", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that merges bound context into each record's extra fields."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        return msg, kwargs

    def bind(self, **context) -> "LoggerAdapter":
        """Return a new adapter with additional context."""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger with optional context fields.

    Args:
        name: Logger name (usually __name__)
        **context: Context fields added to every record (e.g., component="watch_runner")

    Returns:
        LoggerAdapter with context
    """
    return LoggerAdapter(logging.getLogger(name), context)
