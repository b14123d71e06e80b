"""
Logging configuration for the staff portal.

Console output is colored and written directly; file output (app.log and
audit.log) goes through a QueueHandler so rotation and disk writes happen on
the QueueListener thread instead of the event loop.
"""

import atexit
import logging
import logging.handlers
import queue
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel

from core.middleware.correlation import get_correlation_id

_queue_listener: Optional[logging.handlers.QueueListener] = None

AUDIT_LOGGER_NAME = "audit"


class LogConfig(BaseModel):
    """Logging configuration settings."""

    level: str = "INFO"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_file_logging: bool = True
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True
    enable_query_logging: bool = False


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the current request's correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter with colored level names for console output."""

    grey = "\x1b[38;21m"
    yellow = "\x1b[33;21m"
    red = "\x1b[31;21m"
    bold_red = "\x1b[31;1m"
    blue = "\x1b[34;21m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: grey,
        logging.INFO: blue,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        original = record.levelname
        color = self.COLORS.get(record.levelno, self.grey)
        record.levelname = f"{color}{original}{self.reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _rotating_handler(config: LogConfig, filename: str, formatter: logging.Formatter):
    handler = logging.handlers.RotatingFileHandler(
        Path(config.log_dir) / filename,
        maxBytes=config.max_file_size,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


class _AuditOnly(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name == AUDIT_LOGGER_NAME or record.name.startswith(f"{AUDIT_LOGGER_NAME}.")


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """Configure the root logger. Safe to call again; the previous listener is stopped."""
    global _queue_listener

    if config is None:
        config = LogConfig()

    stop_queue_listener()

    level = getattr(logging, config.level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    correlation_filter = CorrelationIdFilter()

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.addFilter(correlation_filter)
        console_handler.setFormatter(
            ColoredFormatter(
                fmt="%(asctime)s | %(name)s | %(levelname)s | %(correlation_id)s | %(message)s",
                datefmt=config.date_format,
            )
        )
        root_logger.addHandler(console_handler)

    if config.enable_file_logging:
        Path(config.log_dir).mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter(
            fmt="%(asctime)s | %(name)s | %(levelname)s | %(correlation_id)s | "
            "%(funcName)s:%(lineno)d | %(message)s",
            datefmt=config.date_format,
        )

        app_handler = _rotating_handler(config, "app.log", file_formatter)
        app_handler.setLevel(level)

        audit_handler = _rotating_handler(config, "audit.log", file_formatter)
        audit_handler.setLevel(logging.INFO)
        audit_handler.addFilter(_AuditOnly())

        log_queue: queue.Queue = queue.Queue(-1)
        queue_handler = logging.handlers.QueueHandler(log_queue)
        queue_handler.addFilter(correlation_filter)
        root_logger.addHandler(queue_handler)

        _queue_listener = logging.handlers.QueueListener(
            log_queue,
            app_handler,
            audit_handler,
            respect_handler_level=True,
        )
        _queue_listener.start()
        atexit.register(stop_queue_listener)

    logging.getLogger("sqlalchemy.engine").setLevel(
        level if config.enable_query_logging else logging.WARNING
    )


def stop_queue_listener() -> None:
    """Flush and stop the file listener. Called on shutdown and at exit."""
    global _queue_listener

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None


class AuditLogger:
    """Structured log lines mirroring the audit_logs table."""

    def __init__(self, name: str = "actions"):
        self.logger = logging.getLogger(f"{AUDIT_LOGGER_NAME}.{name}")

    def action(
        self,
        action: str,
        entity: str,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = [f"Entity: {entity}"]
        if entity_id:
            context.append(f"Entity ID: {entity_id}")
        if user_id:
            context.append(f"User ID: {user_id}")
        if ip_address:
            context.append(f"IP: {ip_address}")
        if details:
            context.append(f"Details: {details}")
        self.logger.info(f"{action} | " + " | ".join(context))

    def login_failed(self, identifier: str, ip_address: Optional[str], reason: str) -> None:
        self.logger.warning(
            f"LOGIN FAILED | Identifier: {identifier} | IP: {ip_address} | Reason: {reason}"
        )
