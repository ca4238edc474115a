"""
Centralized logging configuration for the CoachSmith service.
"""

import logging
import os
import re
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Context var to hold request/trace id
REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class ZonedFormatter(logging.Formatter):
    """Formatter that renders %(asctime)s in a configured timezone."""

    def __init__(self, fmt=None, datefmt=None, tz: str = "UTC"):
        super().__init__(fmt, datefmt)
        try:
            self.tz = ZoneInfo(tz)
        except ZoneInfoNotFoundError:
            self.tz = ZoneInfo("UTC")

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime('%Y-%m-%dT%H:%M:%S %Z')


class RequestIdFilter(logging.Filter):
    """Inject request_id from contextvar into log records."""
    def filter(self, record: logging.LogRecord) -> bool:
        rid = REQUEST_ID.get()
        if not hasattr(record, "request_id"):
            record.request_id = rid or "-"
        return True


class LoggerManager:
    """Manages application-wide logging configuration."""

    _instance: Optional['LoggerManager'] = None
    _configured: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def setup_logging(
        self,
        level: str = "INFO",
        log_dir: str = "logs",
        timezone: str = "UTC",
        app_name: str = "CoachSmith",
    ) -> None:
        """
        Configure application-wide logging.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory that receives app.log
            timezone: IANA timezone used for timestamps
            app_name: Name printed in the startup banner
        """
        log_level = getattr(logging, level.upper(), logging.INFO)

        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / "app.log"

        detailed_formatter = ZonedFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - [rid:%(request_id)s] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            tz=timezone,
        )
        simple_fmt = '%(asctime)s - %(levelname)s - [rid:%(request_id)s] - %(message)s'

        req_filter = RequestIdFilter()

        # File handler - detailed logging
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(req_filter)

        # If terminal does not support ANSI, strip codes from console output
        supports_color = sys.stdout.isatty() and os.getenv("TERM") not in (None, "dumb")

        class _StripANSIFormatter(ZonedFormatter):
            ansi_re = re.compile(r"\x1b\[[0-9;]*m")

            def format(self, record):
                s = super().format(record)
                return s if supports_color else self.ansi_re.sub("", s)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(_StripANSIFormatter(simple_fmt, datefmt='%H:%M:%S', tz=timezone))
        console_handler.addFilter(req_filter)

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        # Remove existing handlers to avoid duplicates
        root_logger.handlers.clear()
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        # Also attach handlers to FastAPI/Uvicorn loggers so they write to app.log
        for lname in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
            lg = logging.getLogger(lname)
            lg.setLevel(log_level)
            lg.handlers.clear()
            lg.addHandler(file_handler)
            lg.addHandler(console_handler)
            lg.propagate = False

        LoggerManager._configured = True

        logger = logging.getLogger(__name__)
        logger.info("=" * 60)
        logger.info(f"{app_name} Service Starting")
        logger.info(f"Log File: {log_file}")
        logger.info(f"Log Level: {level.upper()}")
        logger.info(f"Started at: {datetime.now(detailed_formatter.tz).strftime('%Y-%m-%d %H:%M:%S %Z')}")
        logger.info("=" * 60)

        # Suppress noisy third-party loggers
        for noisy in ("urllib3", "httpx", "httpcore", "asyncio", "grpc", "google"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    @property
    def configured(self) -> bool:
        return LoggerManager._configured

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a logger instance for a specific module.

        Args:
            name: Logger name (typically __name__ of the module)

        Returns:
            Configured logger instance
        """
        return logging.getLogger(name)


def get_logger(name: str) -> logging.Logger:
    """Convenience function to get a logger."""
    return LoggerManager().get_logger(name)


# Request ID helpers (used by API middleware)

def bind_request_id(request_id: Optional[str]) -> None:
    REQUEST_ID.set(request_id)


def clear_request_id() -> None:
    REQUEST_ID.set(None)


__all__ = [
    "LoggerManager",
    "get_logger",
    "bind_request_id",
    "clear_request_id",
]
