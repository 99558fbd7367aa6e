"""Logging settings for the sync engine, read from the environment."""

import os
import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

# Realtime heartbeats and HTTP traces drown out board events
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "realtime", "websockets")


class LoggingConfig:
    """Environment-driven switches shared by every structured logger."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_ACTIVITY_CONTENT = os.environ.get("LOG_ACTIVITY_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level"},
                timestamp=True
            )
        return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @classmethod
    def setup_logging(cls, level: Optional[str] = None) -> logging.Handler:
        """Replace the root handlers with one stdout handler; returns it."""
        resolved = getattr(logging, (level or cls.LOG_LEVEL).upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(resolved)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved)
        handler.setFormatter(cls.build_formatter())
        root_logger.addHandler(handler)

        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
        return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
