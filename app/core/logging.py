"""Structured JSON logging, configured once at startup."""

import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from app.config import get_settings


class SearchJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with consistent fields."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.pop("asctime", None)


def build_formatter() -> SearchJsonFormatter:
    return SearchJsonFormatter(
        "%(timestamp)s %(level)s %(logger)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def setup_logging() -> None:
    """Configure the root logger from settings.log_level."""
    settings = get_settings()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter())
    root_logger.addHandler(handler)

    # Noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("elastic_transport").setLevel(logging.WARNING)
