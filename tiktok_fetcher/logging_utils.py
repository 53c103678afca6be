"""Logging setup with per-request context."""

from __future__ import annotations

import logging
import uuid


class RequestIdFilter(logging.Filter):
    """Fills a placeholder request id for records logged outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a single console handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | [%(request_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    console_handler.addFilter(RequestIdFilter())
    root.addHandler(console_handler)


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def request_logger(name: str, request_id: str) -> logging.LoggerAdapter:
    """Return a logger adapter that tags every record with ``request_id``."""
    return logging.LoggerAdapter(logging.getLogger(name), {"request_id": request_id})
