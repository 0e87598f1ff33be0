# ephemeral_chat/core/logging.py

import logging
import sys

from ephemeral_chat.core.config import settings


# Every record carries a connection id; "-" when logged outside a connection
DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | conn=%(conn)s | %(message)s"


class ConnectionIdFilter(logging.Filter):
    """Fill in `conn` for records that weren't logged through a ConnectionLogger."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "conn"):
            record.conn = "-"
        return True


class ConnectionLogger(logging.LoggerAdapter):
    """Logger bound to one WebSocket connection id."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("conn", self.extra["conn"])
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging() -> None:
    """
    Configure logging for the chat service.

    - Root level from settings.LOG_LEVEL (default INFO)
    - One stdout handler tagging each line with the connection id
    - Under uvicorn, existing handlers get the connection-id filter instead of
      a second handler
    - uvicorn access lines are WARNING-only unless LOG_ACCESS=true, since
      /health polling would otherwise drown the room lifecycle logs
    """
    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.handlers:
        for handler in root_logger.handlers:
            handler.addFilter(ConnectionIdFilter())
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        handler.addFilter(ConnectionIdFilter())
        root_logger.addHandler(handler)

    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO if settings.LOG_ACCESS else logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Usage:
        from ephemeral_chat.core.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Room created")
    """
    return logging.getLogger(name)


def get_connection_logger(name: str, connection_id: str) -> ConnectionLogger:
    """Logger whose records carry `connection_id` in the conn= field."""
    return ConnectionLogger(logging.getLogger(name), {"conn": connection_id})
