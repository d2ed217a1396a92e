"""Structured JSON logging shared by the feed server and the subscriber tool."""

import json
import logging
import sys
from typing import Any

from ipfs_publish_feed.core.time_utils import utc_now

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
# uvicorn attaches an ANSI-colored duplicate of the message.
_RESERVED.add("color_message")

# Capped at WARNING; they log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Serialize log records as compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the root logger once per process."""

    root = logging.getLogger()
    if getattr(root, "_ipfs_publish_feed_configured", False):
        return

    root.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(level.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    setattr(root, "_ipfs_publish_feed_configured", True)
