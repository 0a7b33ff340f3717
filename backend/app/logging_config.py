"""
Logging setup - one call at startup, then logging.getLogger(__name__) everywhere.

Two formats:
- "text": timestamp, logger name and level
- "json": one JSON object per line, with batch/contact context when present
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from backend.app.config import get_settings

CONTEXT_FIELDS = ("batch_id", "contact_id", "channel", "orchestration_id", "duration_ms")


class JSONFormatter(logging.Formatter):
    """JSON lines for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


_initialized = False


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    settings = get_settings()
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)

    # Quiet down noisy libraries
    for name in ("httpx", "httpcore", "hpack", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured: level=%s, format=%s", level, fmt)
