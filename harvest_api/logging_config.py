"""Logging setup for the harvest service.

Text output for local development, single-line JSON for log shippers::

    HARVEST_LOG_FORMAT=json HARVEST_LOG_LEVEL=DEBUG harvest-api
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Structured extras copied onto JSON lines when present on a record
_EXTRA_KEYS = (
    "event", "job_id", "status", "artifact", "subscription_id",
    "returncode",
)

_TEXT_FMT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger once per process."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FMT, datefmt=_TEXT_DATEFMT))
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("harvest").debug(
        "Logging configured", extra={"event": "logging.init"}
    )
