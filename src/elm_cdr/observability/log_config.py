"""
Structured Logging

JSON formatter and setup for production logs; human-readable text in
development. Configured once at application startup from ObservabilitySettings.
"""

import json
import logging
from datetime import datetime, timezone


# Extra fields surfaced in JSON output when present on the record
EXTRA_FIELDS = (
    "library_id",
    "library_version",
    "library_name",
    "outcome",
    "endpoint",
    "error_type",
    "trace_id",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


_HANDLER_NAME = "elm_cdr"


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """
    Configure root logging for the service.

    Safe to call more than once: the handler installed by a previous call is
    replaced rather than duplicated.
    """
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")
        )

    for existing in list(logging.root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logging.root.removeHandler(existing)

    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
