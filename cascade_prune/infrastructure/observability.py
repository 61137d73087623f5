"""Structured Logging - JSON formatter and setup for prune runs.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (table, predicate, constraint_name, stage, iteration, error_code)
      surfaced when present
    - setup_logging is idempotent: re-running it replaces its own handler
"""

import logging
import json
from datetime import datetime, timezone

_EXTRA_FIELDS = (
    "table", "predicate", "constraint_name", "stage", "iteration", "error_code",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


class _PruneHandler(logging.StreamHandler):
    pass


def setup_logging(level: str = "WARNING", fmt: str = "json") -> logging.Handler:
    """Configure root logging for a prune run."""
    handler = _PruneHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    for existing in [h for h in logging.root.handlers if isinstance(h, _PruneHandler)]:
        logging.root.removeHandler(existing)
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    return handler
