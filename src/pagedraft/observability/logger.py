"""JSON log lines for editor sessions.

Records carry ``ts``, ``level``, ``logger`` and ``message`` plus whatever
the caller hands over in ``extra={"extra_fields": {...}}``, e.g. the
``path`` and ``record_id`` a merge warning refers to.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; tracebacks go under ``exception``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)


# Names that already have a handler.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "pagedraft",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Return the logger *name*, attaching a JSON handler on first use.

    *level* may be a level name in any case.  Later calls for the same name
    return the logger untouched.
    """
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    _configured_loggers.add(name)
    return logger
