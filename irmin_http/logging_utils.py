# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""JSON formatter for structured logging output.

Provides :class:`IrminJsonFormatter`, which renders each log record as a
single-line JSON object.  Fields passed through ``extra`` (for example
``url`` or ``command``) become top-level keys.

This module is **not** auto-imported by ``irmin_http``; import it explicitly::

    from irmin_http.logging_utils import IrminJsonFormatter
"""

from __future__ import annotations

import json
import logging

__all__ = ["IrminJsonFormatter", "configure_logging"]

# Attributes present on every LogRecord; anything else came in via ``extra``.
_STANDARD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_OUTPUT_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "thread"})


class IrminJsonFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Always emits ``timestamp``, ``level``, ``logger``, ``message`` and the
    emitting ``thread`` name (stream workers log from their own thread).
    ``extra`` fields are added unless they collide with those keys.
    Values that are not JSON-serializable are rendered with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in _OUTPUT_KEYS:
                obj[key] = value
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(obj, default=str)


def configure_logging(
    level: int,
    *,
    logger_name: str = "irmin_http",
    json_format: bool = False,
) -> logging.Handler:
    """Attach a stderr handler to *logger_name* and set its level.

    Args:
        level: Logging level, e.g. ``logging.DEBUG``.
        logger_name: Logger to configure (default: the package root).
        json_format: Use :class:`IrminJsonFormatter` instead of plain text.

    Returns:
        The handler that was added.

    """
    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(IrminJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"))
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
