"""Debug logging infrastructure for wire protocol diagnostics.

Provides logger instances under the ``irmin_http.wire.*`` hierarchy and
formatting helpers for request bodies and stream frames.  Enabling
``logging.getLogger("irmin_http.wire").setLevel(logging.DEBUG)`` shows
every request, reply and stream element that crosses the wire.

All formatting helpers return ``str`` and never log directly.
They are designed to be called inside ``isEnabledFor`` guards so
there is zero overhead when debug logging is disabled.
"""

from __future__ import annotations

import json
import logging
from typing import Any

# ---------------------------------------------------------------------------
# Logger hierarchy: irmin_http.wire.*
# ---------------------------------------------------------------------------

wire_request_logger = logging.getLogger("irmin_http.wire.request")
"""Non-streaming requests and their replies."""

wire_stream_logger = logging.getLogger("irmin_http.wire.stream")
"""Streamed replies: header, frames, end token, release."""

connection_logger = logging.getLogger("irmin_http.connection")
"""Operation-level messages from ``Connection``."""

KNOWN_LOGGERS: tuple[tuple[str, str], ...] = (
    ("irmin_http", "Root logger for the package"),
    ("irmin_http.wire.request", "Request URLs, bodies, reply status and size"),
    ("irmin_http.wire.stream", "Stream header, frames, end token and response release"),
    ("irmin_http.connection", "Operation results and envelope errors"),
)
"""``(name, description)`` for every logger the package writes to."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_PREVIEW_LEN = 200
"""Maximum length of body / frame previews."""


def fmt_json(obj: Any) -> str:
    """Format a JSON-compatible object compactly, truncated to a preview."""
    text = json.dumps(obj, separators=(",", ":"), default=str)
    if len(text) > _MAX_PREVIEW_LEN:
        text = text[:_MAX_PREVIEW_LEN] + "..."
    return text


def fmt_body(content: bytes) -> str:
    """Return a truncated, decoded preview of a response body."""
    return content[:_MAX_PREVIEW_LEN].decode(errors="replace") if content else ""
