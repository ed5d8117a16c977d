"""Command kinds and request URL construction.

URL layout relative to the base endpoint:

- **Plain**: ``/{command}{path}``
- **Tree**: ``/tree/{tree}/{command}{path}`` (``/tree/{tree}`` omitted when no tree is selected)
- **Tag**: ``/tag/{command}{path}``
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import quote, urlsplit

from irmin_http.errors import CommandBuildError
from irmin_http.path import Path

__all__ = ["CommandKind", "build_call_url", "escape_segment"]


class CommandKind(Enum):
    """Which URL namespace a command lives in."""

    PLAIN = "plain"
    TREE = "tree"
    TAG = "tag"


def escape_segment(value: str) -> str:
    """Percent-escape a single URL path segment (``/`` included)."""
    return quote(value, safe="")


def build_call_url(base_url: str, kind: CommandKind, command: str, path: Path, tree: str = "") -> str:
    """Build the full request URL for a command.

    Args:
        base_url: Absolute base URL of the server, e.g. ``http://127.0.0.1:8080``.
            A path prefix on the base URL is kept.
        kind: Command namespace.
        command: Command name, e.g. ``"read"``.  Empty for the root listing.
        path: Key path appended after the command.
        tree: Selected tree; only used for ``CommandKind.TREE``.

    Returns:
        The absolute request URL.

    Raises:
        CommandBuildError: If *kind* is not a ``CommandKind`` or
            *base_url* is not absolute.

    """
    parts = urlsplit(base_url)
    if not parts.scheme or not parts.netloc:
        raise CommandBuildError(f"base URL must be absolute, got {base_url!r}")
    base = base_url.rstrip("/")

    if kind is CommandKind.PLAIN:
        prefix = ""
    elif kind is CommandKind.TREE:
        prefix = f"/tree/{escape_segment(tree)}" if tree else ""
    elif kind is CommandKind.TAG:
        prefix = "/tag"
    else:
        raise CommandBuildError(f"unsupported command kind {kind!r}")

    return f"{base}{prefix}/{escape_segment(command)}{path.url_suffix()}"
