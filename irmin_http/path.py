# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Hierarchical key type used to address values in the store."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from urllib.parse import quote, unquote

from irmin_http.value import decode_text

__all__ = ["Path"]


class Path:
    """An immutable sequence of key segments.

    ``Path("a", "b")`` addresses ``a/b``.  Segments may contain any
    character, including ``/``; escaping happens only when the path is
    rendered into a URL.
    """

    __slots__ = ("_segments",)

    def __init__(self, *segments: str) -> None:
        """Initialize from raw (unescaped) segments."""
        for seg in segments:
            if not isinstance(seg, str):
                raise TypeError(f"path segment must be str, got {type(seg).__name__}")
        self._segments: tuple[str, ...] = segments

    @classmethod
    def parse(cls, escaped: str) -> Path:
        """Build a path from a ``/``-separated, percent-escaped string.

        Empty segments (leading, trailing or doubled slashes) are dropped.
        """
        return cls(*(unquote(seg) for seg in escaped.split("/") if seg))

    @classmethod
    def from_json(cls, obj: Any) -> Path:
        """Decode the server's JSON representation of a path.

        Accepts an array of segments, an escaped path string, or an
        object with a ``segments`` array.

        Raises:
            ValueError: If *obj* has none of these shapes.

        """
        if isinstance(obj, dict):
            if "segments" not in obj:
                raise ValueError(f"path object has no 'segments' key: {sorted(obj)!r}")
            obj = obj["segments"]
            if not isinstance(obj, list):
                raise ValueError("path 'segments' must be an array")
        if isinstance(obj, str):
            return cls.parse(obj)
        if isinstance(obj, list):
            return cls(*(decode_text(seg) for seg in obj))
        raise ValueError(f"cannot decode {type(obj).__name__} as a path")

    @property
    def segments(self) -> tuple[str, ...]:
        """The raw segments."""
        return self._segments

    def to_json(self) -> list[str]:
        """Return the JSON representation (array of segments)."""
        return list(self._segments)

    def url_suffix(self) -> str:
        """Return the URL form: ``/seg1/seg2`` with each segment escaped, ``""`` when empty."""
        return "".join("/" + quote(seg, safe="") for seg in self._segments)

    def child(self, *segments: str) -> Path:
        """Return a new path with *segments* appended."""
        return Path(*self._segments, *segments)

    def __str__(self) -> str:
        return "/".join(self._segments)

    def __repr__(self) -> str:
        return f"Path({', '.join(repr(s) for s in self._segments)})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __lt__(self, other: Path) -> bool:
        return self._segments < other._segments

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[str]:
        return iter(self._segments)

    def __bool__(self) -> bool:
        return bool(self._segments)
