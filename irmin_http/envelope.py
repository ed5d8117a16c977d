# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Request bodies and the uniform reply envelope.

Every non-streaming reply has the shape
``{"result": T, "error": str, "version": str}``.  The result type differs
per command, so :class:`Reply` is generic and each call site supplies a
decoder for its ``result``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from irmin_http.path import Path
from irmin_http.value import decode_text, decode_value

__all__ = [
    "PostRequest",
    "Reply",
    "ResultDecoder",
    "Task",
    "decode_bool",
    "decode_path_list",
    "decode_raw",
    "decode_string",
    "decode_string_list",
    "decode_value_list",
]

type ResultDecoder[T] = Callable[[Any], T]
"""Converts the raw JSON ``result`` of an envelope into a typed value."""


@dataclass(frozen=True)
class Task:
    """Audit record attached to every mutating command.

    Attributes:
        owner: Identity of the actor performing the change.
        messages: Free-text justification lines.
        date: Unix seconds, string-encoded as the server expects.
        uid: Provisional identifier; the server assigns the real one.

    """

    owner: str
    messages: tuple[str, ...] = ()
    date: str = field(default_factory=lambda: str(int(time.time())))
    uid: str = "0"

    def to_json(self) -> dict[str, object]:
        """Return the JSON object sent under ``task``."""
        return {
            "date": self.date,
            "uid": self.uid,
            "owner": self.owner,
            "messages": list(self.messages),
        }


@dataclass(frozen=True)
class PostRequest:
    """Body of a POST command: a task plus optional command parameters."""

    task: Task
    params: Any = None
    has_params: bool = False

    @classmethod
    def with_params(cls, task: Task, params: Any) -> PostRequest:
        """Build a request carrying *params* (which may itself be ``None``)."""
        return cls(task=task, params=params, has_params=True)

    def to_json(self) -> dict[str, object]:
        """Return the JSON body; ``params`` is omitted when absent."""
        body: dict[str, object] = {"task": self.task.to_json()}
        if self.has_params:
            body["params"] = self.params
        return body


@dataclass(frozen=True)
class Reply[T]:
    """Decoded reply envelope.

    ``error`` non-empty means the command failed and ``result`` /
    ``version`` carry no meaning.
    """

    result: T
    error: str = ""
    version: str = ""

    @classmethod
    def from_json(cls, obj: Any, decode_result: ResultDecoder[T]) -> Reply[T]:
        """Decode an envelope.

        When ``error`` is set, ``result`` is not decoded (it is often
        absent or ``null``) and is set to ``None``.

        Raises:
            ValueError: If *obj* is not an envelope or a field has the
                wrong shape.

        """
        if not isinstance(obj, dict):
            raise ValueError(f"reply must be a JSON object, got {type(obj).__name__}")
        error = decode_text(obj.get("error"))
        version = decode_text(obj.get("version"))
        if error:
            return cls(result=None, error=error, version=version)  # type: ignore[arg-type]
        return cls(result=decode_result(obj.get("result")), error=error, version=version)

    @property
    def ok(self) -> bool:
        """Whether the server reported success."""
        return not self.error


def decode_raw(obj: Any) -> Any:
    """Return the result untouched."""
    return obj


def decode_string(obj: Any) -> str:
    """Decode a string result."""
    return decode_text(obj)


def decode_bool(obj: Any) -> bool:
    """Decode a boolean result."""
    if not isinstance(obj, bool):
        raise ValueError(f"expected a boolean result, got {obj!r:.80}")
    return obj


def _as_list(obj: Any) -> list[Any]:
    if obj is None:
        return []
    if not isinstance(obj, list):
        raise ValueError(f"expected an array result, got {type(obj).__name__}")
    return obj


def decode_string_list(obj: Any) -> list[str]:
    """Decode an array of strings (``null`` is an empty list)."""
    return [decode_text(item) for item in _as_list(obj)]


def decode_value_list(obj: Any) -> list[bytes]:
    """Decode an array of opaque values (``null`` is an empty list)."""
    return [decode_value(item) for item in _as_list(obj)]


def decode_path_list(obj: Any) -> list[Path]:
    """Decode an array of paths (``null`` is an empty list)."""
    return [Path.from_json(item) for item in _as_list(obj)]
