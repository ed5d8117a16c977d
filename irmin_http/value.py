"""JSON encoding of opaque stored values.

Irmin accepts a value either as a JSON string (when the bytes are valid
UTF-8) or as an array of byte values.  Some servers also emit
``{"hex": "..."}`` for binary data.  Decoding always produces ``bytes``;
callers that want text go through :func:`to_text`.
"""

from __future__ import annotations

from typing import Any

__all__ = ["decode_text", "decode_value", "encode_value", "to_text"]


def encode_value(data: bytes | None) -> str | list[int] | None:
    """Encode bytes in the JSON form the server expects.

    Args:
        data: Raw value, or ``None`` to encode ``null``.

    Returns:
        The UTF-8 string when *data* decodes cleanly, otherwise the list
        of byte values.

    """
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return list(data)


def decode_value(obj: Any) -> bytes:
    """Decode a JSON value into raw bytes.

    Raises:
        ValueError: If *obj* is not a string, byte array, hex object or null.

    """
    if obj is None:
        return b""
    if isinstance(obj, str):
        return obj.encode("utf-8")
    if isinstance(obj, list):
        if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in obj):
            raise ValueError(f"byte array contains values outside 0..255: {obj!r:.80}")
        return bytes(obj)
    if isinstance(obj, dict) and set(obj) == {"hex"} and isinstance(obj["hex"], str):
        return bytes.fromhex(obj["hex"])
    raise ValueError(f"cannot decode {type(obj).__name__} as a value")


def to_text(data: bytes) -> str:
    """Return *data* as ``str``, raising ``UnicodeDecodeError`` if not UTF-8."""
    return data.decode("utf-8")


def decode_text(obj: Any) -> str:
    """Decode a JSON value that must hold a UTF-8 string."""
    return to_text(decode_value(obj))
