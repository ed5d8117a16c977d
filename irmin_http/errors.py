# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Exception hierarchy for the Irmin HTTP client.

Transport failures are not wrapped: ``httpx.TransportError`` (connect
errors, timeouts, DNS failures) propagates to the caller unchanged.
Everything raised by this package derives from :class:`IrminError`.
"""

from __future__ import annotations

__all__ = [
    "AmbiguousReadError",
    "CloneError",
    "CommandBuildError",
    "InvalidUtf8Error",
    "IrminError",
    "MissingHashError",
    "NoSuchKeyError",
    "RemoteError",
    "ReplyError",
    "ResponseDecodeError",
    "StreamDecodeError",
    "StreamProtocolError",
]


class IrminError(Exception):
    """Base class for all errors raised by ``irmin_http``."""


class CommandBuildError(IrminError):
    """Raised when a request URL cannot be built (unknown kind, bad base URL)."""


class ResponseDecodeError(IrminError):
    """Raised when a response body is not a well-formed reply envelope.

    Attributes:
        url: The request URL.
        status_code: HTTP status code of the response, or ``None``.

    """

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None) -> None:
        """Initialize with the failure description and request context."""
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class StreamProtocolError(ResponseDecodeError):
    """Raised when a streamed reply violates the framing protocol.

    Raised from ``open_stream`` for a bad header, and from iteration for
    malformed elements, unknown control tokens or a missing end token.
    """


class StreamDecodeError(IrminError):
    """Raised when a frame payload cannot be decoded into the expected type."""


class RemoteError(IrminError):
    """Raised when the server reports an error in the reply envelope.

    ``str(exc)`` is exactly the server's message.

    Attributes:
        message: The server-reported error text.
        command: Command name of the failed call.
        version: Version string from the envelope, if any.

    """

    def __init__(self, message: str, *, command: str = "", version: str = "") -> None:
        """Initialize with the server-reported message."""
        self.message = message
        self.command = command
        self.version = version
        super().__init__(message)


class ReplyError(IrminError):
    """Raised when an error-free reply violates the command's result shape."""


class NoSuchKeyError(ReplyError):
    """A read returned no value for the requested path."""

    def __init__(self, path: object) -> None:
        """Initialize with the missing path."""
        self.path = path
        super().__init__(f"invalid key {path}")


class AmbiguousReadError(ReplyError):
    """A read returned more than one value for a single path."""

    def __init__(self, path: object, count: int) -> None:
        """Initialize with the path and the number of values returned."""
        self.path = path
        self.count = count
        super().__init__(f"read {path} returned more than one result ({count})")


class InvalidUtf8Error(ReplyError):
    """A value read as a string is not valid UTF-8."""

    def __init__(self, path: object) -> None:
        """Initialize with the offending path."""
        self.path = path
        super().__init__(f"path {path} does not contain a valid utf8 string")


class MissingHashError(ReplyError):
    """A mutation reported no error but returned an empty commit hash."""

    def __init__(self, command: str, path: object) -> None:
        """Initialize with the command name and path."""
        self.command = command
        self.path = path
        super().__init__(f"{command} {path} succeeded but no hash returned")


class CloneError(ReplyError):
    """A clone reply carried something other than ``"ok"``."""

    def __init__(self, name: str, result: str, *, force: bool = False) -> None:
        """Initialize with the tag name and the unexpected result."""
        self.name = name
        self.result = result
        self.force = force
        super().__init__(result or f"clone {name} returned an empty result")
