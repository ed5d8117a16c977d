# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Client for the Irmin key/value store's HTTP+JSON interface."""

from irmin_http.command import CommandKind, build_call_url
from irmin_http.connection import DEFAULT_TIMEOUT, Connection, connect
from irmin_http.envelope import PostRequest, Reply, Task
from irmin_http.errors import (
    AmbiguousReadError,
    CloneError,
    CommandBuildError,
    InvalidUtf8Error,
    IrminError,
    MissingHashError,
    NoSuchKeyError,
    RemoteError,
    ReplyError,
    ResponseDecodeError,
    StreamDecodeError,
    StreamProtocolError,
)
from irmin_http.path import Path
from irmin_http.stream import DEFAULT_BUFFER_SIZE, Frame, FrameStream, open_stream

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_TIMEOUT",
    "AmbiguousReadError",
    "CloneError",
    "CommandBuildError",
    "CommandKind",
    "Connection",
    "Frame",
    "FrameStream",
    "InvalidUtf8Error",
    "IrminError",
    "MissingHashError",
    "NoSuchKeyError",
    "Path",
    "PostRequest",
    "RemoteError",
    "Reply",
    "ReplyError",
    "ResponseDecodeError",
    "StreamDecodeError",
    "StreamProtocolError",
    "Task",
    "build_call_url",
    "connect",
    "open_stream",
]
