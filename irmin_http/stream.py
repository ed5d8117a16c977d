# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Streamed command execution.

A streamed reply is one open-ended JSON array::

    [{"stream": "start"}, {"version": "..."}, <frame>, <frame>, ..., {"stream": "end"}]

where each frame is ``{"error": str, "result": <json>}``.

``open_stream`` sends the request, validates the two header elements on
the caller's thread and hands the rest of the body to a worker thread,
which decodes one element at a time and publishes frames through a
bounded queue.  The consumer iterates a :class:`FrameStream`.

The HTTP response is closed exactly once.  Normally that is done by
whichever holder releases it last: the opening call (after the header)
or the worker (after the end token or an error).  A consumer that
abandons the stream closes it straight away, even while the worker is
blocked reading the body.
"""

from __future__ import annotations

import codecs
import json
import logging
import queue
import re
import threading
import weakref
from collections.abc import Iterator
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Final

import httpx

from irmin_http._debug import fmt_json, wire_stream_logger
from irmin_http._executor import request_args
from irmin_http.envelope import PostRequest
from irmin_http.errors import RemoteError, StreamProtocolError
from irmin_http.value import decode_text

__all__ = ["DEFAULT_BUFFER_SIZE", "Frame", "FrameStream", "open_stream"]

DEFAULT_BUFFER_SIZE: Final = 100
"""Maximum number of decoded frames waiting for the consumer."""

_PUT_POLL_INTERVAL: Final = 0.05
"""Seconds between abandonment checks while the queue is full."""

_WHITESPACE: Final = frozenset(" \t\r\n")

# Text left at a decode error when a chunk boundary cuts a token short.
_PARTIAL_TAIL: Final = re.compile(
    r"[-+.0-9eE]*"
    r"|t(?:r(?:ue?)?)?|f(?:a(?:l(?:se?)?)?)?|n(?:u(?:ll?)?)?"
    r"|\\?u?[0-9a-fA-F]{0,4}"
)


@dataclass(frozen=True)
class Frame:
    """One data element of a streamed reply.

    Attributes:
        error: Server-reported error for this element (empty on success).
        result: Raw JSON payload, decoded by the consumer.

    """

    error: str
    result: Any


class _ArrayEnd:
    """Marker returned when the closing ``]`` is read."""


_ARRAY_END: Final = _ArrayEnd()
_STREAM_END: Final = object()


@dataclass(frozen=True)
class _Failure:
    """Wraps an exception raised by the worker for re-raising on the consumer side."""

    exc: BaseException


# ---------------------------------------------------------------------------
# Incremental JSON array reader
# ---------------------------------------------------------------------------


class _JsonArrayReader:
    """Reads the elements of a top-level JSON array from a byte-chunk iterator.

    Only as much of the body is buffered as is needed to decode the next
    element.
    """

    __slots__ = ("_buf", "_chunks", "_count", "_decoder", "_eof", "_json", "_pos")

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._json = json.JSONDecoder()
        self._buf = ""
        self._pos = 0
        self._eof = False
        self._count = 0

    def _fill(self) -> bool:
        """Append the next chunk to the buffer; ``False`` once the body is exhausted."""
        if self._eof:
            return False
        try:
            chunk = next(self._chunks)
        except StopIteration:
            self._eof = True
            try:
                self._buf += self._decoder.decode(b"", final=True)
            except UnicodeDecodeError as exc:
                raise StreamProtocolError(f"stream body ends inside a UTF-8 sequence: {exc}") from exc
            return False
        if self._pos:
            self._buf = self._buf[self._pos :]
            self._pos = 0
        try:
            self._buf += self._decoder.decode(chunk)
        except UnicodeDecodeError as exc:
            raise StreamProtocolError(f"stream body is not valid UTF-8: {exc}") from exc
        return True

    def peek(self) -> str | None:
        """Return the next non-whitespace character without consuming it, ``None`` at end of body."""
        while True:
            while self._pos < len(self._buf) and self._buf[self._pos] in _WHITESPACE:
                self._pos += 1
            if self._pos < len(self._buf):
                return self._buf[self._pos]
            if not self._fill():
                return None

    def open_array(self) -> None:
        """Consume the opening ``[``."""
        ch = self.peek()
        if ch != "[":
            raise StreamProtocolError(f"expected '[' at start of stream, got {ch!r}")
        self._pos += 1

    def _may_be_truncated(self, exc: json.JSONDecodeError) -> bool:
        """Whether *exc* could go away once more of the body arrives.

        Anything else is a malformed element, reported without reading
        the rest of the body.
        """
        if exc.pos >= len(self._buf) or exc.msg.startswith("Unterminated string"):
            return True
        return _PARTIAL_TAIL.fullmatch(self._buf, exc.pos) is not None

    def read_value(self) -> Any:
        """Decode one complete JSON value at the current position."""
        while True:
            try:
                value, end = self._json.raw_decode(self._buf, self._pos)
            except json.JSONDecodeError as exc:
                if self._may_be_truncated(exc) and self._fill():
                    continue
                raise StreamProtocolError(f"malformed stream element: {exc.msg}") from exc
            # A number ending exactly at the buffer edge may be truncated.
            if _is_number(value) and end == len(self._buf) and self._fill():
                continue
            self._pos = end
            return value

    def next_element(self) -> Any:
        """Return the next array element, or ``_ARRAY_END`` after the closing ``]``."""
        ch = self.peek()
        if ch is None:
            raise StreamProtocolError("stream ended before the end token")
        if ch == "]":
            self._pos += 1
            return _ARRAY_END
        if self._count:
            if ch != ",":
                raise StreamProtocolError(f"expected ',' or ']' between stream elements, got {ch!r}")
            self._pos += 1
            if self.peek() is None:
                raise StreamProtocolError("stream ended before the end token")
        value = self.read_value()
        self._count += 1
        return value


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _control_token(element: Any) -> str | None:
    """Return the ``stream`` token of *element*, or ``None`` if it is not a control token."""
    if not isinstance(element, dict) or "stream" not in element:
        return None
    try:
        return decode_text(element["stream"])
    except ValueError as exc:
        raise StreamProtocolError(f"undecodable control token {fmt_json(element)}") from exc


# ---------------------------------------------------------------------------
# Response ownership
# ---------------------------------------------------------------------------


class _ResponseCloser:
    """Reference count over a streamed response; closes it when the last holder releases."""

    __slots__ = ("_closed", "_holders", "_lock", "_response")

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._lock = threading.Lock()
        self._holders = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the response has been closed."""
        return self._closed

    def acquire(self) -> None:
        """Register a holder.

        Raises:
            RuntimeError: If the response is already closed.

        """
        with self._lock:
            if self._closed:
                raise RuntimeError("response already released")
            self._holders += 1

    def release(self) -> None:
        """Drop a holder, closing the response if it was the last one."""
        with self._lock:
            self._holders -= 1
            if self._holders > 0 or self._closed:
                return
            self._closed = True
        self._close_response()

    def close_now(self) -> None:
        """Close the response regardless of remaining holders.

        A later ``release`` is then a no-op, so the response is still
        closed exactly once.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._close_response()

    def _close_response(self) -> None:
        self._response.close()
        if wire_stream_logger.isEnabledFor(logging.DEBUG):
            wire_stream_logger.debug("Released stream response: %s", self._response.url)


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


class _StreamWorker:
    """Decode loop run on a background thread.

    Holds no reference to the ``FrameStream`` so that a discarded stream
    can be garbage collected and abandon the worker.
    """

    __slots__ = ("_abandoned", "_closer", "_queue", "_reader", "_thread", "_url")

    def __init__(
        self,
        reader: _JsonArrayReader,
        closer: _ResponseCloser,
        url: str,
        buffer_size: int,
    ) -> None:
        self._reader = reader
        self._closer = closer
        self._url = url
        self._queue: queue.Queue[object] = queue.Queue(maxsize=buffer_size)
        self._abandoned = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"irmin-stream {url}", daemon=True)

    def start(self) -> None:
        """Take a hold on the response and start decoding."""
        self._closer.acquire()
        try:
            self._thread.start()
        except BaseException:
            self._closer.release()
            raise

    def _publish(self, item: object) -> bool:
        """Block until *item* is queued; ``False`` if the consumer abandoned the stream."""
        while not self._abandoned.is_set():
            try:
                self._queue.put(item, timeout=_PUT_POLL_INTERVAL)
            except queue.Full:
                continue
            return True
        return False

    def _run(self) -> None:
        terminal: object = _STREAM_END
        frames = 0
        try:
            while not self._abandoned.is_set():
                element = self._reader.next_element()
                if element is _ARRAY_END:
                    raise StreamProtocolError("stream closed without an end token", url=self._url)
                token = _control_token(element)
                if token == "end":
                    break
                if token is not None:
                    raise StreamProtocolError(f"unexpected control token {token!r}", url=self._url)
                if not isinstance(element, dict) or "result" not in element:
                    raise StreamProtocolError(
                        f"stream element carries neither a result nor a control token: {fmt_json(element)}",
                        url=self._url,
                    )
                frame = Frame(error=decode_text(element.get("error")), result=element["result"])
                if wire_stream_logger.isEnabledFor(logging.DEBUG):
                    wire_stream_logger.debug("Frame %d: %s", frames, fmt_json(element))
                if not self._publish(frame):
                    break
                frames += 1
        except Exception as exc:
            wire_stream_logger.debug("Stream %s failed after %d frames: %s", self._url, frames, exc)
            terminal = _Failure(exc)
        finally:
            self._closer.release()

        if self._abandoned.is_set():
            wire_stream_logger.debug("Stream %s abandoned after %d frames", self._url, frames)
            return
        if terminal is _STREAM_END:
            wire_stream_logger.debug("Stream %s ended after %d frames", self._url, frames)
        self._publish(terminal)

    def get(self) -> object:
        """Return the next queued item, blocking until one is available."""
        return self._queue.get()

    def abandon(self) -> None:
        """Stop the worker, close the response and discard queued frames.

        Closing the response unblocks a worker waiting on the network; it
        then exits without publishing anything.
        """
        self._abandoned.set()
        self._closer.close_now()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker thread; ``True`` if it has finished."""
        self._thread.join(timeout)
        return not self._thread.is_alive()


# ---------------------------------------------------------------------------
# Public stream handle
# ---------------------------------------------------------------------------


class FrameStream:
    """Live, finite, non-restartable sequence of frames from a streamed reply.

    Iteration blocks until the worker has decoded the next frame.  It ends
    after the server's end token; a protocol or transport failure is
    raised from ``__next__`` after every frame that preceded it.

    Calling ``close()`` (or leaving a ``with`` block, or dropping the last
    reference) before the end abandons the stream; the response is still
    released.
    """

    __slots__ = ("__weakref__", "_closer", "_done", "_finalizer", "_version", "_worker")

    def __init__(self, worker: _StreamWorker, closer: _ResponseCloser, version: str) -> None:
        """Initialize with a started worker; use ``open_stream`` instead of calling directly."""
        self._worker = worker
        self._closer = closer
        self._version = version
        self._done = False
        self._finalizer = weakref.finalize(self, worker.abandon)

    @property
    def version(self) -> str:
        """Server version reported in the stream header."""
        return self._version

    @property
    def released(self) -> bool:
        """Whether the underlying HTTP response has been closed."""
        return self._closer.closed

    def __iter__(self) -> Iterator[Frame]:
        """Return self."""
        return self

    def __next__(self) -> Frame:
        """Return the next frame."""
        if self._done:
            raise StopIteration
        item = self._worker.get()
        if item is _STREAM_END:
            self._done = True
            raise StopIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.exc
        assert isinstance(item, Frame)
        return item

    def close(self) -> None:
        """Stop consuming and close the response; the worker exits at its next step."""
        self._done = True
        self._finalizer()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the decode worker to exit; ``True`` if it has."""
        return self._worker.join(timeout)

    def __enter__(self) -> FrameStream:
        """Enter the context."""
        return self

    def __exit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Exit the context, abandoning any unread frames."""
        self.close()


def _read_header(reader: _JsonArrayReader, url: str, status_code: int) -> str:
    """Validate ``[``, the start token and the version element; return the version."""
    if reader.peek() == "{":
        # Errors come back as a plain envelope instead of a stream.
        reply = reader.read_value()
        if isinstance(reply, dict) and reply.get("error"):
            raise RemoteError(decode_text(reply["error"]), version=decode_text(reply.get("version")))
        raise StreamProtocolError(
            f"HTTP {status_code}: expected a streamed array, got {fmt_json(reply)}",
            url=url,
            status_code=status_code,
        )
    reader.open_array()

    start = reader.next_element()
    if _control_token(start) != "start":
        raise StreamProtocolError(
            f"missing stream start token, got {fmt_json(start) if start is not _ARRAY_END else ']'}",
            url=url,
            status_code=status_code,
        )

    header = reader.next_element()
    if not isinstance(header, dict) or "version" not in header:
        raise StreamProtocolError(
            f"missing stream version header, got {fmt_json(header) if header is not _ARRAY_END else ']'}",
            url=url,
            status_code=status_code,
        )
    try:
        return decode_text(header["version"])
    except ValueError as exc:
        raise StreamProtocolError(f"undecodable stream version: {exc}", url=url, status_code=status_code) from exc


def open_stream(
    client: httpx.Client,
    url: str,
    post: PostRequest | None = None,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> FrameStream:
    """Execute a streamed command and return its live frame sequence.

    Args:
        client: HTTP client used for the request.
        url: Fully built request URL.
        post: Request body; ``None`` issues a GET.
        buffer_size: Capacity of the frame queue between the decode
            worker and the consumer.

    Returns:
        A started ``FrameStream``.

    Raises:
        httpx.TransportError: If the request fails (propagated unchanged).
        RemoteError: If the server answered with an error envelope.
        StreamProtocolError: If the header is missing or malformed.  The
            response is released before raising.

    """
    if buffer_size < 1:
        raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")

    args = request_args(post)
    if wire_stream_logger.isEnabledFor(logging.DEBUG):
        wire_stream_logger.debug(
            "Open stream %s %s body=%s",
            args["method"],
            url,
            fmt_json(post.to_json()) if post is not None else "-",
        )
    request = client.build_request(args["method"], url, content=args.get("content"), headers=args["headers"])
    response = client.send(request, stream=True)

    closer = _ResponseCloser(response)
    closer.acquire()
    try:
        reader = _JsonArrayReader(response.iter_bytes())
        version = _read_header(reader, url, response.status_code)
        wire_stream_logger.debug("Stream %s started: status=%d, version=%s", url, response.status_code, version)
        worker = _StreamWorker(reader, closer, url, buffer_size)
        worker.start()
    finally:
        closer.release()
    return FrameStream(worker, closer, version)
