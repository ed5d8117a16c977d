"""High-level client for an Irmin HTTP endpoint.

``Connection`` is an immutable value: selecting another tree or task owner
returns a new ``Connection`` sharing the same ``httpx.Client``, so
variants can be used from several threads without locking.

Example::

    with connect("http://127.0.0.1:8080", task_owner="me") as conn:
        task = conn.new_task("set greeting")
        conn.update(task, Path("greeting"), b"hello")
        for path in conn.with_tree("master").iterate():
            print(path, conn.read_string(path))
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Final
from urllib.parse import quote

import httpx

from irmin_http._debug import connection_logger
from irmin_http._executor import run_command
from irmin_http.command import CommandKind, build_call_url
from irmin_http.envelope import (
    PostRequest,
    Reply,
    ResultDecoder,
    Task,
    decode_bool,
    decode_path_list,
    decode_raw,
    decode_string,
    decode_string_list,
    decode_value_list,
)
from irmin_http.errors import (
    AmbiguousReadError,
    CloneError,
    InvalidUtf8Error,
    MissingHashError,
    NoSuchKeyError,
    RemoteError,
    ReplyError,
    StreamDecodeError,
)
from irmin_http.path import Path
from irmin_http.stream import DEFAULT_BUFFER_SIZE, FrameStream, open_stream
from irmin_http.value import encode_value, to_text

__all__ = ["DEFAULT_TIMEOUT", "Connection", "connect"]

DEFAULT_TIMEOUT: Final = 30.0
"""Default per-operation transport timeout in seconds."""

_ROOT: Final = Path()


@dataclass(frozen=True)
class Connection:
    """Client bound to an endpoint, a tree and a task owner.

    Attributes:
        base_url: Absolute base URL of the Irmin HTTP server.
        client: HTTP client shared by all derived connections.
        tree: Selected tree for tree-scoped commands; ``""`` is the
            server's default branch.
        task_owner: Identity recorded in tasks built by ``new_task``.
        stream_buffer_size: Frames buffered ahead of the consumer when
            iterating.

    """

    base_url: str
    client: httpx.Client = field(repr=False, compare=False)
    tree: str = ""
    task_owner: str = ""
    stream_buffer_size: int = DEFAULT_BUFFER_SIZE

    # ------------------------------------------------------------------
    # Derived connections and tasks
    # ------------------------------------------------------------------

    def with_tree(self, tree: str) -> Connection:
        """Return a connection addressing *tree* (``""`` for the default branch)."""
        return dataclasses.replace(self, tree=tree)

    def with_task_owner(self, owner: str) -> Connection:
        """Return a connection whose new tasks are owned by *owner*."""
        return dataclasses.replace(self, task_owner=owner)

    def new_task(self, *messages: str) -> Task:
        """Create a fresh task for one mutating command."""
        return Task(owner=self.task_owner, messages=messages)

    # ------------------------------------------------------------------
    # Protocol plumbing
    # ------------------------------------------------------------------

    def call_url(self, kind: CommandKind, command: str, path: Path = _ROOT) -> str:
        """Build the request URL for *command* on this connection."""
        return build_call_url(self.base_url, kind, command, path, self.tree)

    def _call[T](
        self,
        command: str,
        path: Path,
        decode_result: ResultDecoder[T],
        post: PostRequest | None = None,
        kind: CommandKind = CommandKind.TREE,
    ) -> Reply[T]:
        """Run *command* and return its envelope, raising ``RemoteError`` if it carries an error."""
        url = self.call_url(kind, command, path)
        reply = run_command(self.client, url, decode_result, post)
        if reply.error:
            connection_logger.debug("%s %s failed remotely: %s", command or "<root>", path, reply.error)
            raise RemoteError(reply.error, command=command, version=reply.version)
        return reply

    # ------------------------------------------------------------------
    # Server information
    # ------------------------------------------------------------------

    def available_commands(self) -> list[str]:
        """Return the command names the server supports."""
        return self._call("", _ROOT, decode_string_list).result

    def version(self) -> str:
        """Return the server's Irmin version."""
        return self._call("", _ROOT, decode_raw).version

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, path: Path = _ROOT) -> list[Path]:
        """Return the keys directly below *path*."""
        return self._call("list", path, decode_path_list).result

    def mem(self, path: Path) -> bool:
        """Return whether a value exists at *path*."""
        return self._call("mem", path, decode_bool).result

    def read(self, path: Path) -> bytes:
        """Return the value stored at *path*.

        Raises:
            NoSuchKeyError: If there is no value at *path*.
            AmbiguousReadError: If the server returned several values.

        """
        values = self._call("read", path, decode_value_list).result
        if len(values) > 1:
            raise AmbiguousReadError(path, len(values))
        if not values:
            raise NoSuchKeyError(path)
        return values[0]

    def read_string(self, path: Path) -> str:
        """Return the value at *path* as text.

        Raises:
            InvalidUtf8Error: If the value is not valid UTF-8.

        """
        data = self.read(path)
        try:
            return to_text(data)
        except UnicodeDecodeError as exc:
            raise InvalidUtf8Error(path) from exc

    def iterate(self) -> Iterator[Path]:
        """Stream every key in the tree.

        The request is sent and its header validated before this method
        returns; keys are then decoded as they arrive.  Closing the
        returned generator early releases the connection.

        Raises:
            RemoteError: If the server refuses the request, or (during
                iteration) reports an error for an element.
            StreamProtocolError: If the stream is malformed.
            StreamDecodeError: During iteration, if an element is not a path.

        """
        url = self.call_url(CommandKind.TREE, "iter")
        stream = open_stream(self.client, url, buffer_size=self.stream_buffer_size)
        return _decode_paths(stream)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update(self, task: Task, path: Path, value: bytes) -> str:
        """Store *value* at *path* and return the new commit hash."""
        post = PostRequest.with_params(task, encode_value(value))
        return self._expect_hash("update", path, self._call("update", path, decode_string, post))

    def compare_and_set(self, task: Task, path: Path, old: bytes | None, new: bytes | None) -> str:
        """Set *path* to *new* only if it currently holds *old*; return the commit hash.

        ``None`` for *old* means the key must be absent; ``None`` for *new*
        removes it.
        """
        post = PostRequest.with_params(task, [[encode_value(old)], [encode_value(new)]])
        reply = self._call("compare-and-set", path, decode_string, post)
        return self._expect_hash("compare-and-set", path, reply)

    def remove(self, task: Task, path: Path) -> None:
        """Remove the value at *path*."""
        self._remove("remove", task, path)

    def remove_rec(self, task: Task, path: Path) -> None:
        """Remove *path* and everything below it."""
        self._remove("remove-rec", task, path)

    def clone(self, name: str, *, force: bool = False) -> None:
        """Tag the current tree as *name*.

        With *force*, an existing tag of the same name is overwritten.

        Raises:
            CloneError: If the server did not confirm the clone.

        """
        tag = Path.parse(quote(name, safe=""))
        command = "clone-force" if force else "clone"
        result = self._call(command, tag, decode_string).result
        if result == "ok" or (force and result == ""):
            return
        raise CloneError(name, result, force=force)

    def _expect_hash(self, command: str, path: Path, reply: Reply[str]) -> str:
        if not reply.result:
            raise MissingHashError(command, path)
        connection_logger.debug("%s %s -> %s", command, path, reply.result)
        return reply.result

    def _remove(self, command: str, task: Task, path: Path) -> None:
        result = self._call(command, path, decode_raw, PostRequest(task)).result
        if isinstance(result, list) and len(result) > 1:
            raise ReplyError(f"{command} {path} returned more than one result")


def _decode_paths(stream: FrameStream) -> Iterator[Path]:
    """Yield each frame of *stream* as a ``Path``; closes the stream on exit."""
    with stream:
        for frame in stream:
            if frame.error:
                raise RemoteError(frame.error, command="iter", version=stream.version)
            try:
                path = Path.from_json(frame.result)
            except (ValueError, TypeError) as exc:
                raise StreamDecodeError(f"cannot decode stream element as a path: {exc}") from exc
            yield path


@contextlib.contextmanager
def connect(
    base_url: str,
    *,
    task_owner: str = "",
    tree: str = "",
    client: httpx.Client | None = None,
    timeout: float | httpx.Timeout | None = DEFAULT_TIMEOUT,
    headers: Mapping[str, str] | None = None,
    **client_kwargs: Any,
) -> Iterator[Connection]:
    """Open a ``Connection`` to an Irmin HTTP server.

    Args:
        base_url: Absolute base URL, e.g. ``http://127.0.0.1:8080``.
        task_owner: Identity recorded in tasks.
        tree: Initially selected tree (``""`` for the default branch).
        client: Optional pre-built client (e.g. from
            ``irmin_http.testing.make_test_client``).  A supplied client is
            not closed on exit.
        timeout: Transport timeout for the internally created client;
            ``None`` waits indefinitely.
        headers: Extra headers sent with every request.
        **client_kwargs: Forwarded to ``httpx.Client``.

    Yields:
        The connection.

    """
    own_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True, timeout=timeout, headers=headers, **client_kwargs)
    if connection_logger.isEnabledFor(logging.DEBUG):
        connection_logger.debug("Connecting to %s (tree=%r, owner=%r)", base_url, tree, task_owner)
    try:
        yield Connection(base_url=base_url, client=client, tree=tree, task_owner=task_owner)
    finally:
        if own_client:
            client.close()
