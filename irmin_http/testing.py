# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""In-memory Irmin HTTP server for tests.

Provides ``MemoryStore``, ``make_app`` (a Falcon WSGI application speaking
the Irmin HTTP wire protocol) and ``make_test_client`` which wraps the app
in an ``httpx.Client`` via ``httpx.WSGITransport``; no real HTTP server
needed::

    store = MemoryStore()
    with connect("http://irmin.test", client=make_test_client(make_app(store))) as conn:
        ...

WSGI hands the application an already-unescaped path, so keys whose
segments contain ``/`` cannot be told apart from nested keys here.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

import falcon
import httpx

from irmin_http.path import Path
from irmin_http.value import decode_value, encode_value

__all__ = ["DEFAULT_BRANCH", "TEST_VERSION", "MemoryStore", "make_app", "make_test_client"]

_logger = logging.getLogger("irmin_http.testing")

DEFAULT_BRANCH = "master"
TEST_VERSION = "0.9.4"


class MemoryStore:
    """Branch-keyed mapping of ``Path`` to value, guarded by a lock."""

    def __init__(self, branches: dict[str, dict[Path, bytes]] | None = None) -> None:
        """Initialize, optionally with pre-populated branches."""
        self._lock = threading.Lock()
        self._branches: dict[str, dict[Path, bytes]] = {DEFAULT_BRANCH: {}}
        for name, contents in (branches or {}).items():
            self._branches[name] = dict(contents)
        self._commits = 0
        self.tasks: list[dict[str, Any]] = []
        """Task objects received with mutating commands, in arrival order."""

    def _commit(self, branch: str, detail: str) -> str:
        self._commits += 1
        return hashlib.sha1(f"{branch}:{self._commits}:{detail}".encode()).hexdigest()

    def branch(self, name: str) -> dict[Path, bytes]:
        """Return a snapshot of *name* (empty if it does not exist)."""
        with self._lock:
            return dict(self._branches.get(name or DEFAULT_BRANCH, {}))

    def branches(self) -> list[str]:
        """Return the branch names."""
        with self._lock:
            return sorted(self._branches)

    def set(self, branch: str, path: Path, value: bytes) -> str:
        """Store *value* and return a commit hash."""
        with self._lock:
            self._branches.setdefault(branch or DEFAULT_BRANCH, {})[path] = value
            return self._commit(branch, f"set {path}")

    def compare_and_set(self, branch: str, path: Path, old: bytes | None, new: bytes | None) -> str | None:
        """Apply *new* if the current value equals *old*; ``None`` when the test fails."""
        with self._lock:
            contents = self._branches.setdefault(branch or DEFAULT_BRANCH, {})
            if contents.get(path) != old:
                return None
            if new is None:
                contents.pop(path, None)
            else:
                contents[path] = new
            return self._commit(branch, f"cas {path}")

    def remove(self, branch: str, path: Path, *, recursive: bool = False) -> str:
        """Remove *path* (and, if *recursive*, everything below it)."""
        with self._lock:
            contents = self._branches.setdefault(branch or DEFAULT_BRANCH, {})
            for key in list(contents):
                if key == path or (recursive and key.segments[: len(path)] == path.segments):
                    del contents[key]
            return self._commit(branch, f"remove {path}")

    def clone(self, branch: str, name: str, *, force: bool = False) -> bool:
        """Copy *branch* to a new branch *name*; ``False`` if it exists and not *force*."""
        with self._lock:
            if name in self._branches and not force:
                return False
            self._branches[name] = dict(self._branches.get(branch or DEFAULT_BRANCH, {}))
            return True


# ---------------------------------------------------------------------------
# Falcon application
# ---------------------------------------------------------------------------


def _envelope(resp: falcon.Response, result: Any = None, error: str = "") -> None:
    resp.content_type = falcon.MEDIA_JSON
    resp.media = {"result": result, "error": error, "version": TEST_VERSION}


def _children(contents: dict[Path, bytes], path: Path) -> list[Path]:
    depth = len(path)
    found = {
        Path(*key.segments[: depth + 1])
        for key in contents
        if len(key) > depth and key.segments[:depth] == path.segments
    }
    return sorted(found)


def _iter_body(keys: list[Path]) -> Iterator[bytes]:
    yield b'[{"stream":"start"}'
    yield b',{"version":' + json.dumps(TEST_VERSION).encode() + b"}"
    for key in keys:
        yield b',{"error":"","result":' + json.dumps(key.to_json()).encode() + b"}"
    yield b',{"stream":"end"}]'


class _IrminResource:
    """Sink handling every command URL."""

    _MUTATIONS = frozenset({"update", "compare-and-set", "remove", "remove-rec"})

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._handlers: dict[str, Callable[[str, Path, Any, falcon.Response], None]] = {
            "": self._commands,
            "list": self._list,
            "mem": self._mem,
            "read": self._read,
            "update": self._update,
            "compare-and-set": self._compare_and_set,
            "remove": self._remove,
            "remove-rec": self._remove_rec,
            "clone": self._clone,
            "clone-force": self._clone_force,
            "iter": self._iter,
        }

    def __call__(self, req: falcon.Request, resp: falcon.Response, **_kwargs: str) -> None:
        segments = [seg for seg in req.path.split("/") if seg]
        tree = ""
        if segments[:1] == ["tree"] and len(segments) >= 2:
            tree, segments = segments[1], segments[2:]
        elif segments[:1] == ["tag"]:
            _envelope(resp, error="tag commands are not supported by the test server")
            return
        command = segments[0] if segments else ""
        path = Path(*segments[1:])

        handler = self._handlers.get(command)
        if handler is None:
            resp.status = falcon.HTTP_404
            _envelope(resp, error=f"unknown command {command!r}")
            return

        params: Any = None
        if req.method == "POST":
            try:
                body = json.loads(req.bounded_stream.read() or b"null")
            except ValueError:
                resp.status = falcon.HTTP_400
                _envelope(resp, error="request body is not JSON")
                return
            if not isinstance(body, dict) or "task" not in body:
                resp.status = falcon.HTTP_400
                _envelope(resp, error="request body must carry a task")
                return
            self._store.tasks.append(body["task"])
            params = body.get("params")
        elif command in self._MUTATIONS:
            resp.status = falcon.HTTP_405
            _envelope(resp, error=f"{command} requires POST")
            return

        _logger.debug("%s tree=%r command=%r path=%s", req.method, tree, command, path)
        handler(tree, path, params, resp)

    def _commands(self, _tree: str, _path: Path, _params: Any, resp: falcon.Response) -> None:
        _envelope(resp, sorted(name for name in self._handlers if name))

    def _list(self, tree: str, path: Path, _params: Any, resp: falcon.Response) -> None:
        _envelope(resp, [child.to_json() for child in _children(self._store.branch(tree), path)])

    def _mem(self, tree: str, path: Path, _params: Any, resp: falcon.Response) -> None:
        _envelope(resp, path in self._store.branch(tree))

    def _read(self, tree: str, path: Path, _params: Any, resp: falcon.Response) -> None:
        contents = self._store.branch(tree)
        _envelope(resp, [encode_value(contents[path])] if path in contents else [])

    def _update(self, tree: str, path: Path, params: Any, resp: falcon.Response) -> None:
        try:
            value = decode_value(params)
        except ValueError as exc:
            _envelope(resp, error=str(exc))
            return
        _envelope(resp, self._store.set(tree, path, value))

    def _compare_and_set(self, tree: str, path: Path, params: Any, resp: falcon.Response) -> None:
        try:
            (old,), (new,) = params
            old_value = None if old is None else decode_value(old)
            new_value = None if new is None else decode_value(new)
        except (TypeError, ValueError) as exc:
            _envelope(resp, error=f"invalid compare-and-set parameters: {exc}")
            return
        commit = self._store.compare_and_set(tree, path, old_value, new_value)
        if commit is None:
            _envelope(resp, error="test-and-set failed")
        else:
            _envelope(resp, commit)

    def _remove(self, tree: str, path: Path, _params: Any, resp: falcon.Response) -> None:
        _envelope(resp, self._store.remove(tree, path))

    def _remove_rec(self, tree: str, path: Path, _params: Any, resp: falcon.Response) -> None:
        _envelope(resp, self._store.remove(tree, path, recursive=True))

    def _clone(self, tree: str, path: Path, _params: Any, resp: falcon.Response, *, force: bool = False) -> None:
        if len(path) != 1:
            _envelope(resp, error="clone expects exactly one tag name")
            return
        _envelope(resp, "ok" if self._store.clone(tree, path.segments[0], force=force) else "duplicated tag")

    def _clone_force(self, tree: str, path: Path, params: Any, resp: falcon.Response) -> None:
        self._clone(tree, path, params, resp, force=True)

    def _iter(self, tree: str, _path: Path, _params: Any, resp: falcon.Response) -> None:
        resp.content_type = falcon.MEDIA_JSON
        resp.stream = _iter_body(sorted(self._store.branch(tree)))


def make_app(store: MemoryStore | None = None) -> falcon.App[falcon.Request, falcon.Response]:
    """Create a Falcon WSGI app serving *store* (a fresh ``MemoryStore`` if omitted)."""
    app: falcon.App[falcon.Request, falcon.Response] = falcon.App()
    app.add_sink(_IrminResource(store if store is not None else MemoryStore()), prefix="/")
    return app


def make_test_client(
    app: falcon.App[falcon.Request, falcon.Response],
    *,
    base_url: str = "http://irmin.test",
) -> httpx.Client:
    """Wrap *app* in an ``httpx.Client`` that calls it in-process."""
    return httpx.Client(transport=httpx.WSGITransport(app=app), base_url=base_url)
