# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the irmin-http CLI tool."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

import httpx
import pytest
from typer.testing import CliRunner

from irmin_http._debug import KNOWN_LOGGERS
from irmin_http.cli import _CliConfig, app
from irmin_http.path import Path
from irmin_http.testing import TEST_VERSION, MemoryStore, make_app, make_test_client

from tests._support import BASE_URL

runner = CliRunner()

_ALL_LOGGER_NAMES = [name for name, _ in KNOWN_LOGGERS]


@pytest.fixture
def invoke(store: MemoryStore) -> Any:
    """Return a helper invoking the CLI against the in-memory server holding *store*."""
    wsgi_app = make_app(store)

    def _invoke(args: list[str], **kwargs: Any) -> Any:
        config = _CliConfig(client_factory=lambda: make_test_client(wsgi_app))
        return runner.invoke(app, ["--url", BASE_URL, *args], obj=config, **kwargs)

    return _invoke


def _error(result: Any) -> dict[str, str]:
    """Extract the JSON error object written to stderr."""
    line = next(line for line in result.output.splitlines() if line.startswith('{"error"'))
    error: dict[str, str] = json.loads(line)["error"]
    return error


# ---------------------------------------------------------------------------
# Option handling (no server needed)
# ---------------------------------------------------------------------------


class TestOptions:
    """Global option handling."""

    def test_no_args_shows_help(self) -> None:
        """Running without a command prints usage."""
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    def test_url_required(self) -> None:
        """Commands that talk to a server need --url."""
        result = runner.invoke(app, ["version"], env={"IRMIN_URL": ""})
        assert result.exit_code == 2
        assert "--url" in result.output

    def test_url_from_environment(self, store: MemoryStore) -> None:
        """IRMIN_URL supplies the server URL."""
        wsgi_app = make_app(store)
        config = _CliConfig(client_factory=lambda: make_test_client(wsgi_app))
        result = runner.invoke(app, ["version"], obj=config, env={"IRMIN_URL": BASE_URL})
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert json.loads(result.stdout) == TEST_VERSION

    def test_bad_log_level(self) -> None:
        """Unknown log levels are rejected."""
        result = runner.invoke(app, ["--log-level", "chatty", "loggers"])
        assert result.exit_code == 2
        assert "chatty" in result.output


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestReadCommands:
    """Read-only commands."""

    def test_version(self, invoke: Any) -> None:
        """version prints the server version as JSON."""
        result = invoke(["version"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert json.loads(result.stdout) == TEST_VERSION

    def test_commands(self, invoke: Any) -> None:
        """commands lists what the server supports."""
        result = invoke(["commands"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert "read" in json.loads(result.stdout)

    def test_list_root(self, invoke: Any) -> None:
        """list without a path lists the top level."""
        result = invoke(["list"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert json.loads(result.stdout) == ["a", "b"]

    def test_list_table(self, invoke: Any) -> None:
        """Table format prints one key per line."""
        result = invoke(["--format", "table", "list", "b"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert result.stdout.splitlines() == ["b/c", "b/d"]

    def test_mem(self, invoke: Any) -> None:
        """mem prints a JSON boolean."""
        assert json.loads(invoke(["mem", "a"]).stdout) is True
        assert json.loads(invoke(["mem", "zzz"]).stdout) is False

    def test_read_text(self, invoke: Any) -> None:
        """Text values print as JSON strings."""
        result = invoke(["read", "b/c"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert json.loads(result.stdout) == "hello"

    def test_read_binary(self, invoke: Any) -> None:
        """Binary values print as byte lists."""
        result = invoke(["read", "b/d"])
        assert json.loads(result.stdout) == [255, 0]

    def test_read_missing(self, invoke: Any) -> None:
        """A missing key exits 1 with a JSON error."""
        result = invoke(["read", "nope"])
        assert result.exit_code == 1
        assert _error(result) == {"type": "NoSuchKeyError", "message": "invalid key nope"}


class TestMutationCommands:
    """Commands that change the store."""

    def test_update(self, invoke: Any, store: MemoryStore) -> None:
        """update stores the value under the given owner and message."""
        result = invoke(["--owner", "cli-user", "update", "x/y", "new value", "-m", "from cli"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert len(json.loads(result.stdout)) == 40
        assert store.branch("master")[Path("x", "y")] == b"new value"
        assert store.tasks[-1]["owner"] == "cli-user"
        assert store.tasks[-1]["messages"] == ["from cli"]

    def test_update_on_tree(self, invoke: Any, store: MemoryStore) -> None:
        """--tree directs writes to another branch."""
        result = invoke(["--tree", "dev", "update", "k", "v"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert store.branch("dev") == {Path("k"): b"v"}
        assert Path("k") not in store.branch("master")

    def test_compare_and_set(self, invoke: Any, store: MemoryStore) -> None:
        """compare-and-set applies when --old matches."""
        result = invoke(["compare-and-set", "a", "2", "--old", "1"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert store.branch("master")[Path("a")] == b"2"

    def test_compare_and_set_conflict(self, invoke: Any) -> None:
        """A mismatch reports the server's error."""
        result = invoke(["compare-and-set", "a", "2", "--old", "stale"])
        assert result.exit_code == 1
        assert _error(result) == {"type": "RemoteError", "message": "test-and-set failed"}

    def test_remove(self, invoke: Any, store: MemoryStore) -> None:
        """remove deletes a single key."""
        result = invoke(["remove", "a"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert Path("a") not in store.branch("master")

    def test_remove_recursive(self, invoke: Any, store: MemoryStore) -> None:
        """--recursive deletes a subtree."""
        result = invoke(["remove", "--recursive", "b"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert list(store.branch("master")) == [Path("a")]

    def test_clone(self, invoke: Any, store: MemoryStore) -> None:
        """clone creates a tag; repeating it needs --force."""
        assert invoke(["clone", "v1"]).exit_code == 0
        assert "v1" in store.branches()
        duplicate = invoke(["clone", "v1"])
        assert duplicate.exit_code == 1
        assert _error(duplicate)["type"] == "CloneError"
        assert invoke(["clone", "--force", "v1"]).exit_code == 0


class TestIter:
    """Streaming every key."""

    def test_keys(self, invoke: Any) -> None:
        """Each key is one JSON line."""
        result = invoke(["iter"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert [json.loads(line) for line in result.stdout.splitlines()] == ["a", "b/c", "b/d"]

    def test_values_table(self, invoke: Any) -> None:
        """--values prints key=value pairs in table format."""
        result = invoke(["--format", "table", "iter", "--values"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert result.stdout.splitlines() == ["a=1", "b/c=hello", "b/d=[255, 0]"]

    def test_values_json(self, invoke: Any) -> None:
        """--values prints objects in JSON format."""
        result = invoke(["iter", "--values"])
        rows = [json.loads(line) for line in result.stdout.splitlines()]
        assert rows[0] == {"path": "a", "value": "1"}


class TestTransportFailure:
    """Connection failures."""

    def test_connect_error(self) -> None:
        """Transport errors exit 1 with the exception type."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        config = _CliConfig(client_factory=lambda: httpx.Client(transport=httpx.MockTransport(refuse)))
        result = runner.invoke(app, ["--url", BASE_URL, "version"], obj=config)
        assert result.exit_code == 1
        assert _error(result) == {"type": "ConnectError", "message": "connection refused"}


# ---------------------------------------------------------------------------
# Logging options
# ---------------------------------------------------------------------------


@pytest.fixture
def _reset_loggers() -> Iterator[None]:
    """Save and restore logger handlers and levels after each test."""
    saved: dict[str, tuple[int, list[logging.Handler]]] = {}
    for name in _ALL_LOGGER_NAMES:
        logger = logging.getLogger(name)
        saved[name] = (logger.level, list(logger.handlers))
    yield
    for name in _ALL_LOGGER_NAMES:
        logger = logging.getLogger(name)
        level, handlers = saved[name]
        logger.handlers[:] = handlers
        logger.setLevel(level)


class TestLogging:
    """Tests for CLI logging options and the loggers subcommand."""

    def test_loggers_json(self) -> None:
        """``irmin-http loggers`` lists every logger as JSON."""
        result = runner.invoke(app, ["--format", "json", "loggers"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        names = {entry["name"] for entry in json.loads(result.stdout)}
        assert names == set(_ALL_LOGGER_NAMES)

    def test_loggers_table(self) -> None:
        """Table format shows a header and every name."""
        result = runner.invoke(app, ["--format", "table", "loggers"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert "description" in result.output
        for name in _ALL_LOGGER_NAMES:
            assert name in result.output

    def test_debug_flag(self, _reset_loggers: None) -> None:
        """``--debug`` sets the package logger to DEBUG."""
        result = runner.invoke(app, ["--debug", "loggers"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        logger = logging.getLogger("irmin_http")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) >= 1

    def test_log_logger_targeting(self, _reset_loggers: None) -> None:
        """``--log-logger`` configures only the named logger."""
        result = runner.invoke(app, ["--log-level", "info", "--log-logger", "irmin_http.wire.stream", "loggers"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert logging.getLogger("irmin_http.wire.stream").level == logging.INFO
        assert logging.getLogger("irmin_http").level == logging.NOTSET

    def test_log_format_json(self, _reset_loggers: None) -> None:
        """``--log-format json`` installs the JSON formatter."""
        from irmin_http.logging_utils import IrminJsonFormatter

        result = runner.invoke(app, ["--debug", "--log-format", "json", "loggers"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        logger = logging.getLogger("irmin_http")
        assert any(isinstance(h.formatter, IrminJsonFormatter) for h in logger.handlers)

    def test_debug_produces_wire_output(self, invoke: Any, _reset_loggers: None) -> None:
        """``--debug`` logs requests on stderr."""
        result = invoke(["--debug", "version"])
        assert result.exit_code == 0, f"Failed: {result.output}"
        assert "irmin_http.wire.request" in result.output
