"""Command-line interface for Irmin HTTP servers.

Usage::

    irmin-http --url http://127.0.0.1:8080 version
    irmin-http --url http://127.0.0.1:8080 --tree master list a/b
    irmin-http --url http://127.0.0.1:8080 --owner me update a/b "new value" -m "why"
    irmin-http --url http://127.0.0.1:8080 iter --values

Paths are given in escaped form (``a/b%2Fc`` is the two segments ``a`` and
``b/c``).
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated

import httpx
import typer

from irmin_http._debug import KNOWN_LOGGERS
from irmin_http.connection import Connection, connect
from irmin_http.errors import IrminError, RemoteError
from irmin_http.logging_utils import configure_logging
from irmin_http.path import Path

# ---------------------------------------------------------------------------
# Output format enum
# ---------------------------------------------------------------------------


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    auto = "auto"
    json = "json"
    table = "table"


class LogFormat(StrEnum):
    """Log record format on stderr."""

    text = "text"
    json = "json"


# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    url: str | None = None
    tree: str = ""
    owner: str = ""
    format: OutputFormat = OutputFormat.auto
    client_factory: Callable[[], httpx.Client] | None = None


app = typer.Typer(
    name="irmin-http",
    help="Command line client for Irmin HTTP servers.",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    url: Annotated[str | None, typer.Option("--url", "-u", envvar="IRMIN_URL", help="Server base URL")] = None,
    tree: Annotated[str, typer.Option("--tree", "-t", envvar="IRMIN_TREE", help="Tree (branch) to address")] = "",
    owner: Annotated[str, typer.Option("--owner", "-o", envvar="IRMIN_OWNER", help="Task owner for mutations")] = "",
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.auto,
    debug: Annotated[bool, typer.Option("--debug", help="Enable DEBUG logging for irmin_http")] = False,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Logging level, e.g. INFO")] = None,
    log_logger: Annotated[str, typer.Option("--log-logger", help="Logger to configure")] = "irmin_http",
    log_format: Annotated[LogFormat, typer.Option("--log-format", help="Log record format")] = LogFormat.text,
) -> None:
    """Configure connection, output and logging options."""
    level_name = "DEBUG" if debug else log_level
    if level_name is not None:
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            raise typer.BadParameter(f"unknown log level {level_name!r}", param_hint="--log-level")
        configure_logging(level, logger_name=log_logger, json_format=log_format == LogFormat.json)
    factory = ctx.obj.client_factory if isinstance(ctx.obj, _CliConfig) else None
    ctx.obj = _CliConfig(url=url, tree=tree, owner=owner, format=fmt, client_factory=factory)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _open(ctx: typer.Context) -> Iterator[Connection]:
    """Open a connection from the resolved options, mapping failures to exit code 1."""
    config: _CliConfig = ctx.obj
    if not config.url:
        raise typer.BadParameter("--url (or IRMIN_URL) is required")
    client = config.client_factory() if config.client_factory is not None else None
    try:
        with connect(config.url, task_owner=config.owner, tree=config.tree, client=client) as conn:
            yield conn
    except IrminError as e:
        _emit_error(e)
        raise typer.Exit(1) from None
    except httpx.TransportError as e:
        _emit_error(e)
        raise typer.Exit(1) from None
    finally:
        if client is not None:
            client.close()


def _emit_error(e: Exception) -> None:
    """Write an error to stderr as JSON."""
    message = e.message if isinstance(e, RemoteError) else str(e)
    typer.echo(json.dumps({"error": {"type": type(e).__name__, "message": message}}), err=True)


def _print(data: object, config: _CliConfig) -> None:
    """Print a result as JSON (pretty on a TTY in auto mode) or as plain lines."""
    if config.format == OutputFormat.table:
        if isinstance(data, list):
            for item in data:
                typer.echo(str(item))
        else:
            typer.echo(str(data))
        return
    pretty = config.format == OutputFormat.auto and sys.stdout.isatty()
    typer.echo(json.dumps(data, indent=2 if pretty else None, default=str))


def _value_out(data: bytes) -> str | list[int]:
    """Render a value as text when it is UTF-8, else as its byte list."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return list(data)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def version(ctx: typer.Context) -> None:
    """Show the server's Irmin version."""
    with _open(ctx) as conn:
        _print(conn.version(), ctx.obj)


@app.command()
def commands(ctx: typer.Context) -> None:
    """List the commands the server supports."""
    with _open(ctx) as conn:
        _print(conn.available_commands(), ctx.obj)


@app.command("list")
def list_(ctx: typer.Context, path: Annotated[str, typer.Argument(help="Escaped path")] = "") -> None:
    """List the keys directly below PATH."""
    with _open(ctx) as conn:
        _print([str(p) for p in conn.list(Path.parse(path))], ctx.obj)


@app.command()
def mem(ctx: typer.Context, path: Annotated[str, typer.Argument(help="Escaped path")]) -> None:
    """Check whether a value exists at PATH."""
    with _open(ctx) as conn:
        _print(conn.mem(Path.parse(path)), ctx.obj)


@app.command()
def read(ctx: typer.Context, path: Annotated[str, typer.Argument(help="Escaped path")]) -> None:
    """Read the value at PATH."""
    with _open(ctx) as conn:
        _print(_value_out(conn.read(Path.parse(path))), ctx.obj)


@app.command()
def update(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Escaped path")],
    value: Annotated[str, typer.Argument(help="New value (UTF-8 text)")],
    message: Annotated[str, typer.Option("--message", "-m", help="Task message")] = "update",
) -> None:
    """Store VALUE at PATH and print the commit hash."""
    with _open(ctx) as conn:
        _print(conn.update(conn.new_task(message), Path.parse(path), value.encode()), ctx.obj)


@app.command("compare-and-set")
def compare_and_set(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Escaped path")],
    new: Annotated[str, typer.Argument(help="New value (UTF-8 text)")],
    old: Annotated[str | None, typer.Option("--old", help="Expected current value; omit if absent")] = None,
    message: Annotated[str, typer.Option("--message", "-m", help="Task message")] = "compare-and-set",
) -> None:
    """Set PATH to NEW if it currently holds --old; print the commit hash."""
    with _open(ctx) as conn:
        old_value = old.encode() if old is not None else None
        _print(conn.compare_and_set(conn.new_task(message), Path.parse(path), old_value, new.encode()), ctx.obj)


@app.command()
def remove(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Escaped path")],
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Remove everything below PATH")] = False,
    message: Annotated[str, typer.Option("--message", "-m", help="Task message")] = "remove",
) -> None:
    """Remove the value at PATH."""
    with _open(ctx) as conn:
        task = conn.new_task(message)
        if recursive:
            conn.remove_rec(task, Path.parse(path))
        else:
            conn.remove(task, Path.parse(path))
        _print("ok", ctx.obj)


@app.command()
def clone(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Tag name")],
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing tag")] = False,
) -> None:
    """Tag the current tree as NAME."""
    with _open(ctx) as conn:
        conn.clone(name, force=force)
        _print("ok", ctx.obj)


@app.command("iter")
def iter_(
    ctx: typer.Context,
    values: Annotated[bool, typer.Option("--values", help="Also read and print each value")] = False,
) -> None:
    """Stream every key in the tree, one per line."""
    config: _CliConfig = ctx.obj
    with _open(ctx) as conn:
        for path in conn.iterate():
            if not values:
                typer.echo(str(path) if config.format == OutputFormat.table else json.dumps(str(path)))
            elif config.format == OutputFormat.table:
                typer.echo(f"{path}={_value_out(conn.read(path))}")
            else:
                typer.echo(json.dumps({"path": str(path), "value": _value_out(conn.read(path))}))
            sys.stdout.flush()


@app.command()
def loggers(ctx: typer.Context) -> None:
    """List the loggers this package writes to."""
    config: _CliConfig = ctx.obj
    rows = [{"name": name, "description": description} for name, description in KNOWN_LOGGERS]
    if config.format == OutputFormat.table:
        width = max(len(row["name"]) for row in rows)
        typer.echo(f"{'name'.ljust(width)}  description")
        for row in rows:
            typer.echo(f"{row['name'].ljust(width)}  {row['description']}")
    else:
        typer.echo(json.dumps(rows))
