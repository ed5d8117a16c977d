"""Print every key in a tree together with its value.

Start an Irmin HTTP server first (``irmin init --daemon``), then run::

    python examples/tree.py http://127.0.0.1:8080 master
"""

from __future__ import annotations

import sys

from irmin_http import Connection, InvalidUtf8Error, connect


def dump_tree(conn: Connection) -> list[str]:
    """Return ``key=value`` lines for every key in the connection's tree."""
    lines: list[str] = []
    for path in conn.iterate():
        try:
            value = conn.read_string(path)
        except InvalidUtf8Error:
            value = repr(conn.read(path))
        lines.append(f"{path}={value}")
    return lines


def main() -> None:
    """Dump the tree named on the command line."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8080"
    tree = sys.argv[2] if len(sys.argv) > 2 else ""
    with connect(base_url, tree=tree) as conn:
        for line in dump_tree(conn):
            print(line)


if __name__ == "__main__":
    main()
