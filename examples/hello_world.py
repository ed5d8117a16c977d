"""Minimal irmin-http example against the in-memory test server.

The server is a Falcon app called in-process through
``httpx.WSGITransport``; no Irmin installation or network needed.

Run::

    python examples/hello_world.py
"""

from __future__ import annotations

from irmin_http import Path, RemoteError, connect
from irmin_http.testing import make_app, make_test_client


def main() -> None:
    """Write, read, branch and iterate."""
    with connect("http://irmin.test", task_owner="example", client=make_test_client(make_app())) as conn:
        # 1. Every mutation carries a task describing who changed what.
        commit = conn.update(conn.new_task("greet"), Path("greeting", "en"), b"Hello, World!")
        print(f"commit: {commit[:12]}")
        print(f"greeting/en = {conn.read_string(Path('greeting', 'en'))}")

        # 2. Compare-and-set only applies against the current value.
        conn.compare_and_set(conn.new_task(), Path("counter"), None, b"1")
        try:
            conn.compare_and_set(conn.new_task(), Path("counter"), b"0", b"2")
        except RemoteError as exc:
            print(f"compare-and-set refused: {exc}")

        # 3. Clone the tree and change the copy.
        conn.clone("draft")
        draft = conn.with_tree("draft")
        draft.update(draft.new_task(), Path("greeting", "fr"), "Bonjour, le monde !".encode())

        # 4. Stream every key of each tree.
        for name, c in (("master", conn), ("draft", draft)):
            keys = ", ".join(str(p) for p in c.iterate())
            print(f"{name}: {keys}")

        conn.client.close()


if __name__ == "__main__":
    main()
