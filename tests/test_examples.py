"""Tests that verify the examples in the examples/ directory run."""

from __future__ import annotations

import pytest

from irmin_http import Path, connect
from irmin_http.testing import MemoryStore, make_app, make_test_client

from tests._support import BASE_URL


class TestExamples:
    """Examples run against the in-memory server."""

    def test_hello_world(self, capsys: pytest.CaptureFixture[str]) -> None:
        """hello_world.py: update, compare-and-set, clone and iterate."""
        from examples.hello_world import main

        main()
        out = capsys.readouterr().out
        assert "greeting/en = Hello, World!" in out
        assert "compare-and-set refused: test-and-set failed" in out
        assert "master: counter, greeting/en" in out
        assert "draft: counter, greeting/en, greeting/fr" in out

    def test_tree(self) -> None:
        """tree.py: dump_tree prints key=value, falling back to repr for binary values."""
        from examples.tree import dump_tree

        store = MemoryStore({"master": {Path("a"): b"1", Path("b", "c"): b"\xff"}})
        with connect(BASE_URL, client=make_test_client(make_app(store))) as conn:
            assert dump_tree(conn) == ["a=1", "b/c=b'\\xff'"]
            conn.client.close()
