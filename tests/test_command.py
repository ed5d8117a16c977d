"""Tests for request URL construction."""

from __future__ import annotations

import pytest

from irmin_http.command import CommandKind, build_call_url, escape_segment
from irmin_http.errors import CommandBuildError
from irmin_http.path import Path

BASE = "http://127.0.0.1:8080"


class TestBuildCallUrl:
    """Tests for build_call_url."""

    def test_plain(self) -> None:
        """Plain commands go directly under the base URL."""
        assert build_call_url(BASE, CommandKind.PLAIN, "read", Path("a", "b")) == f"{BASE}/read/a/b"

    def test_tree_without_tree_equals_plain(self) -> None:
        """An unset tree omits the tree segment entirely."""
        path = Path("x")
        assert build_call_url(BASE, CommandKind.TREE, "read", path) == build_call_url(
            BASE, CommandKind.PLAIN, "read", path
        )

    def test_tree_with_tree(self) -> None:
        """A selected tree is inserted as /tree/<name>."""
        path = Path("k")
        url = build_call_url(BASE, CommandKind.TREE, "read", path, "foo")
        assert url == BASE + "/tree/foo/read" + path.url_suffix()

    def test_tag(self) -> None:
        """Tag commands live under /tag."""
        assert build_call_url(BASE, CommandKind.TAG, "list", Path()) == f"{BASE}/tag/list"

    def test_tree_ignored_for_plain(self) -> None:
        """The tree only affects tree-scoped commands."""
        assert build_call_url(BASE, CommandKind.PLAIN, "list", Path(), "foo") == f"{BASE}/list"

    def test_empty_command_root(self) -> None:
        """The root command renders as a trailing slash."""
        assert build_call_url(BASE, CommandKind.TREE, "", Path()) == f"{BASE}/"

    def test_tree_and_segments_escaped(self) -> None:
        """Tree names and segments are escaped independently."""
        url = build_call_url(BASE, CommandKind.TREE, "read", Path("a/b", "c d"), "feature/x")
        assert url == f"{BASE}/tree/feature%2Fx/read/a%2Fb/c%20d"

    def test_command_escaped(self) -> None:
        """Command names are escaped too."""
        assert build_call_url(BASE, CommandKind.PLAIN, "we ird", Path()) == f"{BASE}/we%20ird"

    def test_base_path_prefix_kept(self) -> None:
        """A path prefix on the base URL survives, trailing slash or not."""
        assert build_call_url(f"{BASE}/irmin/", CommandKind.PLAIN, "mem", Path("a")) == f"{BASE}/irmin/mem/a"
        assert build_call_url(f"{BASE}/irmin", CommandKind.PLAIN, "mem", Path("a")) == f"{BASE}/irmin/mem/a"

    @pytest.mark.parametrize("base", ["", "localhost:8080", "/irmin", "http://"])
    def test_relative_base_rejected(self, base: str) -> None:
        """A base URL without scheme and host cannot be used."""
        with pytest.raises(CommandBuildError, match="absolute"):
            build_call_url(base, CommandKind.PLAIN, "read", Path())

    def test_unknown_kind(self) -> None:
        """Anything other than a CommandKind is rejected."""
        with pytest.raises(CommandBuildError, match="unsupported command kind"):
            build_call_url(BASE, "tree", "read", Path())  # type: ignore[arg-type]


class TestEscapeSegment:
    """Tests for escape_segment."""

    def test_slash_escaped(self) -> None:
        """Slashes do not survive as separators."""
        assert escape_segment("a/b") == "a%2Fb"

    def test_unreserved_untouched(self) -> None:
        """Unreserved characters are left alone."""
        assert escape_segment("a-b_c.d~e") == "a-b_c.d~e"

    def test_non_ascii(self) -> None:
        """Non-ASCII characters are UTF-8 percent-encoded."""
        assert escape_segment("é") == "%C3%A9"
