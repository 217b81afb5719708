"""Unit tests for hierarchical path keys."""

import pytest
from fsdelta.store.hierarchy import is_under, path_key, subtree_bounds, subtree_key


class TestPathKey:
    """Tests for path_key function."""

    def test_parent_directory(self) -> None:
        """A file's key is its parent directory, separator-terminated."""
        assert path_key("/a/b/c.txt") == "/a/b/"

    def test_file_at_root(self) -> None:
        """A file directly under / has the root key."""
        assert path_key("/c.txt") == "/"


class TestSubtreeKey:
    """Tests for subtree_key function."""

    def test_directory(self) -> None:
        """A root's key covers the directory itself."""
        assert subtree_key("/a") == "/a/"

    def test_trailing_separator(self) -> None:
        """Trailing separators do not change the key."""
        assert subtree_key("/a/") == "/a/"

    def test_filesystem_root(self) -> None:
        """The filesystem root has the shortest key."""
        assert subtree_key("/") == "/"


class TestIsUnder:
    """Tests for subtree membership."""

    @pytest.mark.parametrize(
        ("file_path", "root", "expected"),
        [
            ("/a/x.txt", "/a", True),
            ("/a/b/c/x.txt", "/a", True),
            ("/a/b/x.txt", "/a/b", True),
            ("/ab/x.txt", "/a", False),
            ("/a-b/x.txt", "/a", False),
            ("/a.b/x.txt", "/a", False),
            ("/b/x.txt", "/a", False),
            ("/x.txt", "/a", False),
            ("/a/x.txt", "/", True),
        ],
    )
    def test_membership(self, file_path: str, root: str, expected: bool) -> None:
        """Membership is segment-exact, not a string prefix match."""
        assert is_under(path_key(file_path), root) is expected

    def test_bounds_are_half_open(self) -> None:
        """The upper bound is excluded and sorts after every descendant key."""
        low, high = subtree_bounds("/a")
        assert low == "/a/"
        assert not is_under(high, "/a")
        assert "/a/zzz/" < high
