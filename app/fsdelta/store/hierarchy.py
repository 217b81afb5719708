"""Hierarchical path keys for subtree-scoped queries.

A file's key is its containing directory written as ``/``-terminated
segments (``/a/b/c.txt`` -> ``/a/b/``). A scan root's key covers the
root directory itself (``/a`` -> ``/a/``). Because every key ends with
a separator, a subtree is the half-open range ``[key, key[:-1] + "0")``:
``/ab/`` never falls inside ``/a/``, and the range maps onto an index
scan in the store.
"""

from pathlib import PurePath

SEPARATOR = "/"

# First character ordered after SEPARATOR.
_UPPER = chr(ord(SEPARATOR) + 1)


def _segments(path: PurePath) -> list[str]:
    """Split a path into key segments, keeping a drive as the first segment."""
    parts = list(path.parts)
    if path.anchor:
        anchor = path.anchor.strip("/\\")
        parts = ([anchor] if anchor else []) + parts[1:]
    return [p for p in parts if p not in ("", ".")]


def _join(segments: list[str]) -> str:
    if not segments:
        return SEPARATOR
    return SEPARATOR + SEPARATOR.join(segments) + SEPARATOR


def path_key(file_path: str) -> str:
    """Derive the hierarchical key of the directory containing a file.

    Args:
        file_path: File path.

    Returns:
        Key of the parent directory, e.g. ``/a/b/`` for ``/a/b/c.txt``.
    """
    return _join(_segments(PurePath(file_path))[:-1])


def subtree_key(root: str) -> str:
    """Derive the hierarchical key of a directory used as a scan root.

    Args:
        root: Directory path.

    Returns:
        Key covering the directory itself, e.g. ``/a/`` for ``/a``.
    """
    return _join(_segments(PurePath(root)))


def subtree_bounds(root: str) -> tuple[str, str]:
    """Return the half-open key range containing every key under a root.

    Args:
        root: Directory path.

    Returns:
        Tuple ``(low, high)`` with ``low <= key < high`` for descendants.
    """
    key = subtree_key(root)
    return key, key[:-1] + _UPPER


def is_under(key: str, root: str) -> bool:
    """Check whether a hierarchical key lies in the subtree of a root."""
    low, high = subtree_bounds(root)
    return low <= key < high
