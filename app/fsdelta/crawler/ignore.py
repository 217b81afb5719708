"""Ignore rules for the crawler.

Patterns are glob-style. A pattern without a path separator matches
entry names anywhere in the tree (``.git``, ``*.tmp``); a pattern with
a separator matches the full path (``/data/scratch/*``). Patterns
starting with ~ are expanded to the user's home directory.
"""

import fnmatch
from collections.abc import Iterable
from pathlib import Path


class IgnoreRules:
    """Compiled set of ignore patterns.

    Args:
        patterns: Glob patterns to ignore.
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        home = str(Path.home())
        self._name_patterns: list[str] = []
        self._path_patterns: list[str] = []

        for raw in patterns:
            pattern = raw.strip()
            if not pattern:
                continue
            if pattern.startswith("~"):
                pattern = home + pattern[1:]
            if "/" in pattern:
                self._path_patterns.append(pattern.rstrip("/") or "/")
            else:
                self._name_patterns.append(pattern)

    def __bool__(self) -> bool:
        return bool(self._name_patterns or self._path_patterns)

    @property
    def patterns(self) -> tuple[str, ...]:
        """All active patterns."""
        return (*self._name_patterns, *self._path_patterns)

    def matches(self, path: str, name: str | None = None) -> bool:
        """Check whether an entry should be ignored.

        Args:
            path: Full path of the entry.
            name: Entry name; derived from ``path`` when omitted.

        Returns:
            True if any pattern matches the name or the full path.
        """
        entry_name = name if name is not None else Path(path).name

        for pattern in self._name_patterns:
            if fnmatch.fnmatchcase(entry_name, pattern):
                return True

        for pattern in self._path_patterns:
            if fnmatch.fnmatchcase(path, pattern):
                return True

        return False
