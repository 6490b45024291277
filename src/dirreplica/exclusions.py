from __future__ import annotations

from typing import Iterable, Iterator

import pathspec


_WILDCARD_CHARS = frozenset("*?[")


def _normalize_entry(entry: str) -> str:
    return entry.strip().strip("/\\")


def _is_pattern(entry: str) -> bool:
    return any(char in _WILDCARD_CHARS for char in entry)


class ExclusionSet:
    """Directory names skipped by the walker, compared case-insensitively.

    Entries containing ``*``, ``?`` or ``[`` are treated as gitignore-style
    wildcards and matched against the bare directory name.
    """

    def __init__(self, entries: Iterable[str] = ()) -> None:
        self._entries: list[str] = []
        self._names: set[str] = set()
        patterns: list[str] = []

        for raw in entries:
            if not isinstance(raw, str):
                raise TypeError(f"Exclusion entries must be strings, got {type(raw).__name__}")
            entry = _normalize_entry(raw)
            if not entry:
                continue
            folded = entry.casefold()
            if folded in self._names or folded in patterns:
                continue
            self._entries.append(entry)
            if _is_pattern(entry):
                patterns.append(folded)
            else:
                self._names.add(folded)

        self._spec = pathspec.GitIgnoreSpec.from_lines(patterns) if patterns else None

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self.is_excluded(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"ExclusionSet({self._entries!r})"

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def is_excluded(self, directory_name: str) -> bool:
        folded = directory_name.casefold()
        if folded in self._names:
            return True
        if self._spec is not None:
            return self._spec.match_file(folded)
        return False
