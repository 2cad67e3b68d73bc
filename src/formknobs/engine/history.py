"""Bounded undo/redo history of form data and position."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class HistoryEntry:
    data: dict[str, Any]
    step_index: int


class StateHistory:
    """Linear undo stack; recording after an undo discards the redo branch.

    Args:
        max_size: Entries kept; the oldest are dropped first
    """

    def __init__(self, max_size: int = 50) -> None:
        if max_size < 1:
            raise ValueError("History size must be at least 1")
        self._max_size = max_size
        self._entries: list[HistoryEntry] = []
        self._index = -1

    def record(self, data: dict[str, Any], step_index: int) -> None:
        del self._entries[self._index + 1:]
        self._entries.append(HistoryEntry(copy.deepcopy(data), step_index))
        overflow = len(self._entries) - self._max_size
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def undo(self) -> HistoryEntry | None:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._copy(self._entries[self._index])

    def redo(self) -> HistoryEntry | None:
        if not self.can_redo:
            return None
        self._index += 1
        return self._copy(self._entries[self._index])

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _copy(entry: HistoryEntry) -> HistoryEntry:
        return HistoryEntry(copy.deepcopy(entry.data), entry.step_index)
