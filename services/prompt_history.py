"""Bounded, deduplicated, most-recent-first history of edit instructions."""

from __future__ import annotations

from typing import List

HISTORY_CAPACITY = 5


class PromptHistoryLedger:
    """Keep the last few unique instructions, most recent first.

    Equality is an exact, case-sensitive match after trimming whitespace.
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self.capacity = capacity
        self._entries: List[str] = []

    def record(self, instruction: str) -> None:
        """Move ``instruction`` to the front, dropping duplicates and overflow."""
        trimmed = (instruction or "").strip()
        if not trimmed:
            return
        entries = [entry for entry in self._entries if entry != trimmed]
        entries.insert(0, trimmed)
        self._entries = entries[: self.capacity]

    def clear(self) -> None:
        self._entries = []

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, instruction: object) -> bool:
        return instruction in self._entries

    def __len__(self) -> int:
        return len(self._entries)
