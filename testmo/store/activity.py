"""Append-only activity log, capped to the most recent entries."""
from __future__ import annotations

from typing import TYPE_CHECKING

from testmo.types import Action, ActivityEntry
from testmo.utils import new_entry_id, now_iso

if TYPE_CHECKING:
    from testmo.store.state import StateManager

MAX_ENTRIES = 50


class ActivityLog:
    """Newest first. Once full, the oldest entry is evicted on each append."""

    def __init__(self, entries: list[ActivityEntry] | None = None, limit: int = MAX_ENTRIES,
                 store: StateManager | None = None):
        self.limit = limit
        self.store = store
        self._entries: list[ActivityEntry] = list(entries or [])[:limit]

    @classmethod
    def load(cls, store: StateManager, limit: int = MAX_ENTRIES) -> ActivityLog:
        return cls(store.load_activity(), limit=limit, store=store)

    def record(self, user: str, action: Action | str, target: str, details: str | None = None) -> ActivityEntry:
        entry = ActivityEntry(
            id=new_entry_id(),
            user=user,
            action=Action(action),
            target=target,
            details=details,
            timestamp=now_iso(),
        )
        self._entries = [entry, *self._entries][: self.limit]
        if self.store:
            self.store.save_activity(self._entries)
        return entry

    def entries(self, limit: int | None = None) -> list[ActivityEntry]:
        return list(self._entries[:limit] if limit else self._entries)

    def __len__(self) -> int:
        return len(self._entries)
