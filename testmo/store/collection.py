"""Collection reconciliation: keyed bulk upsert/patch/remove of test cases.

The in-memory list is the source of truth. Each operation builds the new list
completely before swapping it in, then persists the whole collection and
appends exactly one activity entry for the batch.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from testmo.types import Action, TestCase

if TYPE_CHECKING:
    from collections.abc import Iterable

    from testmo.store.activity import ActivityLog
    from testmo.store.state import StateManager

logger = logging.getLogger(__name__)


def _check(cases: Iterable[TestCase]) -> list[TestCase]:
    items = list(cases)
    for c in items:
        if not isinstance(c, TestCase):
            raise TypeError(f"Expected TestCase, got {type(c).__name__}")
    return items


def _batch_label(cases: list[TestCase]) -> str:
    return cases[0].case_id if len(cases) == 1 else f"{len(cases)} Cases"


class CaseCollection:
    def __init__(self, cases: list[TestCase] | None = None, *, activity: ActivityLog,
                 store: StateManager | None = None):
        self._cases: list[TestCase] = list(cases or [])
        self.activity = activity
        self.store = store

    @classmethod
    def load(cls, store: StateManager, activity: ActivityLog) -> CaseCollection:
        return cls(store.load_cases(), activity=activity, store=store)

    # ─── Reads ───

    @property
    def cases(self) -> list[TestCase]:
        return list(self._cases)

    def get(self, case_id: str) -> TestCase | None:
        for c in self._cases:
            if c.case_id == case_id:
                return c
        return None

    def ids(self) -> set[str]:
        return {c.case_id for c in self._cases}

    def __len__(self) -> int:
        return len(self._cases)

    def __iter__(self):
        return iter(list(self._cases))

    def __contains__(self, case_id: object) -> bool:
        return case_id in self.ids()

    # ─── Mutations ───

    def upsert_many(self, cases: Iterable[TestCase], *, actor: str, action: Action = Action.CREATE,
                    label: str | None = None, details: str | None = None) -> list[TestCase]:
        """Insert or overwrite by id.

        Overwritten cases keep their position; new ones are prepended in the
        order given. Repeated ids in the input resolve last-write-wins.
        """
        incoming = _check(cases)
        if not incoming:
            return self.cases
        by_id: dict[str, TestCase] = {}
        for c in incoming:
            by_id[c.case_id] = c

        existing = self.ids()
        updated = [by_id.get(c.case_id, c) for c in self._cases]
        fresh: list[TestCase] = []
        seen: set[str] = set()
        for c in incoming:
            if c.case_id in existing or c.case_id in seen:
                continue
            seen.add(c.case_id)
            fresh.append(by_id[c.case_id])

        self._commit([*fresh, *updated], actor, action, label or _batch_label(incoming), details)
        return self.cases

    def patch_many(self, partials: Iterable[TestCase], *, actor: str, action: Action = Action.UPDATE,
                   label: str | None = None, details: str | None = None) -> list[TestCase]:
        """Replace matching cases in place. Unknown ids are ignored; order never changes."""
        incoming = _check(partials)
        by_id = {c.case_id: c for c in incoming}
        if not by_id:
            return self.cases
        patched = [by_id.get(c.case_id, c) for c in self._cases]
        if label is None:
            label = incoming[0].case_id if len(by_id) == 1 else "Bulk Update"
            if details is None and len(by_id) > 1:
                details = f"{len(by_id)} cases"
        self._commit(patched, actor, action, label, details)
        return self.cases

    def remove_many(self, case_ids: Iterable[str], *, actor: str, label: str | None = None,
                    details: str | None = None) -> list[TestCase]:
        """Drop every listed id.

        Callers holding a selection on one of the removed cases must clear it.
        """
        doomed = set(case_ids)
        if not doomed:
            return self.cases
        kept = [c for c in self._cases if c.case_id not in doomed]
        if label is None:
            label = next(iter(doomed)) if len(doomed) == 1 else "Bulk Delete"
            if details is None and len(doomed) > 1:
                details = f"{len(doomed)} cases"
        self._commit(kept, actor, Action.DELETE, label, details)
        return self.cases

    def _commit(self, new_cases: list[TestCase], actor: str, action: Action, label: str,
                details: str | None) -> None:
        self._cases = new_cases
        if self.store and not self.store.save_cases(self._cases):
            logger.warning("Collection kept in memory only; %d cases unsaved", len(self._cases))
        self.activity.record(actor, action, label, details)
