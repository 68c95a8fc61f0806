"""Collection reconciliation and the activity log.

Upserts keep the position of replaced cases and prepend new ones, removes
touch only the listed ids, and every batch yields exactly one log entry.
"""
from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import make_case
from testmo.store.activity import ActivityLog
from testmo.store.collection import CaseCollection
from testmo.types import Action


@pytest.fixture
def coll():
    c = CaseCollection(activity=ActivityLog())
    c.upsert_many([make_case("A"), make_case("B"), make_case("C")], actor="ann")
    return c


def _ids(c):
    return [x.case_id for x in c.cases]


# ═══════════════════════════════════════════════════════════
# Upsert
# ═══════════════════════════════════════════════════════════


def test_first_upsert_keeps_input_order(coll):
    assert _ids(coll) == ["A", "B", "C"]


def test_replaced_case_keeps_its_position(coll):
    coll.upsert_many([replace(make_case("B"), title="B v2")], actor="ann", action=Action.UPDATE)
    assert _ids(coll) == ["A", "B", "C"]
    assert coll.get("B").title == "B v2"


def test_new_case_is_prepended(coll):
    coll.upsert_many([make_case("D")], actor="ann")
    assert _ids(coll) == ["D", "A", "B", "C"]


def test_mixed_batch(coll):
    coll.upsert_many([make_case("E"), replace(make_case("C"), title="C v2"), make_case("F")], actor="ann")
    assert _ids(coll) == ["E", "F", "A", "B", "C"]
    assert coll.get("C").title == "C v2"


def test_duplicate_ids_in_batch_last_wins(coll):
    coll.upsert_many([replace(make_case("X"), title="first"), replace(make_case("X"), title="second")],
                     actor="ann")
    assert _ids(coll).count("X") == 1
    assert coll.get("X").title == "second"


def test_wrong_type_rejected_before_any_change(coll):
    with pytest.raises(TypeError):
        coll.upsert_many([make_case("Z"), {"case_id": "Y"}], actor="ann")
    assert _ids(coll) == ["A", "B", "C"]


# ═══════════════════════════════════════════════════════════
# Patch & remove
# ═══════════════════════════════════════════════════════════


def test_patch_ignores_unknown_ids(coll):
    coll.patch_many([replace(make_case("A"), title="A v2"), make_case("nope")], actor="ann")
    assert _ids(coll) == ["A", "B", "C"]
    assert coll.get("A").title == "A v2"


def test_remove_exactly_the_listed_ids(coll):
    coll.upsert_many([make_case("D")], actor="ann")
    coll.remove_many(["A", "C"], actor="ann")
    assert _ids(coll) == ["D", "B"]


def test_remove_from_any_position(coll):
    coll.remove_many(["B"], actor="ann")
    assert _ids(coll) == ["A", "C"]
    coll.remove_many(["C"], actor="ann")
    coll.remove_many(["A"], actor="ann")
    assert _ids(coll) == []


def test_cases_property_is_a_copy(coll):
    snapshot = coll.cases
    snapshot.clear()
    assert len(coll) == 3


# ═══════════════════════════════════════════════════════════
# Activity entries
# ═══════════════════════════════════════════════════════════


def test_one_entry_per_batch(coll):
    log = coll.activity
    assert len(log) == 1
    entry = log.entries()[0]
    assert entry.action == Action.CREATE
    assert entry.target == "3 Cases"
    assert entry.user == "ann"


def test_single_case_targets_its_id(coll):
    coll.patch_many([make_case("B")], actor="bob")
    entry = coll.activity.entries(1)[0]
    assert entry.target == "B"
    assert entry.action == Action.UPDATE
    assert entry.user == "bob"


def test_bulk_labels(coll):
    coll.patch_many([make_case("A"), make_case("B")], actor="ann")
    assert coll.activity.entries(1)[0].target == "Bulk Update"
    assert coll.activity.entries(1)[0].details == "2 cases"
    coll.remove_many(["A", "B"], actor="ann")
    entry = coll.activity.entries(1)[0]
    assert entry.target == "Bulk Delete"
    assert entry.action == Action.DELETE
    assert entry.details == "2 cases"


def test_empty_batches_log_nothing(coll):
    coll.upsert_many([], actor="ann")
    coll.patch_many([], actor="ann")
    coll.remove_many([], actor="ann")
    assert len(coll.activity) == 1


def test_log_is_capped_fifo():
    log = ActivityLog(limit=50)
    for i in range(55):
        log.record("ann", Action.UPDATE, f"TC-{i}")
    assert len(log) == 50
    entries = log.entries()
    assert entries[0].target == "TC-54"
    assert entries[-1].target == "TC-5"


def test_log_survives_reload(h):
    h.add(make_case("A"))
    h.ws.delete_case("A")
    h.reopen()
    actions = [e.action for e in h.ws.activity_entries()]
    assert actions == [Action.DELETE, Action.CREATE]
