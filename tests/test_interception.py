"""Failure/block interception dialog, on its own and through the detail view."""
from __future__ import annotations

import pytest

from conftest import make_case
from testmo.engine.interception import FailureInterception, requires_interception
from testmo.errors import ValidationError
from testmo.types import Action, StepStatus


def test_only_failed_and_blocked_are_intercepted():
    assert requires_interception("Failed")
    assert requires_interception(StepStatus.BLOCKED)
    assert not requires_interception("Passed")
    assert not requires_interception("NotStarted")


def test_confirm_requires_a_note():
    dialog = FailureInterception()
    dialog.open("S1", "Failed")
    assert not dialog.can_confirm
    dialog.set_note("  ")
    assert not dialog.can_confirm
    with pytest.raises(ValidationError):
        dialog.confirm()
    assert dialog.is_open

    dialog.set_note(" error 500 ")
    assert dialog.can_confirm
    outcome = dialog.confirm()
    assert outcome.step_id == "S1"
    assert outcome.status == StepStatus.FAILED
    assert outcome.note == "error 500"
    assert outcome.evidence is None
    assert not dialog.is_open


def test_evidence_can_be_attached_and_removed_before_confirm():
    dialog = FailureInterception()
    dialog.open("S2", "Blocked")
    dialog.attach_evidence("data:image/png;base64,AAAA")
    dialog.remove_evidence()
    dialog.attach_evidence("data:image/png;base64,BBBB")
    outcome = dialog.confirm("db unreachable")
    assert outcome.evidence == "data:image/png;base64,BBBB"
    assert outcome.status == StepStatus.BLOCKED


def test_one_dialog_at_a_time():
    dialog = FailureInterception()
    dialog.open("S1", "Failed")
    with pytest.raises(ValidationError):
        dialog.open("S2", "Blocked")


def test_passed_never_opens_a_dialog():
    with pytest.raises(ValidationError):
        FailureInterception().open("S1", "Passed")


def test_cancel_resets_the_draft():
    dialog = FailureInterception()
    dialog.open("S1", "Failed")
    dialog.set_note("half written")
    dialog.cancel()
    assert not dialog.is_open
    assert dialog.note == ""
    with pytest.raises(ValidationError):
        dialog.set_note("late")


# ═══════════════════════════════════════════════════════════
# Detail view uses the same protocol
# ═══════════════════════════════════════════════════════════


def test_detail_view_failure_waits_for_note(h):
    h.add(make_case())
    before = len(h.ws.activity_entries())

    r = h.ws.set_step_status("TC-1", "S2", "Failed")
    assert r.pending
    assert h.statuses("TC-1")[1] == "NotStarted"
    assert len(h.ws.activity_entries()) == before

    r = h.ws.confirm_step_failure("error 500")
    assert r
    step = h.case("TC-1").step("S2")
    assert step.status == StepStatus.FAILED
    assert step.notes == "error 500"
    assert step.evidence is None
    entry = h.ws.activity_entries(1)[0]
    assert entry.action == Action.STATUS_CHANGE
    assert entry.target == "TC-1"


def test_detail_view_cancel_changes_nothing(h):
    h.add(make_case())
    h.ws.set_step_status("TC-1", "S1", "Blocked")
    assert h.ws.cancel_step_failure()
    assert h.statuses("TC-1") == ["NotStarted"] * 3
    assert not h.ws.confirm_step_failure("too late")


def test_detail_view_pass_applies_directly(h):
    h.add(make_case())
    r = h.ws.set_step_status("TC-1", "S1", "Passed")
    assert r and not r.pending
    assert h.statuses("TC-1")[0] == "Passed"
    assert h.case("TC-1").case_status == "InProgress"


def test_detail_view_note_given_up_front(h):
    h.add(make_case())
    h.ws.set_step_status("TC-1", "S3", "Blocked", note="VPN down")
    assert h.case("TC-1").step("S3").notes == "VPN down"
    assert h.case("TC-1").case_status == "Blocked"
