"""Status engine: derive case status and progress from step outcomes.

Both functions are total and pure: they never raise and never touch their
input. A step status the engine does not recognise simply falls through to
NotStarted so a case can always be rendered.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from testmo.types import CaseStatus, StepStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from testmo.types import TestCase, TestStep


def derive_case_status(steps: Sequence[TestStep]) -> CaseStatus:
    if not steps:
        return CaseStatus.NOT_STARTED

    statuses = [s.status for s in steps]
    if all(st == StepStatus.NOT_STARTED for st in statuses):
        return CaseStatus.NOT_STARTED
    if all(st == StepStatus.PASSED for st in statuses):
        return CaseStatus.PASSED

    # Severity order: Failed > Blocked > partial progress
    if StepStatus.FAILED in statuses:
        return CaseStatus.FAILED
    if StepStatus.BLOCKED in statuses:
        return CaseStatus.BLOCKED
    if StepStatus.IN_PROGRESS in statuses or StepStatus.PASSED in statuses:
        return CaseStatus.IN_PROGRESS

    return CaseStatus.NOT_STARTED


def calculate_progress(steps: Sequence[TestStep]) -> int:
    """Percent complete; in-progress steps earn half credit."""
    if not steps:
        return 0
    passed = sum(1 for s in steps if s.status == StepStatus.PASSED)
    in_progress = sum(1 for s in steps if s.status == StepStatus.IN_PROGRESS)
    # (passed + 0.5 * in_progress) / n * 100, rounded half up in integer arithmetic
    numerator = (2 * passed + in_progress) * 100
    denominator = 2 * len(steps)
    return (2 * numerator + denominator) // (2 * denominator)


def recompute(case: TestCase) -> TestCase:
    """Return ``case`` with ``case_status`` re-derived. Drafts are left alone."""
    if case.is_draft:
        return case
    return replace(case, case_status=derive_case_status(case.steps))
