"""Step mutations shared by the runner and the case detail surface.

Every function returns a new TestCase; the one passed in is left untouched.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from testmo.engine.status import recompute
from testmo.errors import ValidationError
from testmo.types import INTERCEPTED, StepStatus
from testmo.utils import now_iso

if TYPE_CHECKING:
    from collections.abc import Callable

    from testmo.types import EvidenceAnalysis, TestCase, TestStep

# Free-form fields a tester may edit at any time, with no status implication
EDITABLE_FIELDS = frozenset({
    "description", "expected_result", "test_data", "notes", "comment",
    "estimated_duration_min", "actual_duration", "priority",
})


def _require_step(case: TestCase, step_id: str) -> TestStep:
    step = case.step(step_id)
    if step is None:
        raise ValidationError(f'Step "{step_id}" not found in case {case.case_id}')
    return step


def _map_step(case: TestCase, step_id: str, fn: Callable[[TestStep], TestStep]) -> list[TestStep]:
    _require_step(case, step_id)
    return [fn(s) if s.step_id == step_id else s for s in case.steps]


def apply_step_status(
    case: TestCase,
    step_id: str,
    status: StepStatus,
    *,
    note: str | None = None,
    evidence: str | None = None,
    actor: str | None = None,
) -> TestCase:
    """Set a step outcome and re-derive the case status.

    Failed/Blocked require a non-blank note; callers obtain it through
    FailureInterception. A supplied evidence reference replaces the old one
    and drops its analysis.
    """
    status = StepStatus(status)
    if status in INTERCEPTED and not (note and note.strip()):
        raise ValidationError(f"A note is required to mark a step {status}")

    def update(step: TestStep) -> TestStep:
        changes: dict[str, Any] = {"status": status}
        if note:
            changes["notes"] = note
        if evidence:
            changes["evidence"] = evidence
            changes["evidence_analysis"] = None
        return replace(step, **changes)

    steps = _map_step(case, step_id, update)
    updated = replace(case, steps=steps, last_updated=now_iso())
    if actor:
        updated = replace(updated, executed_by=actor)
    return recompute(updated)


def update_step_fields(case: TestCase, step_id: str, **fields: Any) -> TestCase:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited directly: {', '.join(sorted(unknown))}")
    steps = _map_step(case, step_id, lambda s: replace(s, **fields))
    return replace(case, steps=steps, last_updated=now_iso())


def attach_evidence(case: TestCase, step_id: str, evidence: str) -> TestCase:
    if not evidence:
        raise ValidationError("Evidence reference is empty")
    steps = _map_step(case, step_id, lambda s: replace(s, evidence=evidence, evidence_analysis=None))
    return replace(case, steps=steps, last_updated=now_iso())


def remove_evidence(case: TestCase, step_id: str) -> TestCase:
    steps = _map_step(case, step_id, lambda s: replace(s, evidence=None, evidence_analysis=None))
    return replace(case, steps=steps, last_updated=now_iso())


def set_evidence_analysis(case: TestCase, step_id: str, analysis: EvidenceAnalysis) -> TestCase:
    step = _require_step(case, step_id)
    if not step.evidence:
        raise ValidationError(f'Step "{step_id}" has no evidence to analyse')
    steps = _map_step(case, step_id, lambda s: replace(s, evidence_analysis=analysis))
    return replace(case, steps=steps, last_updated=now_iso())


def reset_step(step: TestStep) -> TestStep:
    return replace(
        step,
        status=StepStatus.NOT_STARTED,
        notes=None,
        evidence=None,
        evidence_analysis=None,
        actual_duration=None,
    )


def renumber_steps(steps: list[TestStep]) -> list[TestStep]:
    """Order by sequence and make the sequence dense, starting at 1."""
    ordered = sorted(enumerate(steps), key=lambda pair: (pair[1].sequence, pair[0]))
    return [replace(s, sequence=i) for i, (_, s) in enumerate(ordered, 1)]
