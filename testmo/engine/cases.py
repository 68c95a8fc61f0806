"""Case lifecycle transitions: duplicate, reset, activate, promote flows."""
from __future__ import annotations

import copy
from dataclasses import replace
from typing import TYPE_CHECKING

from testmo.engine.status import derive_case_status
from testmo.engine.steps import renumber_steps, reset_step
from testmo.errors import ValidationError
from testmo.types import CaseStatus
from testmo.utils import new_case_id, now_iso

if TYPE_CHECKING:
    from testmo.types import NegativeFlow, TestCase


def _with_tags(tags: list[str], *extra: str) -> list[str]:
    out = list(tags)
    for tag in extra:
        if tag not in out:
            out.append(tag)
    return out


def duplicate_case(case: TestCase, existing_ids: set[str] | None = None) -> TestCase:
    return replace(
        case,
        case_id=new_case_id(existing_ids),
        title=f"{case.title} (Copy)",
        case_status=CaseStatus.NOT_STARTED,
        is_draft=False,
        tags=list(case.tags),
        preconditions=list(case.preconditions),
        meta=dict(case.meta) if case.meta is not None else None,
        steps=[reset_step(s) for s in case.steps],
        negative_flows=copy.deepcopy(case.negative_flows),
        executed_by=None,
        execution_date=None,
        last_updated=now_iso(),
    )


def reset_case(case: TestCase) -> TestCase:
    """Regression re-run: every step back to NotStarted, evidence and notes dropped."""
    return replace(
        case,
        case_status=CaseStatus.NOT_STARTED,
        steps=[reset_step(s) for s in case.steps],
        last_updated=now_iso(),
    )


def activate_case(case: TestCase) -> TestCase:
    if not case.is_draft:
        return case
    return replace(
        case,
        is_draft=False,
        case_status=derive_case_status(case.steps),
        last_updated=now_iso(),
    )


def mark_draft(case: TestCase) -> TestCase:
    return replace(case, is_draft=True, last_updated=now_iso())


def assign_case(case: TestCase, username: str | None) -> TestCase:
    return replace(case, assigned_to=username or None, last_updated=now_iso())


def _find_flow(case: TestCase, flow_id: str) -> NegativeFlow:
    for flow in case.negative_flows:
        if flow.flow_id == flow_id:
            return flow
    raise ValidationError(f'Negative flow "{flow_id}" not found in case {case.case_id}')


def _flow_case(case: TestCase, flow: NegativeFlow, case_id: str) -> TestCase:
    return replace(
        case,
        case_id=case_id,
        title=f"{case.title} - {flow.description[:30]}...",
        steps=renumber_steps([reset_step(s) for s in flow.steps]),
        negative_flows=[],
        case_status=CaseStatus.NOT_STARTED,
        executed_by=None,
        last_updated=now_iso(),
    )


def promote_negative_flow(case: TestCase, flow_id: str, existing_ids: set[str] | None = None) -> TestCase:
    """Turn one alternate path of ``case`` into a standalone, runnable case."""
    flow = _find_flow(case, flow_id)
    promoted = _flow_case(case, flow, new_case_id(existing_ids))
    return replace(
        promoted,
        summary=f"Variant of: {case.title}. Scenario: {flow.description}",
        is_draft=False,
        estimated_duration_min=max(2, (case.estimated_duration_min + 1) // 2),
        tags=_with_tags(case.tags, "AlternativeFlow"),
    )


def draft_backlog(case: TestCase, existing_ids: set[str] | None = None) -> list[TestCase]:
    """The case plus each of its negative flows, all parked as Backlog drafts."""
    taken = set(existing_ids or ())
    drafts = [replace(case, is_draft=True, tags=_with_tags(case.tags, "Backlog"), last_updated=now_iso())]
    taken.add(case.case_id)
    for flow in case.negative_flows:
        case_id = new_case_id(taken)
        taken.add(case_id)
        draft = _flow_case(case, flow, case_id)
        drafts.append(replace(
            draft,
            summary=f"Backlog draft based on flow: {flow.description}",
            is_draft=True,
            tags=_with_tags(case.tags, "AlternativeFlow", "Backlog"),
        ))
    return drafts
