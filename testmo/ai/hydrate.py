"""Turn untrusted model output into strict records.

Model JSON is checked once, here. Required fields must be present, optional
ones are defaulted, execution state is always reset, and step sequences are
made dense. Any violation is a MalformedResponseError.
"""
from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import Any

from testmo.engine.steps import renumber_steps
from testmo.errors import MalformedResponseError
from testmo.types import (
    CaseStatus,
    DefectReport,
    EvidenceAnalysis,
    NegativeFlow,
    Priority,
    StepStatus,
    TestCase,
    TestStep,
)
from testmo.utils import now_iso

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")

CASE_REQUIRED = ("title", "steps")
STEP_REQUIRED = ("description", "expected_result")
ANALYSIS_REQUIRED = ("is_match", "confidence", "reasoning")
DEFECT_REQUIRED = ("title", "description", "steps_to_reproduce", "expected_vs_actual", "severity")
SEVERITIES = ("Critical", "Major", "Minor", "Trivial")
EFFORTS = ("XS", "S", "M", "L", "XL")
CASE_TYPES = ("functional", "regression", "smoke", "exploratory")


def parse_json_payload(text: str | None) -> Any:
    if not text or not text.strip():
        raise MalformedResponseError("The AI service returned an empty response.")
    clean = _FENCE_RE.sub("", text.strip())
    try:
        return json.loads(clean)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"The AI response was incomplete or not valid JSON ({e.msg}). Try again or shorten the input."
        ) from e


def _require(raw: Any, fields: tuple[str, ...], what: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Expected a JSON object for {what}, got {type(raw).__name__}")
    missing = [f for f in fields if raw.get(f) in (None, "")]
    if missing:
        raise MalformedResponseError(f"{what} is missing required field(s): {', '.join(missing)}")
    return raw


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        raise MalformedResponseError(f"Expected a list, got {type(value).__name__}")
    return [str(v) for v in value if v is not None and str(v).strip()]


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if value in allowed else default


def hydrate_step(raw: Any, position: int) -> TestStep:
    data = _require(raw, STEP_REQUIRED, f"step {position}")
    return TestStep(
        step_id=str(data.get("step_id") or ""),
        sequence=_int(data.get("sequence"), position),
        description=str(data["description"]),
        expected_result=str(data["expected_result"]),
        test_data=str(data.get("test_data") or ""),
        estimated_duration_min=_int(data.get("estimated_duration_min")),
        priority=Priority(_choice(data.get("priority"), tuple(Priority), Priority.MEDIUM)),
        generated_example=bool(data.get("generated_example", False)),
        notes=data.get("notes") or None,
        status=StepStatus.NOT_STARTED,
    )


def _free_id(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _hydrate_steps(raw: Any, what: str) -> list[TestStep]:
    if not isinstance(raw, list):
        raise MalformedResponseError(f"{what} steps must be a list")
    steps = renumber_steps([hydrate_step(s, i) for i, s in enumerate(raw, 1)])
    # Step ids must be unique within a case; ids the model gave win over generated ones
    given = {s.step_id for s in steps if s.step_id}
    seen: set[str] = set()
    for i, step in enumerate(steps):
        if not step.step_id or step.step_id in seen:
            steps[i] = replace(step, step_id=_free_id(f"S{step.sequence}", seen | given))
        seen.add(steps[i].step_id)
    return steps


def hydrate_flow(raw: Any, position: int) -> NegativeFlow:
    data = _require(raw, ("description",), f"negative flow {position}")
    return NegativeFlow(
        flow_id=str(data.get("flow_id") or f"NF{position}"),
        description=str(data["description"]),
        steps=_hydrate_steps(data.get("steps") or [], f"negative flow {position}"),
    )


def hydrate_case(raw: Any, *, case_id: str | None = None, created_by: str = "",
                 is_draft: bool = False) -> TestCase:
    data = _require(raw, CASE_REQUIRED, "test case")
    case_id = case_id or data.get("case_id")
    if not case_id:
        raise MalformedResponseError("test case is missing required field(s): case_id")
    meta = data.get("meta")
    if meta is not None and not isinstance(meta, dict):
        raise MalformedResponseError("meta must be an object")
    return TestCase(
        case_id=str(case_id),
        title=str(data["title"]),
        summary=str(data.get("summary") or ""),
        tags=list(dict.fromkeys(_str_list(data.get("tags")))),
        meta={str(k): str(v) for k, v in meta.items()} if meta else None,
        priority=Priority(_choice(data.get("priority"), tuple(Priority), Priority.MEDIUM)),
        type=_choice(data.get("type"), CASE_TYPES, "functional"),
        preconditions=_str_list(data.get("preconditions")),
        estimated_duration_min=_int(data.get("estimated_duration_min")),
        estimated_effort=_choice(data.get("estimated_effort"), EFFORTS, "M"),
        steps=_hydrate_steps(data["steps"], "test case"),
        negative_flows=[hydrate_flow(f, i) for i, f in enumerate(data.get("negative_flows") or [], 1)],
        case_status=CaseStatus.NOT_STARTED,
        is_draft=is_draft,
        last_updated=now_iso(),
        created_by=created_by,
    )


def hydrate_analysis(raw: Any) -> EvidenceAnalysis:
    data = _require(raw, ANALYSIS_REQUIRED, "evidence analysis")
    if not isinstance(data["is_match"], bool):
        raise MalformedResponseError("evidence analysis is_match must be a boolean")
    return EvidenceAnalysis(
        is_match=data["is_match"],
        confidence=min(max(_int(data["confidence"]), 0), 100),
        reasoning=str(data["reasoning"]),
        detected_issues=_str_list(data.get("detected_issues")),
    )


def hydrate_defect(raw: Any) -> DefectReport:
    data = _require(raw, DEFECT_REQUIRED, "defect report")
    if data["severity"] not in SEVERITIES:
        raise MalformedResponseError(f"Unknown defect severity: {data['severity']!r}")
    return DefectReport(
        title=str(data["title"]),
        description=str(data["description"]),
        steps_to_reproduce=str(data["steps_to_reproduce"]),
        expected_vs_actual=str(data["expected_vs_actual"]),
        severity=data["severity"],
        environment=data.get("environment"),
        category=data.get("category"),
    )
