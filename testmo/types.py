from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

# ─── Enumerations ───

class Priority(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class StepStatus(StrEnum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    PASSED = "Passed"
    FAILED = "Failed"
    BLOCKED = "Blocked"


class CaseStatus(StrEnum):
    DRAFT = "Draft"
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    PASSED = "Passed"
    FAILED = "Failed"
    BLOCKED = "Blocked"


class Action(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    IMPORT = "import"
    LOGIN = "login"


# Step outcomes that must go through the failure/block interception
INTERCEPTED = (StepStatus.FAILED, StepStatus.BLOCKED)


def _enum(cls, value, default):
    try:
        return cls(value)
    except ValueError:
        return default


# ─── Test Records ───

@dataclass
class EvidenceAnalysis:
    is_match: bool
    confidence: int
    reasoning: str
    detected_issues: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceAnalysis:
        return cls(
            is_match=bool(data.get("is_match", False)),
            confidence=int(data.get("confidence", 0)),
            reasoning=data.get("reasoning", ""),
            detected_issues=list(data.get("detected_issues") or []),
        )


@dataclass
class TestStep:
    __test__ = False  # not a pytest class

    step_id: str
    sequence: int
    description: str
    expected_result: str
    test_data: str = ""
    estimated_duration_min: int = 0
    priority: Priority = Priority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    generated_example: bool = False
    notes: str | None = None
    status: StepStatus = StepStatus.NOT_STARTED
    actual_duration: int | None = None
    comment: str | None = None
    evidence: str | None = None  # opaque image reference, e.g. a data URL
    evidence_analysis: EvidenceAnalysis | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestStep:
        analysis = data.get("evidence_analysis")
        return cls(
            step_id=str(data["step_id"]),
            sequence=int(data.get("sequence", 0)),
            description=data.get("description", ""),
            expected_result=data.get("expected_result", ""),
            test_data=data.get("test_data") or "",
            estimated_duration_min=int(data.get("estimated_duration_min") or 0),
            priority=_enum(Priority, data.get("priority"), Priority.MEDIUM),
            dependencies=list(data.get("dependencies") or []),
            generated_example=bool(data.get("generated_example", False)),
            notes=data.get("notes"),
            status=_enum(StepStatus, data.get("status"), StepStatus.NOT_STARTED),
            actual_duration=data.get("actual_duration"),
            comment=data.get("comment"),
            evidence=data.get("evidence"),
            evidence_analysis=EvidenceAnalysis.from_dict(analysis) if analysis else None,
        )


@dataclass
class NegativeFlow:
    flow_id: str
    description: str
    steps: list[TestStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NegativeFlow:
        return cls(
            flow_id=str(data["flow_id"]),
            description=data.get("description", ""),
            steps=[TestStep.from_dict(s) for s in data.get("steps") or []],
        )


@dataclass
class TestCase:
    __test__ = False  # not a pytest class

    case_id: str
    title: str
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    meta: dict[str, str] | None = None  # classification dimensions, passed through untouched
    priority: Priority = Priority.MEDIUM
    type: str = "functional"  # functional | regression | smoke | exploratory
    preconditions: list[str] = field(default_factory=list)
    estimated_duration_min: int = 0
    estimated_effort: str = "M"  # XS | S | M | L | XL
    steps: list[TestStep] = field(default_factory=list)
    negative_flows: list[NegativeFlow] = field(default_factory=list)
    case_status: CaseStatus = CaseStatus.NOT_STARTED
    is_draft: bool = False
    last_updated: str = ""
    created_by: str = ""
    execution_date: str | None = None
    assigned_to: str | None = None
    executed_by: str | None = None

    @property
    def display_status(self) -> CaseStatus:
        return CaseStatus.DRAFT if self.is_draft else self.case_status

    def step(self, step_id: str) -> TestStep | None:
        for s in self.steps:
            if s.step_id == step_id:
                return s
        return None

    def has_tag(self, tag: str) -> bool:
        return tag in set(self.tags)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestCase:
        status = _enum(CaseStatus, data.get("case_status"), CaseStatus.NOT_STARTED)
        # Older snapshots stored Draft inside case_status
        is_draft = bool(data.get("is_draft", False)) or status == CaseStatus.DRAFT
        if status == CaseStatus.DRAFT:
            status = CaseStatus.NOT_STARTED
        return cls(
            case_id=str(data["case_id"]),
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            tags=list(data.get("tags") or []),
            meta=data.get("meta") or None,
            priority=_enum(Priority, data.get("priority"), Priority.MEDIUM),
            type=data.get("type") or "functional",
            preconditions=list(data.get("preconditions") or []),
            estimated_duration_min=int(data.get("estimated_duration_min") or 0),
            estimated_effort=data.get("estimated_effort") or "M",
            steps=[TestStep.from_dict(s) for s in data.get("steps") or []],
            negative_flows=[NegativeFlow.from_dict(f) for f in data.get("negative_flows") or []],
            case_status=status,
            is_draft=is_draft,
            last_updated=data.get("last_updated", ""),
            created_by=data.get("created_by", ""),
            execution_date=data.get("execution_date"),
            assigned_to=data.get("assigned_to"),
            executed_by=data.get("executed_by"),
        )


# ─── Activity Log ───

@dataclass
class ActivityEntry:
    id: str
    user: str
    action: Action
    target: str  # case id or a bulk label such as "3 Cases"
    details: str | None = None
    timestamp: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityEntry:
        return cls(
            id=str(data["id"]),
            user=data.get("user", ""),
            action=_enum(Action, data.get("action"), Action.UPDATE),
            target=data.get("target", ""),
            details=data.get("details"),
            timestamp=data.get("timestamp", ""),
        )


# ─── Users & Project ───

@dataclass
class User:
    username: str
    name: str
    role: str = "Tester"  # Admin | Tester | Viewer
    initials: str | None = None
    color: str | None = None
    avatar_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(**{k: data.get(k) for k in ("username", "name", "role", "initials", "color", "avatar_url")
                      if data.get(k) is not None})


@dataclass
class ProjectSettings:
    project_name: str = ""
    description: str = ""
    systems: str = ""  # comma separated
    urls: str = ""  # comma separated
    release_version: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectSettings:
        return cls(**{k: str(data.get(k) or "") for k in cls.__dataclass_fields__})


# ─── AI Results ───

@dataclass
class DefectReport:
    title: str
    description: str
    steps_to_reproduce: str
    expected_vs_actual: str
    severity: str  # Critical | Major | Minor | Trivial
    environment: str | None = None
    category: str | None = None


@dataclass
class MediaInput:
    mime_type: str
    data: str  # base64, optionally a data: URL
