"""Read-only dashboard projection over the case collection."""
from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from testmo.types import CaseStatus

if TYPE_CHECKING:
    from testmo.types import TestCase

HOTSPOT_IGNORED_TAGS = frozenset({"Regression", "Smoke", "Automated"})
_DEFECT_STATUSES = (CaseStatus.FAILED, CaseStatus.BLOCKED)


def dashboard_stats(cases: list[TestCase]) -> dict[str, Any]:
    active = [c for c in cases if not c.is_draft]
    counts = Counter(c.case_status for c in active)
    started = len(active) - counts[CaseStatus.NOT_STARTED]
    passed = counts[CaseStatus.PASSED]

    defects = [c for c in active if c.case_status in _DEFECT_STATUSES]
    tag_failures = Counter(
        tag for c in defects for tag in dict.fromkeys(c.tags) if tag not in HOTSPOT_IGNORED_TAGS
    )
    recent = sorted(defects, key=lambda c: c.last_updated, reverse=True)[:5]

    return {
        "total": len(active),
        "passed": passed,
        "failed": counts[CaseStatus.FAILED],
        "blocked": counts[CaseStatus.BLOCKED],
        "in_progress": counts[CaseStatus.IN_PROGRESS],
        "not_started": counts[CaseStatus.NOT_STARTED],
        "drafts": len(cases) - len(active),
        "pass_rate": (200 * passed + started) // (2 * started) if started else 0,
        "hotspots": tag_failures.most_common(5),
        "recent_defects": [c.case_id for c in recent],
    }
