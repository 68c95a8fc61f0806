"""Status engine: case status derivation and progress.

Covers the precedence rules (all passed, failed dominance, blocked,
partial progress), the half-credit progress formula with half-up rounding,
purity of both functions, and that drafts are skipped on recompute.
"""
from __future__ import annotations

import copy

import pytest

from conftest import make_case, make_step
from testmo.engine.status import calculate_progress, derive_case_status, recompute
from testmo.types import CaseStatus, StepStatus

NS, IP, P, F, B = (
    StepStatus.NOT_STARTED,
    StepStatus.IN_PROGRESS,
    StepStatus.PASSED,
    StepStatus.FAILED,
    StepStatus.BLOCKED,
)


def _steps(*statuses):
    return [make_step(i, s) for i, s in enumerate(statuses, 1)]


# ═══════════════════════════════════════════════════════════
# Derivation
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("statuses", "expected"),
    [
        ((), CaseStatus.NOT_STARTED),
        ((NS, NS), CaseStatus.NOT_STARTED),
        ((P, P, P), CaseStatus.PASSED),
        ((P, F, P), CaseStatus.FAILED),
        ((B, F), CaseStatus.FAILED),
        ((P, B, NS), CaseStatus.BLOCKED),
        ((P, NS), CaseStatus.IN_PROGRESS),
        ((IP, NS), CaseStatus.IN_PROGRESS),
        ((NS, IP, P), CaseStatus.IN_PROGRESS),
    ],
)
def test_derive_case_status(statuses, expected):
    assert derive_case_status(_steps(*statuses)) == expected


def test_failed_dominates_everything():
    for others in ((P,), (B,), (IP,), (NS,), (P, B, IP, NS)):
        assert derive_case_status(_steps(*others, F)) == CaseStatus.FAILED


def test_derive_is_pure():
    steps = _steps(P, F, NS)
    before = copy.deepcopy(steps)
    first = derive_case_status(steps)
    second = derive_case_status(steps)
    assert first == second
    assert steps == before


# ═══════════════════════════════════════════════════════════
# Progress
# ═══════════════════════════════════════════════════════════


def test_progress_empty_is_zero():
    assert calculate_progress([]) == 0


def test_progress_all_passed_is_100():
    assert calculate_progress(_steps(P, P, P, P, P)) == 100


def test_progress_half_passed_half_in_progress_is_75():
    assert calculate_progress(_steps(P, P, IP, IP)) == 75


def test_progress_failed_and_blocked_earn_nothing():
    assert calculate_progress(_steps(P, F, B, NS)) == 25


def test_progress_rounds_half_up():
    # 1 in progress of 4 = 12.5%
    assert calculate_progress(_steps(IP, NS, NS, NS)) == 13
    # 1 passed of 8 = 12.5%
    assert calculate_progress(_steps(P, *([NS] * 7))) == 13
    # 1 passed of 3 = 33.3%
    assert calculate_progress(_steps(P, NS, NS)) == 33
    # 2 passed of 3 = 66.7%
    assert calculate_progress(_steps(P, P, NS)) == 67


def test_progress_does_not_mutate():
    steps = _steps(P, IP)
    before = copy.deepcopy(steps)
    calculate_progress(steps)
    assert steps == before


# ═══════════════════════════════════════════════════════════
# Recompute
# ═══════════════════════════════════════════════════════════


def test_recompute_replaces_stale_status():
    case = make_case(statuses=[P, F], case_status=CaseStatus.PASSED)
    fresh = recompute(case)
    assert fresh.case_status == CaseStatus.FAILED
    assert case.case_status == CaseStatus.PASSED


def test_recompute_skips_drafts():
    case = make_case(statuses=[P, P], case_status=CaseStatus.NOT_STARTED, is_draft=True)
    assert recompute(case) is case
    assert recompute(case).display_status == CaseStatus.DRAFT
