"""Shared plumbing for the CLI commands."""
from __future__ import annotations

import contextlib
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from testmo.config import WORKSPACE_DIR
from testmo.engine.status import calculate_progress
from testmo.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Iterator

    from testmo.types import TestCase


@contextlib.contextmanager
def open_workspace(cwd: str) -> Iterator[Workspace]:
    """Open the workspace under ``cwd`` or exit with a hint to run ``testmo init``."""
    root = Path(cwd)
    if not (root / WORKSPACE_DIR).exists():
        print("Not a testmo workspace. Run: testmo init", file=sys.stderr)
        sys.exit(1)
    try:
        workspace = Workspace.open(root)
    except ValueError as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        yield workspace
    finally:
        workspace.close()


def fail(message: str) -> None:
    print(f"✗ {message}", file=sys.stderr)
    sys.exit(1)


def case_line(case: TestCase) -> str:
    progress = calculate_progress(case.steps)
    return f"{case.case_id:<12} {case.display_status!s:<10} {case.priority!s:<6} {progress:>3}%  {case.title}"


def case_detail(case: TestCase) -> str:
    lines = [
        f"{case.case_id}: {case.title}",
        f"  Status: {case.display_status}  Priority: {case.priority}  Progress: {calculate_progress(case.steps)}%",
    ]
    if case.summary:
        lines.append(f"  {case.summary}")
    if case.tags:
        lines.append(f"  Tags: {', '.join(case.tags)}")
    if case.assigned_to:
        lines.append(f"  Assigned to: {case.assigned_to}")
    if case.preconditions:
        lines.append("  Preconditions:")
        lines.extend(f"    - {p}" for p in case.preconditions)
    lines.append("  Steps:")
    for step in sorted(case.steps, key=lambda s: s.sequence):
        lines.append(f"    {step.sequence}. [{step.status}] {step.description}  ({step.step_id})")
        lines.append(f"       expect: {step.expected_result}")
        if step.test_data:
            lines.append(f"       data: {step.test_data}")
        if step.notes:
            lines.append(f"       notes: {step.notes}")
        if step.evidence_analysis:
            verdict = "match" if step.evidence_analysis.is_match else "mismatch"
            lines.append(f"       evidence: {verdict} ({step.evidence_analysis.confidence}%)")
    for flow in case.negative_flows:
        lines.append(f"  Negative flow {flow.flow_id}: {flow.description} ({len(flow.steps)} steps)")
    return "\n".join(lines)
