"""Guided execution session: one case, one step at a time.

Transitions:
  mark_outcome(Passed)            → apply, auto-advance (or finish on the last step)
  mark_outcome(Failed|Blocked)    → no change; opens the failure interception
  confirm_failure(note, evidence) → replay the deferred mark with note attached
                                    Blocked auto-advances, Failed stays put
  navigate(±1)                    → move the pointer, never touches status
  close()                         → leave; committed progress stays committed
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from testmo.engine.interception import FailureInterception, PendingInterception
from testmo.engine.status import calculate_progress
from testmo.engine.steps import (
    apply_step_status,
    attach_evidence,
    remove_evidence,
    set_evidence_analysis,
    update_step_fields,
)
from testmo.errors import RunnerError
from testmo.types import INTERCEPTED, Action, CaseStatus, StepStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from testmo.types import EvidenceAnalysis, TestCase, TestStep

    CommitHook = Callable[[TestCase, Action, str], None]

RUNNER_OUTCOMES = (StepStatus.PASSED, StepStatus.FAILED, StepStatus.BLOCKED)


# ─── Result types ───

class RunResult:
    def __init__(self, success: bool, message: str, index: int | None = None, *, pending: bool = False):
        self.success = success
        self.message = message
        self.index = index
        self.pending = pending

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "index": self.index, "pending": self.pending}


@dataclass
class RunState:
    case_id: str
    current_index: int
    finished: bool = False
    pending: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunState:
        return cls(
            case_id=data["case_id"],
            current_index=int(data.get("current_index", 0)),
            finished=bool(data.get("finished", False)),
            pending=data.get("pending"),
        )


def initial_index(steps: list[TestStep]) -> int:
    """First step not yet passed, so a resumed run skips finished work."""
    for i, step in enumerate(steps):
        if step.status != StepStatus.PASSED:
            return i
    return 0


# ─── Session ───

class ExecutionSession:
    def __init__(self, case: TestCase, *, commit: CommitHook | None = None, actor: str | None = None,
                 state: RunState | None = None):
        if case.is_draft:
            raise RunnerError(f"{case.case_id} is a draft. Activate it before running.")
        if not case.steps:
            raise RunnerError(f"{case.case_id} has no steps to run.")
        self.case = case
        self.commit = commit
        self.actor = actor
        self.interception = FailureInterception()
        self.finished = False
        self.celebrate = False
        self.closed = False
        self.current_index = initial_index(self.steps)
        if state:
            self._restore(state)

    @property
    def steps(self) -> list[TestStep]:
        return sorted(self.case.steps, key=lambda s: s.sequence)

    @property
    def current_step(self) -> TestStep:
        return self.steps[self.current_index]

    @property
    def is_last(self) -> bool:
        return self.current_index == len(self.case.steps) - 1

    @property
    def pending_interception(self) -> PendingInterception | None:
        return self.interception.pending

    # ─── Outcomes ───

    def mark_outcome(self, status: StepStatus | str, note: str | None = None,
                     evidence: str | None = None) -> RunResult:
        rejected = self._check_input()
        if rejected:
            return rejected
        status = StepStatus(status)
        if status not in RUNNER_OUTCOMES:
            return RunResult(False, f"{status} is not a runner outcome. Use Passed, Failed or Blocked.",
                             self.current_index)

        step = self.current_step
        if status in INTERCEPTED and not (note and note.strip()):
            self.interception.open(step.step_id, status)
            return RunResult(
                True,
                f"Step {step.sequence}: describe what happened before marking it {status}.",
                self.current_index,
                pending=True,
            )
        return self._apply(step.step_id, status, note, evidence)

    def confirm_failure(self, note: str | None = None, evidence: str | None = None) -> RunResult:
        """Confirm the open dialog. Raises ValidationError while the note is blank."""
        if self.closed:
            return RunResult(False, "Session is closed.")
        if not self.interception.is_open:
            return RunResult(False, "No failure dialog is open.", self.current_index)
        outcome = self.interception.confirm(note, evidence)
        return self._apply(outcome.step_id, outcome.status, outcome.note, outcome.evidence)

    def cancel_failure(self) -> RunResult:
        pending = self.interception.pending
        if pending is None:
            return RunResult(False, "No failure dialog is open.", self.current_index)
        self.interception.cancel()
        step = self.case.step(pending.step_id)
        return RunResult(True, f"Cancelled. Step {step.sequence} stays {step.status}.", self.current_index)

    # ─── Navigation & edits ───

    def navigate(self, delta: int) -> RunResult:
        if delta not in (-1, 1):
            raise ValueError("navigate() moves one step at a time: use -1 or +1")
        rejected = self._check_input()
        if rejected:
            return rejected
        target = self.current_index + delta
        if target < 0:
            return RunResult(False, "Already at the first step.", self.current_index)
        if target >= len(self.case.steps):
            return RunResult(False, "Already at the last step.", self.current_index)
        self.current_index = target
        return RunResult(True, f"Step {self.current_step.sequence}/{len(self.case.steps)}", target)

    def edit_field(self, step_id: str | None = None, **fields: Any) -> RunResult:
        if self.closed:
            return RunResult(False, "Session is closed.")
        step_id = step_id or self.current_step.step_id
        self.case = update_step_fields(self.case, step_id, **fields)
        self._commit(Action.UPDATE, f"Step {self.case.step(step_id).sequence} edited: {', '.join(sorted(fields))}")
        return RunResult(True, "Step updated.", self.current_index)

    def attach_evidence(self, evidence: str) -> RunResult:
        if self.closed:
            return RunResult(False, "Session is closed.")
        step = self.current_step
        self.case = attach_evidence(self.case, step.step_id, evidence)
        self._commit(Action.UPDATE, f"Evidence attached to step {step.sequence}")
        return RunResult(True, "Evidence attached.", self.current_index)

    def remove_evidence(self) -> RunResult:
        if self.closed:
            return RunResult(False, "Session is closed.")
        step = self.current_step
        self.case = remove_evidence(self.case, step.step_id)
        self._commit(Action.UPDATE, f"Evidence removed from step {step.sequence}")
        return RunResult(True, "Evidence removed.", self.current_index)

    def apply_analysis(self, analysis: EvidenceAnalysis, step_id: str | None = None) -> RunResult:
        """Store an AI evidence check. Dropped silently if the session closed meanwhile."""
        if self.closed:
            return RunResult(False, "Session is closed; analysis discarded.")
        step_id = step_id or self.current_step.step_id
        self.case = set_evidence_analysis(self.case, step_id, analysis)
        self._commit(Action.UPDATE, f"Evidence analysed for step {self.case.step(step_id).sequence}")
        return RunResult(True, "Evidence analysed.", self.current_index)

    def close(self) -> RunResult:
        if self.closed:
            return RunResult(False, "Session already closed.")
        self.interception.cancel()
        self.closed = True
        return RunResult(True, f"Run of {self.case.case_id} closed at step {self.current_step.sequence}.")

    # ─── State ───

    def get_status(self) -> dict[str, Any]:
        step = self.current_step
        allowed: list[str] = []
        if not self.closed:
            if self.interception.is_open:
                allowed = ["confirm_failure", "cancel_failure"]
            elif not self.finished:
                allowed = ["pass", "fail", "block", "next", "prev", "edit", "evidence", "close"]
            else:
                allowed = ["edit", "evidence", "close"]

        position = f"{self.current_index + 1}/{len(self.case.steps)}"
        progress = calculate_progress(self.case.steps)
        summary_parts = [f"{self.case.case_id} > step {position}", f"{self.case.case_status}", f"{progress}%"]
        if self.interception.is_open:
            summary_parts.append(f"waiting for {self.interception.pending.mode} note")
        if self.finished:
            summary_parts.append("finished")

        return {
            "case_id": self.case.case_id,
            "title": self.case.title,
            "current_index": self.current_index,
            "position": position,
            "step": {
                "step_id": step.step_id,
                "sequence": step.sequence,
                "description": step.description,
                "expected_result": step.expected_result,
                "test_data": step.test_data,
                "status": str(step.status),
                "notes": step.notes,
                "has_evidence": bool(step.evidence),
            },
            "case_status": str(self.case.case_status),
            "progress": progress,
            "finished": self.finished,
            "celebrate": self.celebrate,
            "closed": self.closed,
            "pending_interception": self.interception.pending.to_dict() if self.interception.pending else None,
            "allowed_actions": allowed,
            "summary": ", ".join(summary_parts),
        }

    def snapshot(self) -> RunState:
        pending = self.interception.pending
        return RunState(
            case_id=self.case.case_id,
            current_index=self.current_index,
            finished=self.finished,
            pending=pending.to_dict() if pending else None,
        )

    # ─── Private ───

    def _check_input(self) -> RunResult | None:
        if self.closed:
            return RunResult(False, "Session is closed.")
        if self.interception.is_open:
            return RunResult(
                False,
                f"Failure dialog is open for step {self.current_step.sequence}. Confirm or cancel it first.",
                self.current_index,
            )
        if self.finished:
            return RunResult(False, "Run is finished. Close the session or edit notes.", self.current_index)
        return None

    def _apply(self, step_id: str, status: StepStatus, note: str | None, evidence: str | None) -> RunResult:
        self.case = apply_step_status(self.case, step_id, status, note=note, evidence=evidence, actor=self.actor)
        index = next(i for i, s in enumerate(self.steps) if s.step_id == step_id)
        sequence = self.steps[index].sequence
        self._commit(Action.STATUS_CHANGE, f"Step {sequence} updated to {status}")

        last = index == len(self.case.steps) - 1
        if status == StepStatus.FAILED:
            # Failed keeps the step on screen for inspection
            if last:
                self._finish()
        elif last:
            self._finish()
        else:
            self.current_index = index + 1

        message = f"Step {sequence} marked {status}. Case is {self.case.case_status}."
        if self.finished:
            message += " Run complete."
            if self.celebrate:
                message += " All steps passed!"
        return RunResult(True, message, self.current_index)

    def _finish(self) -> None:
        self.finished = True
        self.celebrate = self.case.case_status == CaseStatus.PASSED

    def _commit(self, action: Action, details: str) -> None:
        if self.commit:
            self.commit(self.case, action, details)

    def _restore(self, state: RunState) -> None:
        if state.case_id != self.case.case_id:
            raise RunnerError(f"Saved run belongs to {state.case_id}, not {self.case.case_id}")
        self.current_index = min(max(state.current_index, 0), len(self.case.steps) - 1)
        self.finished = state.finished
        if self.finished:
            self.celebrate = self.case.case_status == CaseStatus.PASSED
        if state.pending and self.case.step(state.pending["step_id"]):
            self.interception.open(state.pending["step_id"], state.pending["mode"])
