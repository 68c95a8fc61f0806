"""Failure/block interception: the gate in front of every Failed or Blocked mark.

The dialog is opened for one step in one mode, collects a mandatory note and
an optional evidence image, and only hands back an Outcome on confirm. Nothing
is written to the case until the caller replays that Outcome. Both the runner
and the case detail surface drive this same class.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from testmo.errors import ValidationError
from testmo.types import INTERCEPTED, StepStatus


def requires_interception(status: StepStatus | str) -> bool:
    return StepStatus(status) in INTERCEPTED


@dataclass
class PendingInterception:
    step_id: str
    mode: StepStatus  # Failed | Blocked

    def to_dict(self) -> dict[str, Any]:
        return {"step_id": self.step_id, "mode": str(self.mode)}


@dataclass
class Outcome:
    step_id: str
    status: StepStatus
    note: str
    evidence: str | None = None


class FailureInterception:
    def __init__(self) -> None:
        self.pending: PendingInterception | None = None
        self.note = ""
        self.evidence: str | None = None

    @property
    def is_open(self) -> bool:
        return self.pending is not None

    @property
    def can_confirm(self) -> bool:
        return self.is_open and bool(self.note.strip())

    def open(self, step_id: str, mode: StepStatus | str) -> PendingInterception:
        mode = StepStatus(mode)
        if mode not in INTERCEPTED:
            raise ValidationError(f"{mode} does not need a failure note")
        if self.pending is not None:
            raise ValidationError(
                f'Failure dialog already open for step "{self.pending.step_id}" ({self.pending.mode})'
            )
        self.pending = PendingInterception(step_id, mode)
        self.note = ""
        self.evidence = None
        return self.pending

    def set_note(self, note: str) -> None:
        self._require_open()
        self.note = note

    def attach_evidence(self, evidence: str) -> None:
        self._require_open()
        self.evidence = evidence or None

    def remove_evidence(self) -> None:
        self._require_open()
        self.evidence = None

    def confirm(self, note: str | None = None, evidence: str | None = None) -> Outcome:
        """Close the dialog and return the deferred transition to replay."""
        pending = self._require_open()
        if note is not None:
            self.note = note
        if evidence is not None:
            self.evidence = evidence or None
        if not self.note.strip():
            raise ValidationError("Describe what went wrong before confirming")
        outcome = Outcome(pending.step_id, pending.mode, self.note.strip(), self.evidence)
        self._clear()
        return outcome

    def cancel(self) -> None:
        self._clear()

    def _require_open(self) -> PendingInterception:
        if self.pending is None:
            raise ValidationError("No failure dialog is open")
        return self.pending

    def _clear(self) -> None:
        self.pending = None
        self.note = ""
        self.evidence = None
