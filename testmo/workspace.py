"""Workspace: one open .testmo directory and every action a user can take on it.

Wires config, store, activity log, case collection, session context and the
AI assistant together. Every mutation goes through the collection, so each
one is persisted and logged exactly once.
"""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from testmo.ai.assistant import TestAssistant
from testmo.ai.provider import GeminiProvider
from testmo.config import Config, load_config
from testmo.engine.cases import (
    activate_case,
    assign_case,
    draft_backlog,
    duplicate_case,
    mark_draft,
    promote_negative_flow,
    reset_case,
)
from testmo.engine.interception import FailureInterception, requires_interception
from testmo.engine.runner import ExecutionSession, RunResult, RunState
from testmo.engine.stats import dashboard_stats
from testmo.engine.steps import (
    apply_step_status,
    attach_evidence,
    remove_evidence,
    set_evidence_analysis,
    update_step_fields,
)
from testmo.errors import RunnerError, ValidationError
from testmo.export.csv_export import export_external, export_standard, write_export
from testmo.session import AppContext
from testmo.store.activity import ActivityLog
from testmo.store.collection import CaseCollection
from testmo.store.state import StateManager
from testmo.types import Action, ProjectSettings, StepStatus, User
from testmo.utils import now_iso

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from testmo.ai.provider import Provider
    from testmo.types import ActivityEntry, DefectReport, EvidenceAnalysis, MediaInput, TestCase

logger = logging.getLogger(__name__)

ADMIN_USERNAME = "admin"
BULK_FIELDS = frozenset({"priority", "assigned_to", "type", "tags", "estimated_effort"})
EXPORT_PREFIXES = {"standard": "testmo_export", "external": "zephyr_import"}


class Workspace:
    def __init__(
        self,
        config: Config,
        store: StateManager | None = None,
        *,
        provider: Provider | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        if store is None:
            config.workspace_dir.mkdir(parents=True, exist_ok=True)
            store = StateManager(config.db_path, max_bytes=config.store_max_bytes)
        self.store = store
        self.activity = ActivityLog.load(store, config.activity_limit)
        self.collection = CaseCollection.load(store, self.activity)
        self.context = AppContext.load(store)
        self.interception = FailureInterception()
        self._interception_case: str | None = None
        self._provider = provider
        self._sleep = sleep
        self._assistant: TestAssistant | None = None

    @classmethod
    def open(cls, root: Path | None = None, **kwargs: Any) -> Workspace:
        return cls(load_config(root), **kwargs)

    def close(self) -> None:
        self.store.close()

    # ─── Reads ───

    @property
    def cases(self) -> list[TestCase]:
        return self.collection.cases

    @property
    def actor(self) -> str:
        return self.context.actor

    @property
    def settings(self) -> ProjectSettings | None:
        return self.store.load_settings()

    def get_case(self, case_id: str) -> TestCase:
        case = self.collection.get(case_id)
        if case is None:
            raise ValidationError(f"Case {case_id} not found")
        return case

    def _get_cases(self, case_ids: Iterable[str] | None) -> list[TestCase]:
        if case_ids is None:
            return self.cases
        return [self.get_case(case_id) for case_id in case_ids]

    def stats(self) -> dict[str, Any]:
        return dashboard_stats(self.cases)

    def activity_entries(self, limit: int | None = None) -> list[ActivityEntry]:
        return self.activity.entries(limit)

    # ─── Users, session & settings ───

    def users(self) -> list[User]:
        return self.store.load_users()

    def save_user(self, user: User) -> User:
        if not user.username.strip() or not user.name.strip():
            raise ValidationError("Username and name are required")
        users = [u for u in self.users() if u.username.lower() != user.username.lower()]
        self.store.save_users([*users, user])
        return user

    def delete_user(self, username: str) -> None:
        if username.lower() == ADMIN_USERNAME:
            raise ValidationError("The admin user cannot be deleted")
        users = self.users()
        kept = [u for u in users if u.username.lower() != username.lower()]
        if len(kept) == len(users):
            raise ValidationError(f"User {username} not found")
        self.store.save_users(kept)

    def login(self, username: str, password: str) -> User | None:
        user = next((u for u in self.users() if u.username.lower() == username.strip().lower()), None)
        if user is None or password != self.config.auth_password:
            logger.info("Rejected login for %r", username)
            return None
        self.context.set_user(user)
        self.activity.record(user.name, Action.LOGIN, "System", "User logged in")
        return user

    def logout(self) -> None:
        self.context.set_user(None)

    def toggle_theme(self) -> str:
        return self.context.toggle_theme()

    def save_settings(self, settings: ProjectSettings) -> bool:
        self._assistant = None
        return self.store.save_settings(settings)

    # ─── Case collection ───

    def save_cases(self, cases: list[TestCase], *, action: Action = Action.CREATE, label: str | None = None,
                   details: str | None = None) -> list[TestCase]:
        return self.collection.upsert_many(cases, actor=self.actor, action=action, label=label, details=details)

    def update_case(self, case: TestCase, details: str | None = None) -> TestCase:
        self.get_case(case.case_id)
        self.collection.patch_many([case], actor=self.actor, details=details)
        return self.get_case(case.case_id)

    def bulk_update(self, case_ids: Iterable[str], **fields: Any) -> list[TestCase]:
        unknown = set(fields) - BULK_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be bulk edited: {', '.join(sorted(unknown))}")
        patched = [replace(c, **fields, last_updated=now_iso()) for c in self._get_cases(case_ids)]
        self.collection.patch_many(patched, actor=self.actor, details=", ".join(sorted(fields)) or None)
        return patched

    def delete_case(self, case_id: str) -> None:
        self.delete_cases([case_id])

    def delete_cases(self, case_ids: Iterable[str]) -> int:
        doomed = set(case_ids)
        present = doomed & self.collection.ids()
        if not present:
            return 0
        self.collection.remove_many(present, actor=self.actor)
        if self.context.selected_case_id in present:
            self.context.select(None)
        run = self.store.load_run_state()
        if run and run.get("case_id") in present:
            self.store.clear_run_state()
        return len(present)

    def select(self, case_id: str | None) -> None:
        if case_id is not None:
            self.get_case(case_id)
        self.context.select(case_id)

    def duplicate(self, case_id: str) -> TestCase:
        copy = duplicate_case(self.get_case(case_id), self.collection.ids())
        self.collection.upsert_many([copy], actor=self.actor, details=f"Duplicated from {case_id}")
        return copy

    def reset(self, case_ids: Iterable[str]) -> list[TestCase]:
        fresh = [reset_case(c) for c in self._get_cases(case_ids)]
        self.collection.patch_many(fresh, actor=self.actor, details="Reset for regression")
        return fresh

    def assign(self, case_ids: Iterable[str], username: str | None) -> list[TestCase]:
        if username and not any(u.username == username for u in self.users()):
            raise ValidationError(f"User {username} not found")
        assigned = [assign_case(c, username) for c in self._get_cases(case_ids)]
        self.collection.patch_many(assigned, actor=self.actor,
                                   details=f"Assigned to {username}" if username else "Unassigned")
        return assigned

    def activate(self, case_ids: Iterable[str]) -> list[TestCase]:
        drafts = [c for c in self._get_cases(case_ids) if c.is_draft]
        if not drafts:
            return []
        active = [activate_case(c) for c in drafts]
        self.collection.patch_many(active, actor=self.actor, details="Draft activated")
        return active

    def draft(self, case_ids: Iterable[str]) -> list[TestCase]:
        """Park active cases as drafts; cases already drafted are skipped."""
        active = [c for c in self._get_cases(case_ids) if not c.is_draft]
        if not active:
            return []
        drafts = [mark_draft(c) for c in active]
        self.collection.patch_many(drafts, actor=self.actor, details="Moved to drafts")
        return drafts

    # ─── Steps (case detail surface) ───

    def _executor(self) -> str | None:
        return self.context.user.username if self.context.user else None

    def set_step_status(self, case_id: str, step_id: str, status: StepStatus | str,
                        note: str | None = None, evidence: str | None = None) -> RunResult:
        """Change one step from the detail view.

        Failed/Blocked without a note opens the same interception dialog the
        runner uses; nothing changes until ``confirm_step_failure``.
        """
        case = self.get_case(case_id)
        if self.interception.is_open:
            return RunResult(False, "A failure dialog is already open. Confirm or cancel it first.")
        status = StepStatus(status)
        if requires_interception(status) and not (note and note.strip()):
            if case.step(step_id) is None:
                raise ValidationError(f'Step "{step_id}" not found in case {case_id}')
            self.interception.open(step_id, status)
            self._interception_case = case_id
            return RunResult(True, f"Describe what happened before marking the step {status}.", pending=True)
        return self._apply_status(case, step_id, status, note, evidence)

    def confirm_step_failure(self, note: str | None = None, evidence: str | None = None) -> RunResult:
        if not self.interception.is_open:
            return RunResult(False, "No failure dialog is open.")
        outcome = self.interception.confirm(note, evidence)
        case = self.get_case(self._interception_case)
        return self._apply_status(case, outcome.step_id, outcome.status, outcome.note, outcome.evidence)

    def cancel_step_failure(self) -> RunResult:
        if not self.interception.is_open:
            return RunResult(False, "No failure dialog is open.")
        self.interception.cancel()
        return RunResult(True, "Cancelled. Step status unchanged.")

    def _apply_status(self, case: TestCase, step_id: str, status: StepStatus, note: str | None,
                      evidence: str | None) -> RunResult:
        updated = apply_step_status(case, step_id, status, note=note, evidence=evidence, actor=self._executor())
        sequence = updated.step(step_id).sequence
        self.collection.patch_many([updated], actor=self.actor, action=Action.STATUS_CHANGE,
                                   details=f"Step {sequence} updated to {status}")
        return RunResult(True, f"Step {sequence} marked {status}. Case is {updated.case_status}.")

    def edit_step(self, case_id: str, step_id: str, **fields: Any) -> TestCase:
        updated = update_step_fields(self.get_case(case_id), step_id, **fields)
        self.collection.patch_many([updated], actor=self.actor, details=f"Step {step_id} edited")
        return updated

    def attach_evidence(self, case_id: str, step_id: str, evidence: str) -> TestCase:
        updated = attach_evidence(self.get_case(case_id), step_id, evidence)
        self.collection.patch_many([updated], actor=self.actor, details=f"Evidence attached to {step_id}")
        return updated

    def remove_evidence(self, case_id: str, step_id: str) -> TestCase:
        updated = remove_evidence(self.get_case(case_id), step_id)
        self.collection.patch_many([updated], actor=self.actor, details=f"Evidence removed from {step_id}")
        return updated

    # ─── Runs ───

    def _run_commit(self, case: TestCase, action: Action, details: str) -> None:
        self.collection.patch_many([case], actor=self.actor, action=action, label=case.case_id, details=details)

    def start_run(self, case_id: str) -> ExecutionSession:
        session = ExecutionSession(self.get_case(case_id), commit=self._run_commit, actor=self._executor())
        self.context.select(case_id)
        self.save_run(session)
        return session

    def resume_run(self) -> ExecutionSession | None:
        """Rebuild the persisted run, or None when there is none or its case is gone."""
        data = self.store.load_run_state()
        if not data:
            return None
        state = RunState.from_dict(data)
        case = self.collection.get(state.case_id)
        if case is None:
            self.store.clear_run_state()
            return None
        try:
            return ExecutionSession(case, commit=self._run_commit, actor=self._executor(), state=state)
        except RunnerError as e:
            logger.warning("Dropping saved run: %s", e)
            self.store.clear_run_state()
            return None

    def save_run(self, session: ExecutionSession) -> None:
        if session.closed:
            self.store.clear_run_state()
        else:
            self.store.save_run_state(session.snapshot().to_dict())

    def stop_run(self, session: ExecutionSession | None = None) -> RunResult:
        session = session or self.resume_run()
        if session is None:
            return RunResult(False, "No run in progress.")
        result = session.close()
        self.store.clear_run_state()
        return result

    # ─── Export ───

    def export_standard(self, case_ids: Iterable[str] | None = None) -> str:
        return export_standard(self._get_cases(case_ids))

    def export_external(self, case_ids: Iterable[str] | None = None) -> str:
        return export_external(self._get_cases(case_ids))

    def write_export(self, kind: str, directory: Path, case_ids: Iterable[str] | None = None) -> Path:
        if kind not in EXPORT_PREFIXES:
            raise ValidationError(f"Unknown export format {kind!r}. Use standard or external.")
        content = self.export_standard(case_ids) if kind == "standard" else self.export_external(case_ids)
        return write_export(content, directory, EXPORT_PREFIXES[kind])

    # ─── AI ───

    @property
    def assistant(self) -> TestAssistant:
        if self._assistant is None:
            provider = self._provider or GeminiProvider(self.config.ai.model, api_key_env=self.config.ai.api_key_env)
            self._assistant = TestAssistant(provider, self.config.ai, self.settings, sleep=self._sleep)
        return self._assistant

    def generate(self, context: str, *, role: str = "Case Manager", priority: str = "Medium",
                 media: MediaInput | None = None, save: bool = True) -> TestCase:
        case = self.assistant.generate(context, role=role, priority=priority, media=media,
                                       existing_ids=self.collection.ids())
        if save:
            self.collection.upsert_many([case], actor=self.actor, details="Generated by AI")
        return case

    def refine(self, case_id: str) -> TestCase:
        refined = self.assistant.refine(self.get_case(case_id))
        self.collection.patch_many([refined], actor=self.actor, details="Refined by AI")
        return refined

    def generate_variants(self, case_id: str) -> list[TestCase]:
        variants = self.assistant.generate_variants(self.get_case(case_id), existing_ids=self.collection.ids())
        if variants:
            self.collection.upsert_many(variants, actor=self.actor, details=f"Variants of {case_id}")
        return variants

    def import_cases(self, text: str) -> list[TestCase]:
        cases = self.assistant.parse_import(text)
        self.collection.upsert_many(cases, actor=self.actor, action=Action.IMPORT,
                                    label=f"{len(cases)} Cases", details="CSV import")
        return cases

    def analyze_evidence(self, case_id: str, step_id: str) -> EvidenceAnalysis | None:
        """Run the AI check on a step's evidence and store it.

        Returns None when the evidence was replaced or removed while the call
        was in flight; the stale result is discarded.
        """
        step = self.get_case(case_id).step(step_id)
        if step is None:
            raise ValidationError(f'Step "{step_id}" not found in case {case_id}')
        analysis = self.assistant.analyze_evidence(step)
        current = self.get_case(case_id)
        if current.step(step_id) is None or current.step(step_id).evidence != step.evidence:
            logger.info("Evidence on %s/%s changed during analysis; result discarded", case_id, step_id)
            return None
        updated = set_evidence_analysis(current, step_id, analysis)
        self.collection.patch_many([updated], actor=self.actor, details=f"Evidence analysed for {step_id}")
        return analysis

    def generate_defect_report(self, case_id: str, step_id: str) -> DefectReport:
        case = self.get_case(case_id)
        step = case.step(step_id)
        if step is None:
            raise ValidationError(f'Step "{step_id}" not found in case {case_id}')
        return self.assistant.generate_defect_report(case, step)

    def promote_flow(self, case_id: str, flow_id: str) -> TestCase:
        case = self.get_case(case_id)
        promoted = promote_negative_flow(case, flow_id, self.collection.ids())
        self.collection.upsert_many([promoted], actor=self.actor, details=f"Promoted flow {flow_id} of {case_id}")
        return promoted

    def save_draft_backlog(self, case: TestCase) -> list[TestCase]:
        drafts = draft_backlog(case, self.collection.ids())
        self.collection.upsert_many(drafts, actor=self.actor, label=f"{len(drafts)} Cases",
                                    details="Saved to backlog as drafts")
        return drafts
