"""Shared fixtures for testmo scenario tests."""
from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any

import pytest

from testmo.config import Config
from testmo.engine.status import derive_case_status
from testmo.store.state import StateManager
from testmo.types import NegativeFlow, Priority, StepStatus, TestCase, TestStep
from testmo.workspace import Workspace


# ─── Builders ───

def make_step(seq: int, status: StepStatus | str = StepStatus.NOT_STARTED, **kwargs: Any) -> TestStep:
    return TestStep(
        step_id=kwargs.pop("step_id", f"S{seq}"),
        sequence=seq,
        description=kwargs.pop("description", f"Do thing {seq}"),
        expected_result=kwargs.pop("expected_result", f"Thing {seq} happens"),
        status=StepStatus(status),
        **kwargs,
    )


def make_case(case_id: str = "TC-1", statuses: list[str] | None = None, **kwargs: Any) -> TestCase:
    if statuses is None:
        statuses = [StepStatus.NOT_STARTED] * 3
    steps = kwargs.pop("steps", None) or [make_step(i, s) for i, s in enumerate(statuses, 1)]
    return TestCase(
        case_id=case_id,
        title=kwargs.pop("title", f"Case {case_id}"),
        summary=kwargs.pop("summary", "Checks a thing"),
        priority=kwargs.pop("priority", Priority.MEDIUM),
        steps=steps,
        case_status=kwargs.pop("case_status", None) or derive_case_status(steps),
        last_updated=kwargs.pop("last_updated", "2024-01-01T00:00:00.000Z"),
        created_by=kwargs.pop("created_by", "tester"),
        **kwargs,
    )


def make_flow(flow_id: str = "NF1", n_steps: int = 2) -> NegativeFlow:
    return NegativeFlow(
        flow_id=flow_id,
        description="Invalid credentials are rejected with a clear message",
        steps=[make_step(i, description=f"Negative {i}") for i in range(1, n_steps + 1)],
    )


def case_payload(case_id: str = "AI-1", n_steps: int = 2, **overrides: Any) -> dict[str, Any]:
    """A model answer for one case, as the schema asks for it."""
    data = {
        "case_id": case_id,
        "title": f"{case_id}: Log in with valid credentials",
        "summary": "User logs in",
        "priority": "High",
        "preconditions": ["User exists"],
        "estimated_effort": "S",
        "tags": ["Login"],
        "steps": [
            {
                "step_id": f"S{i}",
                "sequence": i,
                "description": f"Step {i}",
                "expected_result": f"Result {i}",
                "estimated_duration_min": 1,
                "priority": "Medium",
                "status": "Passed",
            }
            for i in range(1, n_steps + 1)
        ],
    }
    data.update(overrides)
    return data


# ─── Fake AI provider ───

class FakeProvider:
    """Answers from a queue. Queue items are JSON-able payloads, raw strings, or exceptions to raise."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def generate(self, prompt, *, system, schema, temperature, media=None) -> str:
        self.calls.append({"prompt": prompt, "system": system, "schema": schema,
                           "temperature": temperature, "media": media})
        if not self.responses:
            raise AssertionError("FakeProvider ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return item
        return json.dumps(item)


# ─── Harness ───

class WorkspaceHarness:
    """A throwaway .testmo workspace with a fake AI provider and no real sleeping.

    ``reopen`` closes the workspace and opens a fresh one on the same
    state.db, the way a second CLI invocation would.
    """

    def __init__(self, **config_overrides: Any):
        self.tmp = Path(tempfile.mkdtemp())
        self.config = Config(root=self.tmp)
        self.config.ai.jitter = 0.0
        for key, value in config_overrides.items():
            setattr(self.config, key, value)
        self.config.workspace_dir.mkdir(parents=True)
        self.provider = FakeProvider()
        self.sleeps: list[float] = []
        self.ws = self._open()

    def _open(self) -> Workspace:
        store = StateManager(self.config.db_path, max_bytes=self.config.store_max_bytes)
        return Workspace(self.config, store, provider=self.provider, sleep=self.sleeps.append)

    def reopen(self) -> Workspace:
        self.ws.close()
        self.ws = self._open()
        return self.ws

    def add(self, *cases: TestCase) -> None:
        self.ws.save_cases(list(cases))

    def case(self, case_id: str) -> TestCase:
        return self.ws.get_case(case_id)

    def statuses(self, case_id: str) -> list[str]:
        return [str(s.status) for s in sorted(self.case(case_id).steps, key=lambda s: s.sequence)]

    def login(self, username: str = "admin") -> None:
        assert self.ws.login(username, self.config.auth_password) is not None

    def close(self) -> None:
        self.ws.close()
        shutil.rmtree(self.tmp, ignore_errors=True)


@pytest.fixture
def harness_factory():
    """Factory fixture that creates WorkspaceHarness instances and cleans up after test."""
    created: list[WorkspaceHarness] = []

    def _make(**kwargs) -> WorkspaceHarness:
        h = WorkspaceHarness(**kwargs)
        created.append(h)
        return h

    yield _make

    for h in created:
        h.close()


@pytest.fixture
def h(harness_factory) -> WorkspaceHarness:
    return harness_factory()
