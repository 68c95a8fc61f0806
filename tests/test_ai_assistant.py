"""AI assistant scenarios against a scripted provider.

Covers generation, refinement, variants, batched CSV import, evidence
analysis and defect reports, plus retry behaviour and the guard against
submitting the same operation twice.
"""
from __future__ import annotations

import json

import pytest

from conftest import FakeProvider, case_payload, make_case, make_step
from testmo.ai.assistant import IMPORT_AUTHOR, VARIANT_AUTHOR, VARIANT_TAG, TestAssistant
from testmo.config import AIConfig
from testmo.errors import (
    MalformedResponseError,
    OperationPendingError,
    TransientAIError,
    ValidationError,
)
from testmo.types import Action, CaseStatus, StepStatus

CSV_TEXT = """Title;Step;Expected
Login;Open page;Page shown
Login;Submit;Dashboard
Logout;Click logout;Login page
Search;Type query;Results
Search;Clear;Empty list
Profile;Open profile;Profile shown
Profile;Save;Saved
"""


def _assistant(*responses, **config):
    provider = FakeProvider(*responses)
    sleeps = []
    assistant = TestAssistant(provider, AIConfig(jitter=0.0, **config), sleep=sleeps.append)
    return assistant, provider, sleeps


# ═══════════════════════════════════════════════════════════
# Scenario 1: Generate
# ═══════════════════════════════════════════════════════════


def test_generate_saves_a_new_case(h):
    h.provider.queue(case_payload("AI-1"))
    case = h.ws.generate("Users log in with email and password", role="QA Lead", priority="High")
    assert h.ws.cases[0].case_id == case.case_id == "AI-1"
    assert case.created_by == "QA Lead"
    assert case.case_status == CaseStatus.NOT_STARTED
    assert all(s.status == StepStatus.NOT_STARTED for s in case.steps)

    call = h.provider.calls[0]
    assert "Users log in with email and password" in call["prompt"]
    assert call["temperature"] == 0.3
    assert h.ws.activity_entries(1)[0].details == "Generated by AI"


def test_generate_needs_context_or_media(h):
    with pytest.raises(ValidationError):
        h.ws.generate("   ")
    assert h.provider.calls == []


def test_generate_replaces_a_taken_id(h):
    h.add(make_case("AI-1"))
    h.provider.queue(case_payload("AI-1"))
    case = h.ws.generate("again")
    assert case.case_id != "AI-1"
    assert len(h.ws.cases) == 2


def test_rate_limit_is_retried_with_backoff(h):
    h.provider.queue(TransientAIError("429", status=429), TransientAIError("503", status=503), case_payload())
    h.ws.generate("Login")
    assert len(h.provider.calls) == 3
    assert h.sleeps == [4.0, 8.0]


def test_rate_limit_gives_up_after_max_attempts():
    assistant, provider, sleeps = _assistant(*[TransientAIError("429", status=429)] * 3, max_attempts=3)
    with pytest.raises(TransientAIError):
        assistant.generate("Login")
    assert len(provider.calls) == 3
    assert len(sleeps) == 2
    assert not assistant.is_pending("generate")


def test_malformed_answer_is_not_retried(h):
    h.provider.queue('{"title": "Login", "steps": [')
    with pytest.raises(MalformedResponseError):
        h.ws.generate("Login")
    assert len(h.provider.calls) == 1
    assert h.sleeps == []
    assert h.ws.cases == []


def test_fenced_answer_is_accepted(h):
    h.provider.queue("```json\n" + json.dumps(case_payload("AI-9")) + "\n```")
    assert h.ws.generate("Login").case_id == "AI-9"


def test_same_operation_cannot_run_twice():
    seen = []

    class Reentrant:
        def generate(self, prompt, **kwargs):
            with pytest.raises(OperationPendingError):
                assistant.generate("second click")
            seen.append(assistant.is_pending("generate"))
            return json.dumps(case_payload())

    assistant = TestAssistant(Reentrant(), AIConfig(jitter=0.0), sleep=lambda s: None)
    assistant.generate("first click")
    assert seen == [True]
    assert not assistant.is_pending("generate")


# ═══════════════════════════════════════════════════════════
# Scenario 2: Refine & variants
# ═══════════════════════════════════════════════════════════


def test_refine_keeps_identity_and_resets_steps(h):
    original = make_case("TC-3", statuses=["Passed", "Failed"], assigned_to="admin", created_by="alice")
    h.add(original)
    h.provider.queue(case_payload("SOMETHING-ELSE", n_steps=3, title="Sharper title"))

    refined = h.ws.refine("TC-3")
    assert refined.case_id == "TC-3"
    assert refined.title == "Sharper title"
    assert refined.created_by == "alice"
    assert refined.assigned_to == "admin"
    assert refined.case_status == CaseStatus.FAILED
    assert [str(s.status) for s in refined.steps] == ["NotStarted"] * 3
    assert len(h.ws.cases) == 1
    assert h.ws.activity_entries(1)[0].action == Action.UPDATE


def test_variants_become_drafts(h):
    h.add(make_case("TC-3"))
    h.provider.queue([case_payload("TC-3"), case_payload("V-2", tags=[VARIANT_TAG])])

    variants = h.ws.generate_variants("TC-3")
    assert len(variants) == 2
    ids = [v.case_id for v in variants]
    assert "TC-3" not in ids
    assert len(set(ids)) == 2
    for v in variants:
        assert v.is_draft
        assert v.display_status == CaseStatus.DRAFT
        assert v.created_by == VARIANT_AUTHOR
        assert v.tags.count(VARIANT_TAG) == 1
    assert [c.case_id for c in h.ws.cases] == [*ids, "TC-3"]
    assert h.provider.calls[0]["temperature"] == 0.6


def test_variants_need_a_list():
    assistant, _, _ = _assistant(case_payload())
    with pytest.raises(MalformedResponseError):
        assistant.generate_variants(make_case())


# ═══════════════════════════════════════════════════════════
# Scenario 3: Batched CSV import
# ═══════════════════════════════════════════════════════════


def test_import_in_batches_with_header_repeated(h):
    h.provider.queue(
        [case_payload("IMP-1"), case_payload("IMP-2")],
        [case_payload("IMP-3")],
        case_payload("IMP-3"),
    )
    cases = h.ws.import_cases(CSV_TEXT)

    assert len(h.provider.calls) == 3
    for call in h.provider.calls:
        assert "Title;Step;Expected" in call["prompt"]
    assert "Profile;Save;Saved" not in h.provider.calls[0]["prompt"]
    assert "Profile;Save;Saved" in h.provider.calls[2]["prompt"]
    # A pause between batches, none after the last
    assert h.sleeps == [2.0, 2.0]

    assert len(cases) == 4
    assert len({c.case_id for c in cases}) == 4
    assert all(c.created_by == IMPORT_AUTHOR for c in cases)

    entry = h.ws.activity_entries(1)[0]
    assert entry.action == Action.IMPORT
    assert entry.target == "4 Cases"


def test_import_needs_header_and_data():
    assistant, provider, _ = _assistant()
    with pytest.raises(ValidationError):
        assistant.parse_import("Title;Step\n\n")
    assert provider.calls == []


def test_import_with_no_cases_back():
    assistant, _, _ = _assistant([], import_batch_size=10)
    with pytest.raises(MalformedResponseError):
        assistant.parse_import(CSV_TEXT)


def test_import_batch_size_is_configurable():
    assistant, provider, sleeps = _assistant([case_payload()], [case_payload("B")], import_batch_size=4,
                                             batch_pause=0.5)
    assistant.parse_import(CSV_TEXT)
    assert len(provider.calls) == 2
    assert sleeps == [0.5]


# ═══════════════════════════════════════════════════════════
# Scenario 4: Evidence & defects
# ═══════════════════════════════════════════════════════════


def _case_with_evidence(evidence="data:image/jpeg;base64,AAAA"):
    return make_case("TC-E", steps=[make_step(1, "Failed", evidence=evidence, notes="error 500")])


def test_analyze_evidence_is_stored(h):
    h.add(_case_with_evidence())
    h.provider.queue({"is_match": False, "confidence": 85, "reasoning": "Error banner",
                      "detected_issues": ["HTTP 500"]})
    analysis = h.ws.analyze_evidence("TC-E", "S1")
    assert analysis.confidence == 85
    assert h.case("TC-E").step("S1").evidence_analysis == analysis

    call = h.provider.calls[0]
    assert call["media"].mime_type == "image/jpeg"
    assert call["temperature"] == 0.1


def test_analysis_of_replaced_evidence_is_discarded(h):
    h.add(_case_with_evidence())

    class Swapping(FakeProvider):
        def generate(self, prompt, **kwargs):
            h.ws.attach_evidence("TC-E", "S1", "data:image/png;base64,BBBB")
            return super().generate(prompt, **kwargs)

    h.ws._provider = Swapping({"is_match": True, "confidence": 90, "reasoning": "ok"})
    h.ws._assistant = None
    assert h.ws.analyze_evidence("TC-E", "S1") is None
    step = h.case("TC-E").step("S1")
    assert step.evidence == "data:image/png;base64,BBBB"
    assert step.evidence_analysis is None


def test_analysis_needs_evidence(h):
    h.add(make_case())
    with pytest.raises(ValidationError):
        h.ws.analyze_evidence("TC-1", "S1")


def test_defect_report(h):
    h.add(_case_with_evidence())
    h.provider.queue({
        "title": "Login returns 500",
        "description": "Submitting valid credentials shows an error page",
        "steps_to_reproduce": "1. Open login\n2. Submit",
        "expected_vs_actual": "Dashboard / HTTP 500",
        "severity": "Critical",
        "environment": "staging",
    })
    report = h.ws.generate_defect_report("TC-E", "S1")
    assert report.severity == "Critical"
    assert report.environment == "staging"
    assert "error 500" in h.provider.calls[0]["prompt"]
    assert h.provider.calls[0]["temperature"] == 0.4
