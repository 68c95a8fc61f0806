"""Prompt builders for the test assistant."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from testmo.types import MediaInput, ProjectSettings, TestCase, TestStep

SYSTEM_QA = (
    "You are a senior QA engineer writing manual test cases for business users. "
    "Steps are imperative, concrete and carry realistic test data. "
    "Fill the 'meta' object with classification dimensions (e.g. CHANNEL, WEBSITE, ENTITY_TYPE) "
    "when the context implies them. Answer with JSON only."
)
SYSTEM_IMPORT = (
    "You are a data processing assistant. Convert CSV rows into the test case JSON format "
    "with meta data and readable titles."
)
SYSTEM_DEFECT = "You are a QA lead. Write precise, reproducible bug reports."
SYSTEM_VISUAL = "You are a visual QA assistant."


def project_context(settings: ProjectSettings | None) -> str:
    if settings is None or not settings.project_name:
        return ""
    return (
        "PROJECT CONTEXT:\n"
        f"Project: {settings.project_name}\n"
        f"Description: {settings.description}\n"
        f"Systems: {settings.systems}\n"
        f"URLs: {settings.urls}\n"
        f"Release: {settings.release_version}\n"
    )


def generate_prompt(context: str, role: str, priority: str, media: MediaInput | None,
                    settings: ProjectSettings | None) -> str:
    systems = settings.systems if settings and settings.systems else "standard"
    text = f"""Create one test case.
{project_context(settings)}
Context / instruction: {context}
User role: {role}
Requested priority: {priority}

Use realistic values in 'test_data' for every step, matching the systems in use ({systems}).
If the input is a feature request, extract its acceptance criteria.
Title format: "<ID>: <plain sentence>". No snake_case.
"""
    if media is not None:
        if media.mime_type == "application/pdf":
            text += "\nA process document (PDF) is attached. Analyse the process flow."
        else:
            text += "\nA screenshot of the UI is attached. Analyse the image."
    return text


def _case_digest(case: TestCase, *, full_steps: bool) -> str:
    steps = (
        [{"desc": s.description, "expected": s.expected_result, "data": s.test_data} for s in case.steps]
        if full_steps else [s.description for s in case.steps]
    )
    return json.dumps({"title": case.title, "summary": case.summary, "steps": steps, "meta": case.meta},
                      ensure_ascii=False)


def refine_prompt(case: TestCase, settings: ProjectSettings | None) -> str:
    return f"""Improve the following test case.
Input test case: {_case_digest(case, full_steps=True)}
{project_context(settings)}
TASKS:
1. Rewrite the title so a business user understands it at once. Format "<ID>: <sentence>".
2. Phrase every step in the imperative ("Click", "Select").
3. Replace missing or generic test data with realistic values.
4. Keep between 5 and 12 steps, splitting or merging where needed.
5. Complete or correct the 'meta' object.
6. Add negative flows for the scenario if there are none yet.
"""


def variants_prompt(case: TestCase, settings: ProjectSettings | None) -> str:
    return f"""Analyse this happy-path test case and its meta data.
Generate 3 to 5 NEW test cases covering negative scenarios, edge cases or error paths.

Input case: {_case_digest(case, full_steps=False)}
{project_context(settings)}
RULES:
1. Title: "<ID>: <readable title for the negative variant>".
2. Vary the meta data where it makes sense (another CHANNEL or WEBSITE).
3. Think of timeouts, validation errors and permissions.
"""


def import_prompt(batch: str) -> str:
    return f"""You receive CSV rows. Convert them into validated JSON test cases.
The first row is the header and may contain taxonomy columns such as CHANNEL or ENTITY_TYPE.

Rules:
1. Improvise sensibly from the title when fields are missing.
2. Map taxonomy columns onto the 'meta' object.
3. Add every meta value as a tag as well (e.g. "Channel:Web").
4. Rewrite technical titles such as "Functional_Test_01" into a readable sentence.

CSV content:
{batch}
"""


def defect_prompt(case: TestCase, step: TestStep) -> str:
    return f"""A test step failed. Write a bug report for the issue tracker.
Test case: {case.title}
Failed step: {step.description}
Expected: {step.expected_result}
Notes: {step.notes or "N/A"}
Environment info (meta): {json.dumps(case.meta or {}, ensure_ascii=False)}
"""


def evidence_prompt(expected_result: str, settings: ProjectSettings | None) -> str:
    where = f" in the system context {settings.systems} ({settings.urls})" if settings and settings.systems else ""
    return f"""Compare this screenshot with the expected result{where}.
Expected result: "{expected_result}"

Check for:
1. Agreement with the expectation.
2. Error messages.
3. Branding defects.
"""
