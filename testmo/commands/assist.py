"""AI-assisted commands: generate, refine, variants, import, analyze, defect."""
from __future__ import annotations

import json
import mimetypes
import sys
from pathlib import Path

from testmo.commands import case_detail, case_line, fail, open_workspace
from testmo.commands.run import load_evidence
from testmo.errors import AIError, MalformedResponseError, TransientAIError, ValidationError
from testmo.types import MediaInput


def _ai_failure(e: AIError) -> None:
    if isinstance(e, TransientAIError):
        fail(f"The AI service is busy or rate limited. Try again in a minute. ({e})")
    if isinstance(e, MalformedResponseError):
        fail(f"The AI answer could not be used: {e}")
    fail(str(e))


def cmd_generate(cwd: str, context: str, priority: str = "Medium", role: str = "Case Manager",
                 attach: str | None = None):
    media = None
    if attach:
        mime = mimetypes.guess_type(attach)[0] or "image/png"
        try:
            media = MediaInput(mime_type=mime, data=load_evidence(attach))
        except ValidationError as e:
            fail(str(e))
    with open_workspace(cwd) as ws:
        try:
            case = ws.generate(context, role=role, priority=priority, media=media)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
        print(f"✓ Generated {case.case_id}")
        print(case_detail(case))


def cmd_refine(cwd: str, case_id: str):
    with open_workspace(cwd) as ws:
        try:
            case = ws.refine(case_id)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
        print(f"✓ Refined {case.case_id}")
        print(case_detail(case))


def cmd_variants(cwd: str, case_id: str):
    with open_workspace(cwd) as ws:
        try:
            variants = ws.generate_variants(case_id)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
        print(f"✓ {len(variants)} draft variant(s) of {case_id}")
        for case in variants:
            print(case_line(case))


def cmd_import(cwd: str, path: str):
    file = Path(path)
    if not file.is_file():
        fail(f"File not found: {path}")
    text = file.read_text(encoding="utf-8-sig")
    with open_workspace(cwd) as ws:
        try:
            cases = ws.import_cases(text)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
        print(f"✓ Imported {len(cases)} case(s)")
        for case in cases:
            print(case_line(case))


def cmd_analyze(cwd: str, case_id: str, step_id: str):
    with open_workspace(cwd) as ws:
        try:
            analysis = ws.analyze_evidence(case_id, step_id)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
    if analysis is None:
        print("Evidence changed during analysis; result discarded.", file=sys.stderr)
        return
    verdict = "✓ Matches expectation" if analysis.is_match else "✗ Does not match expectation"
    print(f"{verdict} ({analysis.confidence}% confidence)")
    print(analysis.reasoning)
    for issue in analysis.detected_issues:
        print(f"  - {issue}")


def cmd_defect(cwd: str, case_id: str, step_id: str, as_json: bool = False):
    with open_workspace(cwd) as ws:
        try:
            report = ws.generate_defect_report(case_id, step_id)
        except ValidationError as e:
            fail(str(e))
        except AIError as e:
            _ai_failure(e)
    if as_json:
        print(json.dumps(report.__dict__, indent=2, ensure_ascii=False))
        return
    print(f"[{report.severity}] {report.title}")
    print()
    print(report.description)
    print()
    print("Steps to reproduce:")
    print(report.steps_to_reproduce)
    print()
    print(report.expected_vs_actual)
