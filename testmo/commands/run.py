"""testmo run: guided execution, interactively or one action per call.

One-shot actions resume the persisted run, apply a single transition and
save the run again, so a session can be driven across invocations.
"""
from __future__ import annotations

import base64
import mimetypes
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from testmo.commands import fail, open_workspace
from testmo.errors import RunnerError, ValidationError
from testmo.types import StepStatus

if TYPE_CHECKING:
    from testmo.engine.runner import ExecutionSession, RunResult

RUN_ACTIONS = ("start", "status", "pass", "fail", "block", "confirm", "cancel", "next", "prev", "evidence", "stop")

INTERACTIVE_HELP = "[p]ass  [f]ail  [b]lock  [n]ext  [prev]  [e]dit notes  [q]uit"


def load_evidence(path: str) -> str:
    """Read an image file into a data URL."""
    file = Path(path)
    if not file.is_file():
        raise ValidationError(f"Evidence file not found: {path}")
    mime = mimetypes.guess_type(file.name)[0] or "image/png"
    return f"data:{mime};base64," + base64.b64encode(file.read_bytes()).decode("ascii")


def render(session: ExecutionSession) -> str:
    st = session.get_status()
    step = st["step"]
    lines = [
        f"{st['case_id']}: {st['title']}",
        f"Step {st['position']}  [{step['status']}]  case {st['case_status']}, {st['progress']}% done",
        f"  Do:     {step['description']}",
        f"  Expect: {step['expected_result']}",
    ]
    if step["test_data"]:
        lines.append(f"  Data:   {step['test_data']}")
    if step["notes"]:
        lines.append(f"  Notes:  {step['notes']}")
    if st["pending_interception"]:
        lines.append(f"  Waiting for a {st['pending_interception']['mode']} note: testmo run confirm <note>")
    if st["finished"]:
        lines.append("  Run complete." + (" All steps passed!" if st["celebrate"] else ""))
    return "\n".join(lines)


def _report(result: RunResult) -> None:
    if result:
        print(f"✓ {result.message}")
    else:
        print(f"✗ {result.message}", file=sys.stderr)


def cmd_run_action(cwd: str, action: str, args: list[str]):
    with open_workspace(cwd) as ws:
        if action == "start":
            if not args:
                fail("Usage: testmo run start <case-id>")
            try:
                session = ws.start_run(args[0])
            except (RunnerError, ValidationError) as e:
                fail(str(e))
            print(render(session))
            return

        session = ws.resume_run()
        if session is None:
            fail("No run in progress. Start one: testmo run start <case-id>")

        try:
            if action == "status":
                print(render(session))
                return
            if action == "stop":
                _report(ws.stop_run(session))
                return
            if action in ("pass", "fail", "block"):
                status = {"pass": StepStatus.PASSED, "fail": StepStatus.FAILED, "block": StepStatus.BLOCKED}[action]
                result = session.mark_outcome(status, note=" ".join(args) or None)
            elif action == "confirm":
                evidence = None
                if "--evidence" in args:
                    i = args.index("--evidence")
                    evidence = load_evidence(args[i + 1]) if i + 1 < len(args) else None
                    args = args[:i] + args[i + 2:]
                result = session.confirm_failure(" ".join(args), evidence)
            elif action == "cancel":
                result = session.cancel_failure()
            elif action == "next":
                result = session.navigate(1)
            elif action == "prev":
                result = session.navigate(-1)
            else:  # evidence
                if not args:
                    fail("Usage: testmo run evidence <image-file>|--remove")
                if args[0] == "--remove":
                    result = session.remove_evidence()
                else:
                    result = session.attach_evidence(load_evidence(args[0]))
        except ValidationError as e:
            ws.save_run(session)
            fail(str(e))

        ws.save_run(session)
        _report(result)
        print()
        print(render(session))
        if not result:
            sys.exit(1)


def _ask_outcome(session: ExecutionSession, status: StepStatus) -> RunResult:
    result = session.mark_outcome(status)
    if not result.pending:
        return result
    note = input(f"What went wrong? ({status} note, empty to cancel): ").strip()
    if not note:
        return session.cancel_failure()
    path = input("Evidence image (optional path): ").strip()
    evidence = None
    if path:
        try:
            evidence = load_evidence(path)
        except ValidationError as e:
            print(f"✗ {e}", file=sys.stderr)
    return session.confirm_failure(note, evidence)


def cmd_run_interactive(cwd: str, case_id: str):
    with open_workspace(cwd) as ws:
        try:
            session = ws.start_run(case_id)
        except (RunnerError, ValidationError) as e:
            fail(str(e))

        while not session.closed:
            print()
            print(render(session))
            print(INTERACTIVE_HELP)
            try:
                key = input("> ").strip().lower()
            except EOFError:
                key = "q"
            if key in ("q", "quit"):
                _report(ws.stop_run(session))
                break
            if key in ("p", "pass"):
                result = session.mark_outcome(StepStatus.PASSED)
            elif key in ("f", "fail"):
                result = _ask_outcome(session, StepStatus.FAILED)
            elif key in ("b", "block"):
                result = _ask_outcome(session, StepStatus.BLOCKED)
            elif key in ("n", "next"):
                result = session.navigate(1)
            elif key == "prev":
                result = session.navigate(-1)
            elif key in ("e", "edit"):
                result = session.edit_field(notes=input("Notes: ").strip() or None)
            else:
                print(INTERACTIVE_HELP)
                continue
            _report(result)
            ws.save_run(session)
