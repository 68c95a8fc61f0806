"""Case commands: list, show, lifecycle edits, step status, stats and activity."""
from __future__ import annotations

import json

from testmo.commands import case_detail, case_line, fail, open_workspace
from testmo.errors import ValidationError
from testmo.types import StepStatus


def cmd_list(cwd: str, status: str | None = None, tag: str | None = None):
    with open_workspace(cwd) as ws:
        cases = ws.cases
        if status:
            cases = [c for c in cases if str(c.display_status).lower() == status.lower()]
        if tag:
            cases = [c for c in cases if c.has_tag(tag)]
        if not cases:
            print("No test cases.")
            return
        for case in cases:
            print(case_line(case))
        print(f"\n{len(cases)} case(s)")


def cmd_show(cwd: str, case_id: str, as_json: bool = False):
    with open_workspace(cwd) as ws:
        try:
            case = ws.get_case(case_id)
        except ValidationError as e:
            fail(str(e))
        if as_json:
            print(json.dumps(case.to_dict(), indent=2, ensure_ascii=False))
        else:
            print(case_detail(case))


def cmd_lifecycle(cwd: str, action: str, case_ids: list[str]):
    """duplicate | reset | activate | draft | delete over one or more ids."""
    with open_workspace(cwd) as ws:
        try:
            if action == "duplicate":
                for case_id in case_ids:
                    copy = ws.duplicate(case_id)
                    print(f"✓ {case_id} duplicated as {copy.case_id}")
            elif action == "reset":
                ws.reset(case_ids)
                print(f"✓ Reset {len(case_ids)} case(s) for a regression run")
            elif action == "activate":
                active = ws.activate(case_ids)
                print(f"✓ Activated {len(active)} draft(s)")
            elif action == "draft":
                drafts = ws.draft(case_ids)
                print(f"✓ Moved {len(drafts)} case(s) to drafts")
            elif action == "delete":
                removed = ws.delete_cases(case_ids)
                print(f"✓ Deleted {removed} case(s)")
        except ValidationError as e:
            fail(str(e))


def cmd_assign(cwd: str, username: str, case_ids: list[str]):
    with open_workspace(cwd) as ws:
        try:
            ws.assign(case_ids, None if username == "-" else username)
        except ValidationError as e:
            fail(str(e))
        target = "nobody" if username == "-" else username
        print(f"✓ Assigned {len(case_ids)} case(s) to {target}")


def cmd_step(cwd: str, case_id: str, step_id: str, status: str, note: str | None = None):
    try:
        status = StepStatus(status)
    except ValueError:
        fail(f"Unknown status {status!r}. Use one of: {', '.join(StepStatus)}")
    with open_workspace(cwd) as ws:
        try:
            result = ws.set_step_status(case_id, step_id, status, note=note)
        except ValidationError as e:
            fail(str(e))
        if result.pending:
            # One-shot CLI calls cannot hold the dialog open
            ws.cancel_step_failure()
            fail(f"A note is required to mark a step {status}: testmo step {case_id} {step_id} {status} <note>")
        print(f"✓ {result.message}")


def cmd_promote(cwd: str, case_id: str, flow_id: str):
    with open_workspace(cwd) as ws:
        try:
            promoted = ws.promote_flow(case_id, flow_id)
        except ValidationError as e:
            fail(str(e))
        print(f"✓ Flow {flow_id} promoted to {promoted.case_id}: {promoted.title}")


def cmd_stats(cwd: str):
    with open_workspace(cwd) as ws:
        stats = ws.stats()
    print(f"Cases: {stats['total']} (+{stats['drafts']} drafts)")
    print(f"  Passed {stats['passed']}  Failed {stats['failed']}  Blocked {stats['blocked']}  "
          f"In progress {stats['in_progress']}  Not started {stats['not_started']}")
    print(f"Pass rate: {stats['pass_rate']}%")
    if stats["hotspots"]:
        print("Hotspots: " + ", ".join(f"{tag} ({n})" for tag, n in stats["hotspots"]))
    if stats["recent_defects"]:
        print("Recent defects: " + ", ".join(stats["recent_defects"]))


def cmd_activity(cwd: str, limit: int = 20):
    with open_workspace(cwd) as ws:
        entries = ws.activity_entries(limit)
    if not entries:
        print("No activity yet.")
        return
    for e in entries:
        details = f" ({e.details})" if e.details else ""
        print(f"{e.timestamp}  {e.user:<16} {e.action:<13} {e.target}{details}")
