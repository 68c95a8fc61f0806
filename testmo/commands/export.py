"""testmo export standard|external [--out DIR] [case-id ...]"""
from __future__ import annotations

from pathlib import Path

from testmo.commands import fail, open_workspace
from testmo.errors import ValidationError


def cmd_export(cwd: str, kind: str, case_ids: list[str], out: str | None = None):
    with open_workspace(cwd) as ws:
        if not ws.cases:
            fail("Nothing to export: the workspace has no test cases.")
        directory = Path(out) if out else Path(cwd)
        try:
            path = ws.write_export(kind, directory, case_ids or None)
        except ValidationError as e:
            fail(str(e))
        count = len(case_ids) if case_ids else len(ws.cases)
        print(f"✓ Exported {count} case(s) to {path}")
