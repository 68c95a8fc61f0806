"""MCP Server: exposes testmo_* tools over stdio."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from testmo.engine.status import calculate_progress
from testmo.types import StepStatus
from testmo.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Callable

    from testmo.engine.runner import ExecutionSession, RunResult

mcp = FastMCP("testmo")


def _get_workspace() -> Workspace:
    return Workspace.open(Path(os.getcwd()))


def _error(e: Exception) -> str:
    return json.dumps({"error": str(e), "type": type(e).__name__}, ensure_ascii=False)


def _drive_run(action: Callable[[ExecutionSession], RunResult]) -> str:
    """Resume the saved run, apply one transition, persist it, report result plus status."""
    ws = _get_workspace()
    try:
        session = ws.resume_run()
        if session is None:
            return json.dumps({"error": "No run in progress. Call testmo_start_run first."})
        try:
            result = action(session)
        finally:
            ws.save_run(session)
        return json.dumps({"result": result.to_dict(), "status": session.get_status()},
                          ensure_ascii=False, indent=2)
    except (ValueError, RuntimeError) as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_list_cases(status: str | None = None) -> str:
    """List test cases with status and progress, optionally filtered by status."""
    ws = _get_workspace()
    try:
        rows = [
            {"case_id": c.case_id, "title": c.title, "status": str(c.display_status),
             "priority": str(c.priority), "progress": calculate_progress(c.steps)}
            for c in ws.cases
            if status is None or str(c.display_status).lower() == status.lower()
        ]
        return json.dumps(rows, ensure_ascii=False, indent=2)
    finally:
        ws.close()


@mcp.tool()
def testmo_get_case(case_id: str) -> str:
    """Get one test case with all steps."""
    ws = _get_workspace()
    try:
        return json.dumps(ws.get_case(case_id).to_dict(), ensure_ascii=False, indent=2)
    except ValueError as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_start_run(case_id: str) -> str:
    """Start a guided execution run of a case."""
    ws = _get_workspace()
    try:
        session = ws.start_run(case_id)
        return json.dumps(session.get_status(), ensure_ascii=False, indent=2)
    except (ValueError, RuntimeError) as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_run_status() -> str:
    """Get the current step, progress and allowed actions of the run in progress."""
    ws = _get_workspace()
    try:
        session = ws.resume_run()
        if session is None:
            return json.dumps({"error": "No run in progress."})
        return json.dumps(session.get_status(), ensure_ascii=False, indent=2)
    finally:
        ws.close()


@mcp.tool()
def testmo_mark_outcome(status: str, note: str | None = None) -> str:
    """Mark the current step Passed, Failed or Blocked. Failed/Blocked without a note opens the failure dialog."""
    return _drive_run(lambda s: s.mark_outcome(StepStatus(status), note=note))


@mcp.tool()
def testmo_confirm_failure(note: str) -> str:
    """Confirm the open failure dialog with a mandatory note."""
    return _drive_run(lambda s: s.confirm_failure(note))


@mcp.tool()
def testmo_cancel_failure() -> str:
    """Cancel the open failure dialog; the step keeps its status."""
    return _drive_run(lambda s: s.cancel_failure())


@mcp.tool()
def testmo_navigate(delta: int) -> str:
    """Move to the next (+1) or previous (-1) step without changing any status."""
    return _drive_run(lambda s: s.navigate(delta))


@mcp.tool()
def testmo_attach_evidence(evidence: str) -> str:
    """Attach an evidence image (data URL or base64) to the current step; replaces any earlier one."""
    return _drive_run(lambda s: s.attach_evidence(evidence))


@mcp.tool()
def testmo_remove_evidence() -> str:
    """Remove the evidence image of the current step together with its AI analysis."""
    return _drive_run(lambda s: s.remove_evidence())


@mcp.tool()
def testmo_stop_run() -> str:
    """Close the run in progress. Committed outcomes stay."""
    ws = _get_workspace()
    try:
        return ws.stop_run().message
    finally:
        ws.close()


@mcp.tool()
def testmo_reset_cases(case_ids: list[str]) -> str:
    """Reset cases for a regression run: all steps back to NotStarted."""
    ws = _get_workspace()
    try:
        return f"Reset {len(ws.reset(case_ids))} case(s)"
    except ValueError as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_duplicate_case(case_id: str) -> str:
    """Duplicate a case with a fresh id and cleared execution results."""
    ws = _get_workspace()
    try:
        return ws.duplicate(case_id).case_id
    except ValueError as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_delete_cases(case_ids: list[str]) -> str:
    """Delete cases by id."""
    ws = _get_workspace()
    try:
        return f"Deleted {ws.delete_cases(case_ids)} case(s)"
    finally:
        ws.close()


@mcp.tool()
def testmo_export(kind: str = "standard", case_ids: list[str] | None = None) -> str:
    """Export cases as semicolon-separated CSV text (standard or external layout)."""
    ws = _get_workspace()
    try:
        if kind == "standard":
            return ws.export_standard(case_ids)
        if kind == "external":
            return ws.export_external(case_ids)
        return _error(ValueError(f"Unknown export format {kind!r}"))
    except ValueError as e:
        return _error(e)
    finally:
        ws.close()


@mcp.tool()
def testmo_get_activity(limit: int = 20) -> str:
    """Get the most recent activity log entries."""
    ws = _get_workspace()
    try:
        return json.dumps([e.__dict__ for e in ws.activity_entries(limit)], ensure_ascii=False, indent=2)
    finally:
        ws.close()


@mcp.tool()
def testmo_stats() -> str:
    """Get dashboard figures: counts per status, pass rate, hotspots."""
    ws = _get_workspace()
    try:
        return json.dumps(ws.stats(), ensure_ascii=False, indent=2)
    finally:
        ws.close()


def run_server():
    mcp.run(transport="stdio")
