"""MCP tools drive the same workspace as the CLI, one call per transition."""
from __future__ import annotations

import json

import pytest

from conftest import make_case
from testmo.commands.init import init_workspace
from testmo.integrations import mcp_server
from testmo.workspace import Workspace


@pytest.fixture
def workspace_dir(tmp_path, monkeypatch):
    init_workspace(tmp_path)
    ws = Workspace.open(tmp_path)
    try:
        ws.save_cases([make_case("TC-1", statuses=["NotStarted", "NotStarted"])])
    finally:
        ws.close()
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_list_and_get(workspace_dir):
    rows = json.loads(mcp_server.testmo_list_cases())
    assert rows == [{"case_id": "TC-1", "title": "Case TC-1", "status": "NotStarted",
                     "priority": "Medium", "progress": 0}]
    assert json.loads(mcp_server.testmo_list_cases("passed")) == []
    assert json.loads(mcp_server.testmo_get_case("TC-1"))["case_id"] == "TC-1"
    assert "error" in json.loads(mcp_server.testmo_get_case("TC-9"))


def test_run_with_failure_dialog(workspace_dir):
    status = json.loads(mcp_server.testmo_start_run("TC-1"))
    assert status["position"] == "1/2"

    out = json.loads(mcp_server.testmo_mark_outcome("Passed"))
    assert out["result"]["success"]
    assert out["status"]["current_index"] == 1

    out = json.loads(mcp_server.testmo_mark_outcome("Failed"))
    assert out["result"]["pending"]
    assert out["status"]["allowed_actions"] == ["confirm_failure", "cancel_failure"]

    out = json.loads(mcp_server.testmo_navigate(1))
    assert not out["result"]["success"]

    out = json.loads(mcp_server.testmo_confirm_failure("error 500"))
    assert out["status"]["case_status"] == "Failed"
    assert out["status"]["finished"]

    assert "closed" in mcp_server.testmo_stop_run()
    assert "error" in json.loads(mcp_server.testmo_run_status())


def test_bad_outcome_is_reported(workspace_dir):
    mcp_server.testmo_start_run("TC-1")
    out = json.loads(mcp_server.testmo_mark_outcome("Maybe"))
    assert out["type"] == "ValueError"


def test_case_operations(workspace_dir):
    copy_id = mcp_server.testmo_duplicate_case("TC-1")
    assert copy_id.startswith("TC-")
    assert mcp_server.testmo_reset_cases(["TC-1"]) == "Reset 1 case(s)"
    assert mcp_server.testmo_export("standard").startswith("Case ID;Title")
    assert "error" in json.loads(mcp_server.testmo_export("pdf"))
    assert mcp_server.testmo_delete_cases([copy_id]) == "Deleted 1 case(s)"
    actions = [e["action"] for e in json.loads(mcp_server.testmo_get_activity(3))]
    assert actions == ["delete", "update", "create"]
    assert json.loads(mcp_server.testmo_stats())["total"] == 1


def test_evidence_attach_and_remove(workspace_dir):
    mcp_server.testmo_start_run("TC-1")
    out = json.loads(mcp_server.testmo_attach_evidence("data:image/png;base64,AAAA"))
    assert out["result"]["success"]
    assert out["status"]["step"]["has_evidence"]

    out = json.loads(mcp_server.testmo_remove_evidence())
    assert out["result"]["success"]
    assert not out["status"]["step"]["has_evidence"]
    assert json.loads(mcp_server.testmo_get_case("TC-1"))["steps"][0]["evidence"] is None
