"""Unit tests for the plan command layer.

This module tests load/apply/save orchestration, the returned payloads,
and storage configuration.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from workplan.errors import StorageError
from workplan.results import Err
from workplan.storage import PlanStore
from workplan.workflow import PlanWorkflow, progress_message, resolve_storage_dir


def criterion(scenario):
    return {"scenario": scenario, "given": ["a user"], "when": ["they act"], "then": ["it works"]}


SAMPLE_TASKS = [
    {
        "id": "T1",
        "title": "Login API",
        "description": "Token endpoint",
        "branch": "feature/auth-api",
        "acceptance_criteria": [criterion("valid login"), criterion("invalid login")],
    },
    {
        "id": "T2",
        "title": "Login UI",
        "description": "Form",
        "branch": "feature/auth-ui",
        "dependencies": ["T1"],
    },
]


class TestResolveStorageDir:
    """Test cases for storage configuration."""

    def test_storage_dir_env_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WORKPLAN_STORAGE_DIR", str(tmp_path / "custom"))
        monkeypatch.setenv("WORKPLAN_PROJECT_ROOT", str(tmp_path))

        assert resolve_storage_dir() == tmp_path / "custom"

    def test_project_root_env(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKPLAN_STORAGE_DIR", raising=False)
        monkeypatch.setenv("WORKPLAN_PROJECT_ROOT", str(tmp_path))

        assert resolve_storage_dir() == tmp_path.resolve() / ".workplan" / "plans"

    def test_explicit_root_beats_env_root(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKPLAN_STORAGE_DIR", raising=False)
        monkeypatch.setenv("WORKPLAN_PROJECT_ROOT", str(tmp_path / "missing"))
        root = tmp_path / "project"
        root.mkdir()

        assert resolve_storage_dir(str(root)) == root.resolve() / ".workplan" / "plans"

    def test_missing_root_is_rejected(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKPLAN_STORAGE_DIR", raising=False)

        with pytest.raises(ValueError, match="does not exist"):
            resolve_storage_dir(str(tmp_path / "nope"))

    def test_defaults_to_cwd(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKPLAN_STORAGE_DIR", raising=False)
        monkeypatch.delenv("WORKPLAN_PROJECT_ROOT", raising=False)
        monkeypatch.chdir(tmp_path)

        assert resolve_storage_dir() == Path.cwd() / ".workplan" / "plans"


class TestProgressMessage:
    """Test cases for progress messages."""

    def test_partial(self):
        assert progress_message("T", "Refined", "Refined", 1, 2, 50) == "Progress updated: 1/2 criteria completed (50%)"

    def test_auto_implemented(self):
        message = progress_message("Login", "Refined", "Implemented", 2, 2, 100)
        assert message == 'All acceptance criteria completed! Task "Login" automatically marked as Implemented.'

    def test_ready_for_review(self):
        message = progress_message("Login", "Reviewed", "Reviewed", 2, 2, 100)
        assert message == 'All acceptance criteria completed! Task "Login" is ready for review.'


class TestPlanWorkflow:
    """Test cases for PlanWorkflow commands."""

    @pytest.fixture
    def workflow(self, tmp_path):
        return PlanWorkflow(PlanStore(tmp_path / "plans"))

    @pytest.fixture
    def planned(self, workflow):
        result = workflow.create_plan(
            name="Auth",
            feature_branch="feature/auth",
            prd_path="docs/prd.md",
            design_doc_path="docs/design.md",
            tasks=SAMPLE_TASKS,
        )
        assert result["success"], result
        return workflow

    def test_commands_without_plan(self, workflow):
        result = workflow.assign("T1", "wt")

        assert result == {"success": False, "error": "PlanNotFound", "message": "No current plan found"}
        assert workflow.track()["error"] == "PlanNotFound"

    def test_create_plan_payload(self, planned):
        view = planned.plan_view()

        assert view["success"]
        assert [line["branch"] for line in view["plan"]["lines"]] == ["feature/auth-api", "feature/auth-ui"]
        assert planned.store.plan_path.exists()

    def test_create_plan_validation_failure(self, workflow):
        result = workflow.create_plan("Auth", "feature/auth", "", "", [{"id": "T1", "title": "x", "description": "", "branch": "b", "dependencies": ["T7"]}])

        assert result["success"] is False
        assert result["error"] == "ValidationError"
        assert not workflow.store.plan_path.exists()

    def test_refine_and_progress(self, planned):
        refined = planned.refine("T1", title="Login API v2")
        assert refined["success"]
        assert refined["task"]["status"] == {"type": "Refined"}
        assert refined["event"]["type"] == "TaskRefined"
        assert "Login API v2" in refined["next_action"]

        ids = [c["id"] for c in refined["task"]["acceptance_criteria"]]
        first = planned.update_progress("T1", [{"id": ids[0], "completed": True}])
        assert first["message"] == "Progress updated: 1/2 criteria completed (50%)"
        assert first["progress"] == {"completed": 1, "total": 2, "percentage": 50, "all_completed": False}
        assert first["task"]["status"]["type"] == "Refined"

        second = planned.update_progress("T1", [{"id": ids[1], "completed": True}])
        assert second["task"]["status"]["type"] == "Implemented"
        assert "automatically marked as Implemented" in second["message"]

    def test_progress_unknown_criterion_leaves_task_unchanged(self, planned):
        planned.refine("T1")
        before = planned.store.load().unwrap()

        result = planned.update_progress("T1", [{"id": "AC-MISSING", "completed": True}])

        assert result == {
            "success": False,
            "error": "CriteriaNotFound",
            "message": "Acceptance criteria IDs not found: AC-MISSING",
        }
        assert planned.store.load().unwrap() == before

    def test_progress_rejects_non_boolean_completion(self, planned):
        """The string "false" must not be read as a truthy check."""
        refined = planned.refine("T1")
        ids = [c["id"] for c in refined["task"]["acceptance_criteria"]]
        before = planned.store.load().unwrap()

        result = planned.update_progress("T1", [{"id": ids[0], "completed": "false"}, {"id": ids[1], "completed": 1}])

        assert result["success"] is False
        assert result["error"] == "ValidationError"
        assert "criteria_updates[0].completed must be a boolean, got 'false'" in result["message"]
        assert "criteria_updates[1].completed must be a boolean, got 1" in result["message"]
        assert planned.store.load().unwrap() == before

    def test_progress_rejects_malformed_entries(self, planned):
        planned.refine("T1")

        result = planned.update_progress("T1", [{"completed": True}, "AC-1"])

        assert result["error"] == "ValidationError"
        assert "criteria_updates[0].id must be a non-empty string" in result["message"]
        assert "criteria_updates[1] must be an object" in result["message"]

    def test_progress_on_unrefined_task(self, planned):
        result = planned.update_progress("T2", [])

        assert result["error"] == "InvalidStatus"

    def test_full_lifecycle(self, planned):
        refined = planned.refine("T1")
        ids = [c["id"] for c in refined["task"]["acceptance_criteria"]]
        planned.assign("T1", "wt-api")
        planned.update_progress("T1", [{"id": cid, "completed": True} for cid in ids])

        reviewed = planned.review("T1")
        merged = planned.merge("T1")

        assert reviewed["task"]["status"]["type"] == "Reviewed"
        assert merged["success"]
        assert merged["message"] == 'Task "Login API" moved from Reviewed to Merged'
        track = planned.track("cursor")
        assert "Mermaid" in track["next_action"]
        line_ui = track["plan"]["lines"][1]
        assert line_ui["executability"]["is_executable"]

    def test_invalid_transition_payload(self, planned):
        result = planned.merge("T1")

        assert result == {
            "success": False,
            "error": "InvalidTransition",
            "message": "Cannot transition from To Be Refined to Merged",
        }

    def test_block_and_abandon(self, planned):
        blocked = planned.block("T2", "waiting on API")
        abandoned = planned.abandon("T2", "descoped")

        assert blocked["task"]["status"]["type"] == "Blocked"
        assert abandoned["task"]["status"]["reason"] == "descoped"
        assert planned.assign("T2", "wt")["error"] == "ValidationError"

    def test_unknown_task(self, planned):
        assert planned.review("T9")["message"] == "Task not found: T9"

    def test_track_client_agents(self, planned):
        assert "ASCII" in planned.track("other")["next_action"]
        assert "Mermaid" in planned.track("claude")["next_action"]
        assert planned.track("vim")["error"] == "ValidationError"

    def test_storage_failure_on_save(self, planned):
        with patch.object(PlanStore, "save", return_value=Err(StorageError("Failed to write plan"))):
            result = planned.assign("T1", "wt")

        assert result == {"success": False, "error": "StorageError", "message": "Failed to write plan"}
        assert planned.store.load().unwrap().find_task("T1").assigned_worktree is None
