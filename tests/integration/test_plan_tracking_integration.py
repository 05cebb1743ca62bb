"""
Integration test for parallel plan tracking:
A plan is created, tasks move through refinement, progress, review and merge,
and dependent execution lines become available as their prerequisites complete.

This integration test drives PlanWorkflow against a real on-disk store.
"""

import json

import pytest

from workplan import PlanStore, PlanWorkflow


class TestPlanTrackingIntegration:
    """Integration tests for a two-developer parallel workflow."""

    @pytest.fixture
    def workflow(self, tmp_path):
        return PlanWorkflow(PlanStore(tmp_path / ".workplan" / "plans"))

    @pytest.fixture
    def sample_plan(self):
        """Two tasks on branch "a" and one on "b" depending on "a"."""
        step = {"scenario": "works", "given": ["setup"], "when": ["action"], "then": ["outcome"]}
        return {
            "name": "Checkout",
            "feature_branch": "feature/checkout",
            "prd_path": "docs/prd.md",
            "design_doc_path": "docs/design.md",
            "origin_worktree_path": "/work/checkout",
            "tasks": [
                {"id": "A1", "title": "Cart model", "description": "", "branch": "a", "acceptance_criteria": [step]},
                {"id": "A2", "title": "Cart API", "description": "", "branch": "a", "acceptance_criteria": [step]},
                {"id": "B1", "title": "Checkout UI", "description": "", "branch": "b", "dependencies": ["A1"],
                 "acceptance_criteria": [step]},
            ],
        }

    def finish(self, workflow, task_id, worktree):
        refined = workflow.refine(task_id)
        assert refined["success"], refined
        assert workflow.assign(task_id, worktree)["success"]
        updates = [{"id": c["id"], "completed": True} for c in refined["task"]["acceptance_criteria"]]
        assert workflow.update_progress(task_id, updates)["task"]["status"]["type"] == "Implemented"
        assert workflow.review(task_id)["success"]
        assert workflow.merge(task_id)["success"]

    def test_lines_unlock_as_dependencies_merge(self, workflow, sample_plan):
        created = workflow.create_plan(**sample_plan)
        assert created["success"]

        track = workflow.track("claude code")["plan"]
        line_a, line_b = track["lines"]
        assert line_b["dependencies"] == ["line:a"]
        assert line_a["executability"]["is_executable"]
        assert not line_b["executability"]["is_executable"]
        assert track["stats"]["parallel_execution_stats"]["executable_unassigned_lines"] == 1

        self.finish(workflow, "A1", "wt-dev1")
        # Line "a" still has A2 open, so "b" keeps waiting
        track = workflow.track()["plan"]
        assert track["lines"][0]["state"] == "InProgress"
        assert not track["lines"][1]["executability"]["is_executable"]

        self.finish(workflow, "A2", "wt-dev1")
        track = workflow.track()["plan"]
        assert track["lines"][0]["state"] == "Completed"
        assert track["lines"][1]["executability"]["is_executable"]
        assert track["stats"]["tasks_by_status"]["Merged"] == 2

        view = workflow.plan_view()["plan"]
        assert [line["branch"] for line in view["lines"]] == ["b"]

    def test_reviewer_sends_task_back(self, workflow, sample_plan):
        workflow.create_plan(**sample_plan)
        refined = workflow.refine("A1")
        ids = [c["id"] for c in refined["task"]["acceptance_criteria"]]
        workflow.update_progress("A1", [{"id": ids[0], "completed": True}])
        workflow.review("A1")

        unchecked = workflow.update_progress("A1", [{"id": ids[0], "completed": False}])
        assert unchecked["task"]["status"]["type"] == "Refined"
        assert unchecked["progress"]["percentage"] == 0

        rework = workflow.review("A1", "ToBeRefined")
        assert rework["success"]
        assert rework["task"]["status"]["type"] == "ToBeRefined"
        assert workflow.merge("A1")["error"] == "InvalidTransition"

    def test_state_persists_between_workflow_instances(self, tmp_path, sample_plan):
        storage = tmp_path / "plans"
        PlanWorkflow(PlanStore(storage)).create_plan(**sample_plan)
        PlanWorkflow(PlanStore(storage)).block("B1", "design pending")

        document = json.loads((storage / "current_plan.json").read_text(encoding="utf-8"))
        status = document["tasks"][2]["status"]
        assert status["type"] == "Blocked"
        assert status["reason"] == "design pending"
        assert status["since"].endswith("Z")

        track = PlanWorkflow(PlanStore(storage)).track()["plan"]
        assert track["lines"][1]["state"] == "Blocked"
        assert track["stats"]["parallel_execution_stats"]["blocked_lines"] == 1
