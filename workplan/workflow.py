"""Command layer: load the current plan, apply one change, persist it.

Every public method returns a plain dict ready to hand back to an MCP
client. Failures come back as ``{"success": False, "error", "message"}``
payloads rather than exceptions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import aggregate
from .aggregate import (
    CommandOutcome,
    CreatePlanCommand,
    CriterionDraft,
    RefineTaskCommand,
    TaskDraft,
    TaskRefinement,
    UpdateProgressCommand,
)
from .errors import PlanNotFound, ValidationError, error_payload
from .lines import build_plan_view, build_track_view
from .models import WorkPlan
from .planner_logging import log_domain_event, log_operation, log_performance
from .progress import CriteriaUpdate
from .prompts import (
    ABANDON_NEXT_ACTION,
    ASSIGN_NEXT_ACTION,
    BLOCK_NEXT_ACTION,
    CLIENT_AGENTS,
    MERGE_NEXT_ACTION,
    PLAN_NEXT_ACTION,
    PROGRESS_NEXT_ACTION,
    REVIEW_NEXT_ACTION,
    refinement_next_action,
    track_next_action,
)
from .results import Err, Ok, Result
from .storage import PlanStore, serialize_dates

logger = logging.getLogger("workplan.workflow")

PROJECT_ROOT_ENV = "WORKPLAN_PROJECT_ROOT"
DEFAULT_STORAGE_SUBDIR = Path(".workplan") / "plans"


def resolve_storage_dir(root: Optional[str] = None) -> Path:
    """Storage directory from the environment, an explicit root, or the cwd.

    ``WORKPLAN_STORAGE_DIR`` wins when set. Otherwise plans live under
    ``<root>/.workplan/plans`` where root comes from the argument,
    ``WORKPLAN_PROJECT_ROOT`` or the current directory.
    """
    storage_dir = os.environ.get(PlanStore.STORAGE_DIR_ENV)
    if storage_dir:
        return Path(storage_dir).expanduser()

    candidate = root or os.environ.get(PROJECT_ROOT_ENV)
    if candidate:
        resolved = Path(candidate).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{candidate}' does not exist.")
    else:
        resolved = Path.cwd()
    return resolved / DEFAULT_STORAGE_SUBDIR


def _criterion_drafts(items: Optional[Iterable[Dict[str, Any]]]) -> Optional[tuple]:
    if items is None:
        return None
    return tuple(CriterionDraft.from_dict(item) for item in items)


def _optional_tuple(items: Optional[Iterable[str]]) -> Optional[tuple]:
    return None if items is None else tuple(items)


def _criteria_update_issues(items: Iterable[Any]) -> List[str]:
    """``{"id": str, "completed": bool}`` is the only accepted shape; no truthiness coercion."""
    issues = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            issues.append(f"criteria_updates[{index}] must be an object")
            continue
        if not isinstance(item.get("id"), str) or not item["id"]:
            issues.append(f"criteria_updates[{index}].id must be a non-empty string")
        if not isinstance(item.get("completed"), bool):
            issues.append(f"criteria_updates[{index}].completed must be a boolean, got {item.get('completed')!r}")
    return issues


def progress_message(title: str, previous_status: str, new_status: str, completed: int, total: int, percentage: int) -> str:
    if percentage == 100:
        if previous_status != "Implemented" and new_status == "Implemented":
            return f'All acceptance criteria completed! Task "{title}" automatically marked as Implemented.'
        return f'All acceptance criteria completed! Task "{title}" is ready for review.'
    return f"Progress updated: {completed}/{total} criteria completed ({percentage}%)"


class PlanWorkflow:
    """Orchestrates plan commands against a ``PlanStore``."""

    def __init__(self, store: PlanStore):
        self.store = store

    @classmethod
    def from_environment(cls, root: Optional[str] = None) -> "PlanWorkflow":
        return cls(PlanStore(resolve_storage_dir(root)))

    # ------------------------------------------------------------------
    # Plan lifecycle
    # ------------------------------------------------------------------

    @log_performance("create_plan")
    def create_plan(
        self,
        name: str,
        feature_branch: str,
        prd_path: str,
        design_doc_path: str,
        tasks: List[Dict[str, Any]],
        origin_worktree_path: str = "",
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a plan and make it the current one, replacing any previous plan."""
        drafts = tuple(
            TaskDraft(
                id=task.get("id", ""),
                title=task.get("title", ""),
                description=task.get("description", ""),
                branch=task.get("branch", ""),
                dependencies=tuple(task.get("dependencies", [])),
                acceptance_criteria=_criterion_drafts(task.get("acceptance_criteria", [])),
                definition_of_ready=tuple(task.get("definition_of_ready", [])),
            )
            for task in tasks
        )
        command = CreatePlanCommand(
            name=name,
            feature_branch=feature_branch,
            prd_path=prd_path,
            design_doc_path=design_doc_path,
            tasks=drafts,
            origin_worktree_path=origin_worktree_path,
            description=description,
        )

        with log_operation("create_plan", name=name, task_count=len(drafts)):
            result = aggregate.create_plan(command)
            if result.is_err():
                return error_payload(result.unwrap_err())

            outcome = result.unwrap()
            saved = self.store.save(outcome.updated_plan)
            if saved.is_err():
                return error_payload(saved.unwrap_err())

        log_domain_event(outcome.event)
        plan = outcome.updated_plan
        return {
            "success": True,
            "event": outcome.event.to_dict(),
            "plan": build_plan_view(plan).to_dict(),
            "message": f'Plan "{plan.name}" created with {len(plan.tasks)} tasks',
            "next_action": PLAN_NEXT_ACTION,
        }

    # ------------------------------------------------------------------
    # Task commands
    # ------------------------------------------------------------------

    @log_performance("refine_task")
    def refine(
        self,
        task_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        acceptance_criteria: Optional[List[Dict[str, Any]]] = None,
        definition_of_ready: Optional[List[str]] = None,
        dependencies: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        updates = TaskRefinement(
            title=title,
            description=description,
            acceptance_criteria=_criterion_drafts(acceptance_criteria),
            definition_of_ready=_optional_tuple(definition_of_ready),
            dependencies=_optional_tuple(dependencies),
        )

        def run(plan: WorkPlan):
            return aggregate.refine_task(plan, RefineTaskCommand(str(plan.id), task_id, updates))

        result = self._execute("refine_task", task_id, run)
        if result.is_err():
            return result.unwrap_err()

        task = result.unwrap().task
        return self._success(
            result.unwrap(),
            f'Task "{task.title}" refined',
            refinement_next_action(task.title),
        )

    @log_performance("update_progress")
    def update_progress(self, task_id: str, criteria_updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        issues = _criteria_update_issues(criteria_updates)
        if issues:
            return error_payload(ValidationError("; ".join(issues)))

        updates = tuple(CriteriaUpdate(id=item["id"], completed=item["completed"]) for item in criteria_updates)

        def run(plan: WorkPlan):
            return aggregate.update_progress(plan, UpdateProgressCommand(str(plan.id), task_id, updates))

        result = self._execute("update_progress", task_id, run)
        if result.is_err():
            return result.unwrap_err()

        outcome = result.unwrap()
        event = outcome.event
        summary = outcome.progress
        message = progress_message(
            outcome.task.title,
            event.previous_status.type,
            event.new_status.type,
            summary.completed,
            summary.total,
            summary.percentage,
        )
        payload = self._success(outcome, message, PROGRESS_NEXT_ACTION)
        payload["progress"] = summary.to_dict()
        return payload

    @log_performance("assign_task")
    def assign(self, task_id: str, worktree_name: str) -> Dict[str, Any]:
        result = self._execute(
            "assign_task",
            task_id,
            lambda plan: aggregate.assign_worktree(plan, task_id, worktree_name),
        )
        if result.is_err():
            return result.unwrap_err()

        task = result.unwrap().task
        return self._success(
            result.unwrap(),
            f'Task "{task.title}" assigned to worktree "{worktree_name}"',
            ASSIGN_NEXT_ACTION,
        )

    @log_performance("review_task")
    def review(self, task_id: str, new_status: str = "Reviewed") -> Dict[str, Any]:
        result = self._execute(
            "review_task",
            task_id,
            lambda plan: aggregate.review_task(plan, task_id, new_status),
        )
        if result.is_err():
            return result.unwrap_err()
        return self._status_success(result.unwrap(), REVIEW_NEXT_ACTION)

    @log_performance("merge_task")
    def merge(self, task_id: str) -> Dict[str, Any]:
        result = self._execute("merge_task", task_id, lambda plan: aggregate.merge_task(plan, task_id))
        if result.is_err():
            return result.unwrap_err()
        return self._status_success(result.unwrap(), MERGE_NEXT_ACTION)

    @log_performance("block_task")
    def block(self, task_id: str, reason: str) -> Dict[str, Any]:
        result = self._execute("block_task", task_id, lambda plan: aggregate.block_task(plan, task_id, reason))
        if result.is_err():
            return result.unwrap_err()
        return self._status_success(result.unwrap(), BLOCK_NEXT_ACTION)

    @log_performance("abandon_task")
    def abandon(self, task_id: str, reason: str) -> Dict[str, Any]:
        result = self._execute("abandon_task", task_id, lambda plan: aggregate.abandon_task(plan, task_id, reason))
        if result.is_err():
            return result.unwrap_err()
        return self._status_success(result.unwrap(), ABANDON_NEXT_ACTION)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def track(self, client_agent: str = "other", include_completed_lines: bool = True) -> Dict[str, Any]:
        """Tracking view of the current plan plus visualization guidance."""
        if client_agent not in CLIENT_AGENTS:
            return error_payload(
                ValidationError(f"client_agent must be one of {', '.join(CLIENT_AGENTS)}, got {client_agent!r}")
            )

        loaded = self._load()
        if loaded.is_err():
            return loaded.unwrap_err()

        view = build_track_view(loaded.unwrap(), include_completed_lines)
        stats = view.parallel_execution_stats
        return {
            "success": True,
            "plan": view.to_dict(),
            "message": (
                f"{len(view.lines)} lines, {stats.executable_lines} executable "
                f"({stats.executable_unassigned_lines} unassigned)"
            ),
            "next_action": track_next_action(client_agent),
        }

    def plan_view(self, include_completed_lines: bool = False) -> Dict[str, Any]:
        loaded = self._load()
        if loaded.is_err():
            return loaded.unwrap_err()

        view = build_plan_view(loaded.unwrap(), include_completed_lines)
        return {
            "success": True,
            "plan": view.to_dict(),
            "message": f"{view.stats.total_tasks} tasks across {view.stats.total_lines} lines",
        }

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load(self) -> Result[WorkPlan, Dict[str, Any]]:
        loaded = self.store.load()
        if loaded.is_err():
            return Err(error_payload(loaded.unwrap_err()))
        plan = loaded.unwrap()
        if plan is None:
            return Err(error_payload(PlanNotFound()))
        return Ok(plan)

    def _execute(
        self,
        operation: str,
        task_id: str,
        command: Callable[[WorkPlan], Result[CommandOutcome, Any]],
    ) -> Result[CommandOutcome, Dict[str, Any]]:
        """Load, apply ``command``, save. Errors come back as failure payloads."""
        with log_operation(operation, task_id=task_id):
            loaded = self._load()
            if loaded.is_err():
                return loaded

            result = command(loaded.unwrap())
            if result.is_err():
                error = result.unwrap_err()
                logger.warning(f"{operation} rejected for task {task_id}: {error.message}")
                return Err(error_payload(error))

            outcome = result.unwrap()
            saved = self.store.save(outcome.updated_plan)
            if saved.is_err():
                return Err(error_payload(saved.unwrap_err()))

        log_domain_event(outcome.event)
        return Ok(outcome)

    def _success(self, outcome: CommandOutcome, message: str, next_action: str) -> Dict[str, Any]:
        return {
            "success": True,
            "event": outcome.event.to_dict(),
            "task": serialize_dates(outcome.task.to_dict()),
            "message": message,
            "next_action": next_action,
        }

    def _status_success(self, outcome: CommandOutcome, next_action: str) -> Dict[str, Any]:
        event = outcome.event
        message = (
            f'Task "{outcome.task.title}" moved from '
            f"{event.previous_status} to {event.new_status}"
        )
        return self._success(outcome, message, next_action)
