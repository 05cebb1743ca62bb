"""Execution lines: tasks grouped by branch for parallel-work analysis.

A line is every task sharing one branch. Lines depend on each other when a
task in one line depends on a task living on another branch. From that
graph we derive which lines can be picked up right now and by whom.

Dependency cycles are not detected; lines on a cycle never become
executable.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .clock import format_timestamp, utcnow
from .events import PlanEvent
from .models import LineId, PrTask, WorkPlan
from .projection import project
from .status import STATUS_TYPES, is_completed


class LineState(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"
    ABANDONED = "Abandoned"


@dataclass(frozen=True, slots=True)
class LineExecutability:
    is_executable: bool = False
    is_assigned: bool = False
    is_completed: bool = False
    blocked_by: Tuple[LineId, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_executable": self.is_executable,
            "is_assigned": self.is_assigned,
            "is_completed": self.is_completed,
            "blocked_by": [str(line_id) for line_id in self.blocked_by],
        }


@dataclass(frozen=True, slots=True)
class Line:
    id: LineId
    name: str
    branch: str
    tasks: Tuple[PrTask, ...]
    dependencies: Tuple[LineId, ...] = ()
    state: LineState = LineState.NOT_STARTED
    executability: LineExecutability = field(default_factory=LineExecutability)

    @property
    def is_unassigned(self) -> bool:
        return all(not task.assigned_worktree for task in self.tasks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "branch": self.branch,
            "state": self.state.value,
            "dependencies": [str(dep) for dep in self.dependencies],
            "executability": self.executability.to_dict(),
            "tasks": [_task_summary(task) for task in self.tasks],
        }


@dataclass(frozen=True, slots=True)
class PlanStats:
    total_tasks: int
    total_lines: int
    tasks_by_status: Dict[str, int]
    tasks_by_branch: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "total_lines": self.total_lines,
            "tasks_by_status": dict(self.tasks_by_status),
            "tasks_by_branch": dict(self.tasks_by_branch),
        }


@dataclass(frozen=True, slots=True)
class ParallelExecutionStats:
    executable_lines: int
    unassigned_lines: int
    executable_unassigned_lines: int
    blocked_lines: int
    completed_lines: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executable_lines": self.executable_lines,
            "unassigned_lines": self.unassigned_lines,
            "executable_unassigned_lines": self.executable_unassigned_lines,
            "blocked_lines": self.blocked_lines,
            "completed_lines": self.completed_lines,
        }


@dataclass(frozen=True, slots=True)
class PlanView:
    plan: WorkPlan
    lines: Tuple[Line, ...]
    stats: PlanStats
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **_plan_header(self.plan),
            "lines": [line.to_dict() for line in self.lines],
            "stats": self.stats.to_dict(),
            "last_updated": format_timestamp(self.last_updated),
        }


@dataclass(frozen=True, slots=True)
class TrackingView:
    plan: WorkPlan
    lines: Tuple[Line, ...]
    stats: PlanStats
    parallel_execution_stats: ParallelExecutionStats
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats["parallel_execution_stats"] = self.parallel_execution_stats.to_dict()
        return {
            **_plan_header(self.plan),
            "lines": [line.to_dict() for line in self.lines],
            "stats": stats,
            "last_updated": format_timestamp(self.last_updated),
        }


# ----------------------------------------------------------------------
# Line derivation
# ----------------------------------------------------------------------


def group_tasks_by_branch(tasks: Iterable[PrTask]) -> Dict[str, List[PrTask]]:
    """Order-preserving grouping; first appearance fixes the line order."""
    groups: Dict[str, List[PrTask]] = {}
    for task in tasks:
        groups.setdefault(task.branch, []).append(task)
    return groups


def calculate_line_state(tasks: Sequence[PrTask]) -> LineState:
    if not tasks:
        return LineState.NOT_STARTED
    if all(is_completed(task.status) for task in tasks):
        return LineState.COMPLETED
    if any(task.status.type == "Abandoned" for task in tasks):
        return LineState.ABANDONED
    if any(task.status.type == "Blocked" for task in tasks):
        return LineState.BLOCKED
    if any(task.status.type not in ("ToBeRefined", "Refined") for task in tasks):
        return LineState.IN_PROGRESS
    return LineState.NOT_STARTED


def _line_dependencies(
    branch: str,
    tasks: Sequence[PrTask],
    branch_of_task: Dict[str, str],
) -> Tuple[LineId, ...]:
    dependencies: List[LineId] = []
    for task in tasks:
        for dep_id in task.dependencies:
            dep_branch = branch_of_task.get(dep_id)
            if dep_branch is None or dep_branch == branch:
                continue
            line_id = LineId.for_branch(dep_branch)
            if line_id not in dependencies:
                dependencies.append(line_id)
    return tuple(dependencies)


def calculate_line_executability(line: Line, all_lines: Sequence[Line]) -> LineExecutability:
    """Executability of ``line`` judged against the full line set."""
    state_by_id = {other.id: other.state for other in all_lines}
    blocked_by = tuple(
        dep for dep in line.dependencies if state_by_id.get(dep) != LineState.COMPLETED
    )
    finished = line.state in (LineState.COMPLETED, LineState.ABANDONED)
    return LineExecutability(
        is_executable=not blocked_by and not finished,
        is_assigned=any(task.assigned_worktree for task in line.tasks),
        is_completed=line.state == LineState.COMPLETED,
        blocked_by=blocked_by,
    )


def derive_lines(plan: WorkPlan) -> List[Line]:
    """Group a plan's tasks into lines with dependencies, state and executability."""
    branch_of_task = {task.id: task.branch for task in plan.tasks}
    basic = [
        Line(
            id=LineId.for_branch(branch),
            name=branch,
            branch=branch,
            tasks=tuple(tasks),
            dependencies=_line_dependencies(branch, tasks, branch_of_task),
            state=calculate_line_state(tasks),
        )
        for branch, tasks in group_tasks_by_branch(plan.tasks).items()
    ]
    return [replace(line, executability=calculate_line_executability(line, basic)) for line in basic]


# ----------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------


def calculate_plan_stats(plan: WorkPlan, lines: Sequence[Line]) -> PlanStats:
    tasks_by_status = {status_type: 0 for status_type in STATUS_TYPES}
    tasks_by_branch: Dict[str, int] = {}
    for task in plan.tasks:
        tasks_by_status[task.status.type] += 1
        tasks_by_branch[task.branch] = tasks_by_branch.get(task.branch, 0) + 1
    return PlanStats(
        total_tasks=len(plan.tasks),
        total_lines=len(lines),
        tasks_by_status=tasks_by_status,
        tasks_by_branch=tasks_by_branch,
    )


def calculate_parallel_execution_stats(lines: Sequence[Line]) -> ParallelExecutionStats:
    executable = [line for line in lines if line.executability.is_executable]
    unassigned = [line for line in lines if line.is_unassigned]
    blocked = [
        line for line in lines if line.state == LineState.BLOCKED or line.executability.blocked_by
    ]
    return ParallelExecutionStats(
        executable_lines=len(executable),
        unassigned_lines=len(unassigned),
        executable_unassigned_lines=sum(1 for line in executable if line.is_unassigned),
        blocked_lines=len(blocked),
        completed_lines=sum(1 for line in lines if line.state == LineState.COMPLETED),
    )


# ----------------------------------------------------------------------
# Views
# ----------------------------------------------------------------------


def build_plan_view(plan: WorkPlan, include_completed_lines: bool = False) -> PlanView:
    """Planning view; completed lines are hidden unless asked for."""
    lines = derive_lines(plan)
    if not include_completed_lines:
        lines = [line for line in lines if line.state != LineState.COMPLETED]
    return PlanView(plan=plan, lines=tuple(lines), stats=calculate_plan_stats(plan, lines))


def build_track_view(plan: WorkPlan, include_completed_lines: bool = True) -> TrackingView:
    """Tracking view with parallel-execution statistics over the returned lines."""
    lines = derive_lines(plan)
    if not include_completed_lines:
        lines = [line for line in lines if line.state != LineState.COMPLETED]
    return TrackingView(
        plan=plan,
        lines=tuple(lines),
        stats=calculate_plan_stats(plan, lines),
        parallel_execution_stats=calculate_parallel_execution_stats(lines),
    )


def plan_view_from_events(events: Iterable[PlanEvent], include_completed_lines: bool = False) -> Optional[PlanView]:
    plan = project(events)
    if plan is None:
        return None
    return build_plan_view(plan, include_completed_lines)


def track_view_from_events(events: Iterable[PlanEvent], include_completed_lines: bool = True) -> Optional[TrackingView]:
    plan = project(events)
    if plan is None:
        return None
    return build_track_view(plan, include_completed_lines)


# ----------------------------------------------------------------------
# Rendering helpers
# ----------------------------------------------------------------------


def _plan_header(plan: WorkPlan) -> Dict[str, Any]:
    return {
        "id": str(plan.id),
        "name": plan.name,
        "feature_branch": plan.feature_branch,
        "origin_worktree_path": plan.origin_worktree_path,
        "prd_path": plan.prd_path,
        "design_doc_path": plan.design_doc_path,
        "description": plan.description,
    }


def _task_summary(task: PrTask) -> Dict[str, Any]:
    return {
        "id": str(task.id),
        "title": task.title,
        "description": task.description,
        "status": task.status.type,
        "dependencies": [str(dep) for dep in task.dependencies],
        "assigned_worktree": task.assigned_worktree,
        "definition_of_ready": list(task.definition_of_ready),
        "acceptance_criteria": [
            {
                "id": str(criterion.id),
                "scenario": criterion.scenario,
                "given": list(criterion.given),
                "when": list(criterion.when),
                "then": list(criterion.then),
                "is_completed": criterion.is_completed,
                "created_at": format_timestamp(criterion.created_at),
            }
            for criterion in task.acceptance_criteria
        ],
    }
