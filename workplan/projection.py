"""Rebuild a plan snapshot from an ordered sequence of plan events."""

from __future__ import annotations

from dataclasses import replace
from functools import reduce
from typing import Iterable, Optional

from .events import (
    DependenciesChanged,
    PlanCreated,
    PlanEvent,
    PlanUpdated,
    TasksAdded,
    TaskStatusChanged,
)
from .models import TaskId, WorkPlan


def _update_task_status(plan: WorkPlan, event: TaskStatusChanged) -> WorkPlan:
    tasks = tuple(
        task.touch(event.occurred_at, status=event.new_status) if task.id == event.task_id else task
        for task in plan.tasks
    )
    return replace(plan, tasks=tasks, updated_at=event.occurred_at)


def _add_tasks(plan: WorkPlan, event: TasksAdded) -> WorkPlan:
    # Tasks reach the plan through PlanUpdated replacement; this only stamps it.
    return plan.touch(event.occurred_at)


def _update_dependencies(plan: WorkPlan, event: DependenciesChanged) -> WorkPlan:
    dependencies = tuple(TaskId(dep) for dep in event.new_dependencies)
    tasks = tuple(
        task.touch(event.occurred_at, dependencies=dependencies) if task.id == event.task_id else task
        for task in plan.tasks
    )
    return replace(plan, tasks=tasks, updated_at=event.occurred_at)


def apply_event(plan: Optional[WorkPlan], event: PlanEvent) -> Optional[WorkPlan]:
    """Fold step: apply a single event to the accumulated plan."""
    if isinstance(event, (PlanCreated, PlanUpdated)):
        return event.plan
    if isinstance(event, TaskStatusChanged):
        return _update_task_status(plan, event) if plan is not None else None
    if isinstance(event, TasksAdded):
        return _add_tasks(plan, event) if plan is not None else None
    if isinstance(event, DependenciesChanged):
        return _update_dependencies(plan, event) if plan is not None else None
    raise TypeError(f"Unhandled event type: {type(event).__name__}")


def project(events: Iterable[PlanEvent]) -> Optional[WorkPlan]:
    """Fold ``events`` left to right, starting from no plan."""
    return reduce(apply_event, events, None)
