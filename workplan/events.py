"""Domain events produced by the task aggregate and consumed by projections."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from .clock import format_timestamp, utcnow
from .models import PrTask, WorkPlan
from .status import PrTaskStatus


@dataclass(frozen=True, slots=True)
class PlanCreated:
    type: ClassVar[str] = "PlanCreated"

    plan: WorkPlan
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": str(self.plan.id),
            "task_count": len(self.plan.tasks),
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class PlanUpdated:
    type: ClassVar[str] = "PlanUpdated"

    plan: WorkPlan
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": str(self.plan.id),
            "task_count": len(self.plan.tasks),
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class TaskStatusChanged:
    type: ClassVar[str] = "TaskStatusChanged"

    plan_id: str
    task_id: str
    previous_status: PrTaskStatus
    new_status: PrTaskStatus
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "previous_status": self.previous_status.type,
            "new_status": self.new_status.type,
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class TasksAdded:
    type: ClassVar[str] = "TasksAdded"

    plan_id: str
    tasks: Tuple[PrTask, ...]
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_ids": [str(task.id) for task in self.tasks],
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class DependenciesChanged:
    type: ClassVar[str] = "DependenciesChanged"

    plan_id: str
    task_id: str
    previous_dependencies: Tuple[str, ...]
    new_dependencies: Tuple[str, ...]
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "previous_dependencies": list(self.previous_dependencies),
            "new_dependencies": list(self.new_dependencies),
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class TaskRefined:
    type: ClassVar[str] = "TaskRefined"

    plan_id: str
    task_id: str
    previous_status: PrTaskStatus
    updates: Dict[str, Any]
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "previous_status": self.previous_status.type,
            "updated_fields": sorted(self.updates),
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class ProgressUpdated:
    type: ClassVar[str] = "ProgressUpdated"

    plan_id: str
    task_id: str
    previous_status: PrTaskStatus
    new_status: PrTaskStatus
    completed: int
    total: int
    percentage: int
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "previous_status": self.previous_status.type,
            "new_status": self.new_status.type,
            "completed": self.completed,
            "total": self.total,
            "percentage": self.percentage,
            "occurred_at": format_timestamp(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class TaskAssigned:
    type: ClassVar[str] = "TaskAssigned"

    plan_id: str
    task_id: str
    worktree_name: str
    previous_worktree: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "plan_id": self.plan_id,
            "task_id": self.task_id,
            "worktree_name": self.worktree_name,
            "previous_worktree": self.previous_worktree,
            "occurred_at": format_timestamp(self.occurred_at),
        }


PlanEvent = Union[PlanCreated, PlanUpdated, TaskStatusChanged, TasksAdded, DependenciesChanged]

DomainEvent = Union[
    PlanCreated,
    PlanUpdated,
    TaskStatusChanged,
    TasksAdded,
    DependenciesChanged,
    TaskRefined,
    ProgressUpdated,
    TaskAssigned,
]
