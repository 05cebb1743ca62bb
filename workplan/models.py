"""Data models for the shared work plan.

This module contains the snapshot types the rest of the system operates on:
the work plan, its PR tasks and their acceptance criteria, plus the branded
identity strings that keep plan, task, criterion and line ids apart.

Snapshots are immutable. Every change produces a new value via
``dataclasses.replace``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from .clock import parse_timestamp, utcnow
from .errors import ValidationError
from .results import Err, Ok, Result
from .status import PrTaskStatus, ToBeRefined, status_from_dict

IdT = TypeVar("IdT", bound="Identifier")


class Identifier(str):
    """String identity of one particular kind. Build through ``create``."""

    label: ClassVar[str] = "Identifier"

    @classmethod
    def create(cls: Type[IdT], value: Any) -> Result[IdT, ValidationError]:
        if not isinstance(value, str) or not value.strip():
            return Err(ValidationError(f"{cls.label} cannot be empty"))
        return Ok(cls(value))

    @classmethod
    def parse(cls: Type[IdT], value: Any) -> IdT:
        """Strict variant for persisted data: a bad id is a data error."""
        result = cls.create(value)
        if result.is_err():
            raise ValueError(result.unwrap_err().message)
        return result.unwrap()


class PlanId(Identifier):
    label = "Plan ID"


class TaskId(Identifier):
    label = "Task ID"


class CriterionId(Identifier):
    label = "Acceptance criterion ID"

    @classmethod
    def generate(cls) -> "CriterionId":
        return cls(f"AC-{uuid.uuid4().hex[:8].upper()}")


class LineId(Identifier):
    label = "Line ID"

    @classmethod
    def for_branch(cls, branch: str) -> "LineId":
        return cls(f"line:{branch}")


def generate_plan_id() -> PlanId:
    return PlanId(f"PLAN-{uuid.uuid4().hex[:8].upper()}")


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return parse_timestamp(value)


@dataclass(frozen=True, slots=True)
class AcceptanceCriterion:
    """A Given/When/Then scenario with a completion flag."""

    id: CriterionId
    scenario: str
    given: Tuple[str, ...]
    when: Tuple[str, ...]
    then: Tuple[str, ...]
    is_completed: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "scenario": self.scenario,
            "given": list(self.given),
            "when": list(self.when),
            "then": list(self.then),
            "is_completed": self.is_completed,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcceptanceCriterion":
        return cls(
            id=CriterionId.parse(data["id"]),
            scenario=data["scenario"],
            given=tuple(data.get("given", [])),
            when=tuple(data.get("when", [])),
            then=tuple(data.get("then", [])),
            is_completed=bool(data.get("is_completed", False)),
            created_at=_coerce_datetime(data["created_at"]),
        )

    def with_completion(self, completed: bool) -> "AcceptanceCriterion":
        return replace(self, is_completed=completed)


@dataclass(frozen=True, slots=True)
class PrTask:
    """One pull-request sized unit of work living on a branch."""

    id: TaskId
    title: str
    description: str
    branch: str
    status: PrTaskStatus = field(default_factory=ToBeRefined)
    acceptance_criteria: Tuple[AcceptanceCriterion, ...] = ()
    definition_of_ready: Tuple[str, ...] = ()
    dependencies: Tuple[TaskId, ...] = ()
    assigned_worktree: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
            "branch": self.branch,
            "status": self.status.to_dict(),
            "acceptance_criteria": [criterion.to_dict() for criterion in self.acceptance_criteria],
            "definition_of_ready": list(self.definition_of_ready),
            "dependencies": [str(dep) for dep in self.dependencies],
            "assigned_worktree": self.assigned_worktree,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrTask":
        updated_at = data.get("updated_at")
        return cls(
            id=TaskId.parse(data["id"]),
            title=data["title"],
            description=data.get("description", ""),
            branch=data["branch"],
            status=status_from_dict(data.get("status", {"type": "ToBeRefined"})),
            acceptance_criteria=tuple(
                AcceptanceCriterion.from_dict(item) for item in data.get("acceptance_criteria", [])
            ),
            definition_of_ready=tuple(data.get("definition_of_ready", [])),
            dependencies=tuple(TaskId.parse(dep) for dep in data.get("dependencies", [])),
            assigned_worktree=data.get("assigned_worktree"),
            updated_at=_coerce_datetime(updated_at) if updated_at is not None else None,
        )

    def find_criterion(self, criterion_id: str) -> Optional[AcceptanceCriterion]:
        for criterion in self.acceptance_criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    def touch(self, at: Optional[datetime] = None, **changes: Any) -> "PrTask":
        """Copy with ``changes`` applied and ``updated_at`` refreshed."""
        return replace(self, updated_at=at or utcnow(), **changes)

    def validate(self) -> List[str]:
        """Validate task data and return any issues."""
        issues = []

        if not self.title.strip():
            issues.append("Task title is required")
        if not self.branch.strip():
            issues.append(f"Task {self.id} must name a branch")
        seen = set()
        for criterion in self.acceptance_criteria:
            if criterion.id in seen:
                issues.append(f"Duplicate acceptance criterion ID {criterion.id} in task {self.id}")
            seen.add(criterion.id)
        if self.id in self.dependencies:
            issues.append(f"Task {self.id} cannot depend on itself")

        return issues


@dataclass(frozen=True, slots=True)
class WorkPlan:
    """The full set of tasks and metadata for one initiative."""

    id: PlanId
    name: str
    feature_branch: str
    prd_path: str
    design_doc_path: str
    origin_worktree_path: str = ""
    description: Optional[str] = None
    tasks: Tuple[PrTask, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "feature_branch": self.feature_branch,
            "origin_worktree_path": self.origin_worktree_path,
            "prd_path": self.prd_path,
            "design_doc_path": self.design_doc_path,
            "description": self.description,
            "tasks": [task.to_dict() for task in self.tasks],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkPlan":
        return cls(
            id=PlanId.parse(data["id"]),
            name=data["name"],
            feature_branch=data["feature_branch"],
            origin_worktree_path=data.get("origin_worktree_path", ""),
            prd_path=data.get("prd_path", ""),
            design_doc_path=data.get("design_doc_path", ""),
            description=data.get("description"),
            tasks=tuple(PrTask.from_dict(item) for item in data.get("tasks", [])),
            created_at=_coerce_datetime(data["created_at"]),
            updated_at=_coerce_datetime(data["updated_at"]),
        )

    def find_task(self, task_id: str) -> Optional[PrTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> List[TaskId]:
        return [task.id for task in self.tasks]

    def with_task(self, updated: PrTask, at: Optional[datetime] = None) -> "WorkPlan":
        """Copy with the task of the same id swapped in and the plan touched."""
        tasks = tuple(updated if task.id == updated.id else task for task in self.tasks)
        return replace(self, tasks=tasks, updated_at=at or utcnow())

    def touch(self, at: Optional[datetime] = None) -> "WorkPlan":
        return replace(self, updated_at=at or utcnow())

    def validate(self) -> List[str]:
        """Check plan-wide invariants and return any issues."""
        issues = []

        if not self.name.strip():
            issues.append("Plan name is required")
        if not self.feature_branch.strip():
            issues.append("Feature branch is required")

        known = set()
        for task in self.tasks:
            if task.id in known:
                issues.append(f"Duplicate task ID: {task.id}")
            known.add(task.id)
            issues.extend(task.validate())

        for task in self.tasks:
            missing = [dep for dep in task.dependencies if dep not in known]
            if missing:
                issues.append(f"Task {task.id} depends on unknown tasks: {', '.join(missing)}")

        return issues


def unique_criterion_ids(count: int, taken: Iterable[str] = ()) -> List[CriterionId]:
    """Generate ``count`` fresh criterion ids not colliding with ``taken``."""
    used = set(taken)
    ids: List[CriterionId] = []
    while len(ids) < count:
        candidate = CriterionId.generate()
        if candidate not in used:
            used.add(candidate)
            ids.append(candidate)
    return ids
