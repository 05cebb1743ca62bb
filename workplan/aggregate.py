"""Task aggregate: every change applied to a task in the plan.

Each operation is a pure function over a plan snapshot. It validates the
command, builds the updated snapshot and returns it together with the
domain event describing the change. Callers persist the returned plan.

- create_plan: build a fresh plan with every task ToBeRefined
- refine_task: rewrite task details and force the status to Refined
- update_progress: check/uncheck acceptance criteria via the progress engine
- assign_worktree: record which worktree picked the task up
- review_task / merge_task / block_task / abandon_task: status transitions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import progress as progress_engine
from .clock import utcnow
from .errors import (
    CriteriaNotFound,
    InvalidStatus,
    InvalidTransition,
    NotAssigned,
    TaskNotFound,
    ValidationError,
)
from .events import (
    DomainEvent,
    PlanCreated,
    ProgressUpdated,
    TaskAssigned,
    TaskRefined,
    TaskStatusChanged,
)
from .models import (
    AcceptanceCriterion,
    PrTask,
    TaskId,
    WorkPlan,
    generate_plan_id,
    unique_criterion_ids,
)
from .progress import CriteriaUpdate, ProgressSummary, ProgressUpdateRequest
from .results import Err, Ok, Result
from .status import (
    Abandoned,
    Blocked,
    Merged,
    PrTaskStatus,
    Refined,
    Reviewed,
    ToBeRefined,
    can_transition,
    is_terminal,
    status_label,
)

RefinementError = Union[TaskNotFound, ValidationError]
ProgressCommandError = Union[TaskNotFound, InvalidStatus, CriteriaNotFound, NotAssigned]
TransitionError = Union[TaskNotFound, ValidationError, InvalidTransition]

REVIEW_TARGETS = {
    "Reviewed": Reviewed,
    "ToBeRefined": ToBeRefined,
    "Refined": Refined,
}


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CriterionDraft:
    """Acceptance criterion as supplied by a caller, before it has an id."""

    scenario: str
    given: Tuple[str, ...]
    when: Tuple[str, ...]
    then: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriterionDraft":
        return cls(
            scenario=data.get("scenario", ""),
            given=tuple(data.get("given", [])),
            when=tuple(data.get("when", [])),
            then=tuple(data.get("then", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "given": list(self.given),
            "when": list(self.when),
            "then": list(self.then),
        }

    def validate(self, position: int) -> List[str]:
        issues = []
        prefix = f"Acceptance criterion {position}"
        if not self.scenario.strip():
            issues.append(f"{prefix}: scenario cannot be empty")
        for step_name in ("given", "when", "then"):
            steps = getattr(self, step_name)
            if not steps:
                issues.append(f"{prefix}: at least one {step_name.capitalize()} step is required")
            elif any(not step.strip() for step in steps):
                issues.append(f"{prefix}: {step_name.capitalize()} step cannot be empty")
        return issues


@dataclass(frozen=True, slots=True)
class TaskRefinement:
    """Field-level updates applied by a refinement. ``None`` means unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    acceptance_criteria: Optional[Tuple[CriterionDraft, ...]] = None
    definition_of_ready: Optional[Tuple[str, ...]] = None
    dependencies: Optional[Tuple[str, ...]] = None

    def provided(self) -> Dict[str, Any]:
        """Plain-data view of the fields actually supplied."""
        data: Dict[str, Any] = {}
        if self.title is not None:
            data["title"] = self.title
        if self.description is not None:
            data["description"] = self.description
        if self.acceptance_criteria is not None:
            data["acceptance_criteria"] = [draft.to_dict() for draft in self.acceptance_criteria]
        if self.definition_of_ready is not None:
            data["definition_of_ready"] = list(self.definition_of_ready)
        if self.dependencies is not None:
            data["dependencies"] = list(self.dependencies)
        return data


@dataclass(frozen=True, slots=True)
class RefineTaskCommand:
    plan_id: str
    task_id: str
    updates: TaskRefinement


@dataclass(frozen=True, slots=True)
class UpdateProgressCommand:
    plan_id: str
    task_id: str
    criteria_updates: Tuple[CriteriaUpdate, ...]


@dataclass(frozen=True, slots=True)
class TaskDraft:
    id: str
    title: str
    description: str
    branch: str
    dependencies: Tuple[str, ...] = ()
    acceptance_criteria: Tuple[CriterionDraft, ...] = ()
    definition_of_ready: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CreatePlanCommand:
    name: str
    feature_branch: str
    prd_path: str
    design_doc_path: str
    tasks: Tuple[TaskDraft, ...]
    origin_worktree_path: str = ""
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """Successful aggregate result: the event plus the new plan snapshot."""

    event: DomainEvent
    updated_plan: WorkPlan
    task: Optional[PrTask] = None
    progress: Optional[ProgressSummary] = None


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _build_criteria(
    drafts: Sequence[CriterionDraft],
    taken: Sequence[str] = (),
) -> Tuple[AcceptanceCriterion, ...]:
    now = utcnow()
    ids = unique_criterion_ids(len(drafts), taken)
    return tuple(
        AcceptanceCriterion(
            id=criterion_id,
            scenario=draft.scenario,
            given=tuple(draft.given),
            when=tuple(draft.when),
            then=tuple(draft.then),
            is_completed=False,
            created_at=now,
        )
        for criterion_id, draft in zip(ids, drafts)
    )


def _dependency_issues(task_id: str, dependencies: Sequence[str], known: Sequence[str]) -> List[str]:
    issues = []
    for dep in dependencies:
        if TaskId.create(dep).is_err():
            issues.append("Dependency task ID cannot be empty")
        elif dep == task_id:
            issues.append(f"Task {task_id} cannot depend on itself")
        elif dep not in known:
            issues.append(f"Unknown dependency task: {dep}")
    return issues


def _criteria_issues(drafts: Sequence[CriterionDraft]) -> List[str]:
    issues = []
    for position, draft in enumerate(drafts, start=1):
        issues.extend(draft.validate(position))
    return issues


def _ready_issues(items: Sequence[str]) -> List[str]:
    if any(not item.strip() for item in items):
        return ["Definition of Ready item cannot be empty"]
    return []


# ----------------------------------------------------------------------
# Plan creation
# ----------------------------------------------------------------------


def create_plan(command: CreatePlanCommand) -> Result[CommandOutcome, ValidationError]:
    """Build a new plan snapshot with every task waiting for refinement."""
    issues: List[str] = []
    known = [draft.id for draft in command.tasks]

    for draft in command.tasks:
        if TaskId.create(draft.id).is_err():
            issues.append("Task ID cannot be empty")
            continue
        issues.extend(_criteria_issues(draft.acceptance_criteria))
        issues.extend(_ready_issues(draft.definition_of_ready))
        issues.extend(_dependency_issues(draft.id, draft.dependencies, known))
    if issues:
        return Err(ValidationError("; ".join(issues)))

    now = utcnow()
    tasks = tuple(
        PrTask(
            id=TaskId(draft.id),
            title=draft.title,
            description=draft.description,
            branch=draft.branch,
            status=ToBeRefined(),
            acceptance_criteria=_build_criteria(draft.acceptance_criteria),
            definition_of_ready=tuple(draft.definition_of_ready),
            dependencies=tuple(TaskId(dep) for dep in draft.dependencies),
        )
        for draft in command.tasks
    )
    plan = WorkPlan(
        id=generate_plan_id(),
        name=command.name,
        feature_branch=command.feature_branch,
        prd_path=command.prd_path,
        design_doc_path=command.design_doc_path,
        origin_worktree_path=command.origin_worktree_path,
        description=command.description,
        tasks=tasks,
        created_at=now,
        updated_at=now,
    )

    plan_issues = plan.validate()
    if plan_issues:
        return Err(ValidationError("; ".join(plan_issues)))

    return Ok(CommandOutcome(event=PlanCreated(plan=plan, occurred_at=now), updated_plan=plan))


# ----------------------------------------------------------------------
# Refinement
# ----------------------------------------------------------------------


def refine_task(plan: WorkPlan, command: RefineTaskCommand) -> Result[CommandOutcome, RefinementError]:
    """Apply refinement updates and force the task into Refined."""
    task = plan.find_task(command.task_id)
    if task is None:
        return Err(TaskNotFound(command.task_id))

    previous_status = task.status
    refined = Refined()
    updates = command.updates

    issues: List[str] = []
    if not can_transition(task.status, refined):
        issues.append(f"Cannot refine task in status {status_label(task.status)}")
    if updates.title is not None and not updates.title.strip():
        issues.append("Title cannot be empty")
    if updates.dependencies is not None:
        issues.extend(_dependency_issues(task.id, updates.dependencies, plan.task_ids()))
    if updates.acceptance_criteria is not None:
        issues.extend(_criteria_issues(updates.acceptance_criteria))
    if updates.definition_of_ready is not None:
        issues.extend(_ready_issues(updates.definition_of_ready))
    if issues:
        return Err(ValidationError("; ".join(issues)))

    changes: Dict[str, Any] = {"status": refined}
    if updates.title is not None:
        changes["title"] = updates.title
    if updates.description is not None:
        changes["description"] = updates.description
    if updates.dependencies is not None:
        changes["dependencies"] = tuple(TaskId(dep) for dep in updates.dependencies)
    if updates.acceptance_criteria is not None:
        changes["acceptance_criteria"] = _build_criteria(updates.acceptance_criteria)
    if updates.definition_of_ready is not None:
        changes["definition_of_ready"] = tuple(updates.definition_of_ready)

    now = utcnow()
    updated_task = task.touch(now, **changes)
    event = TaskRefined(
        plan_id=command.plan_id,
        task_id=command.task_id,
        previous_status=previous_status,
        updates=updates.provided(),
        occurred_at=now,
    )
    return Ok(CommandOutcome(event=event, updated_plan=plan.with_task(updated_task, now), task=updated_task))


# ----------------------------------------------------------------------
# Progress
# ----------------------------------------------------------------------


def _to_command_error(error: Any) -> ProgressCommandError:
    if isinstance(error, (InvalidStatus, CriteriaNotFound, NotAssigned)):
        return error
    raise TypeError(f"Unknown progress error type: {error!r}")


def update_progress(
    plan: WorkPlan,
    command: UpdateProgressCommand,
) -> Result[CommandOutcome, ProgressCommandError]:
    """Record criteria completion on one task and auto-advance its status."""
    task = plan.find_task(command.task_id)
    if task is None:
        return Err(TaskNotFound(command.task_id))

    result = progress_engine.update_progress(task, ProgressUpdateRequest(tuple(command.criteria_updates)))
    if result.is_err():
        return Err(_to_command_error(result.unwrap_err()[0]))

    outcome = result.unwrap()
    updated_task = outcome.updated_task
    summary = outcome.progress
    now = updated_task.updated_at or utcnow()
    event = ProgressUpdated(
        plan_id=command.plan_id,
        task_id=command.task_id,
        previous_status=task.status,
        new_status=updated_task.status,
        completed=summary.completed,
        total=summary.total,
        percentage=summary.percentage,
        occurred_at=now,
    )
    return Ok(
        CommandOutcome(
            event=event,
            updated_plan=plan.with_task(updated_task, now),
            task=updated_task,
            progress=summary,
        )
    )


# ----------------------------------------------------------------------
# Assignment
# ----------------------------------------------------------------------


def assign_worktree(
    plan: WorkPlan,
    task_id: str,
    worktree_name: str,
) -> Result[CommandOutcome, Union[TaskNotFound, ValidationError]]:
    """Claim a task for the given worktree."""
    task = plan.find_task(task_id)
    if task is None:
        return Err(TaskNotFound(task_id))

    issues = []
    if not worktree_name or not worktree_name.strip():
        issues.append("Worktree name cannot be empty")
    if is_terminal(task.status):
        issues.append(f"Cannot assign task in status {status_label(task.status)}")
    if issues:
        return Err(ValidationError("; ".join(issues)))

    now = utcnow()
    updated_task = task.touch(now, assigned_worktree=worktree_name)
    event = TaskAssigned(
        plan_id=str(plan.id),
        task_id=task_id,
        worktree_name=worktree_name,
        previous_worktree=task.assigned_worktree,
        occurred_at=now,
    )
    return Ok(CommandOutcome(event=event, updated_plan=plan.with_task(updated_task, now), task=updated_task))


# ----------------------------------------------------------------------
# Status transitions
# ----------------------------------------------------------------------


def change_status(
    plan: WorkPlan,
    task_id: str,
    target: PrTaskStatus,
) -> Result[CommandOutcome, Union[TaskNotFound, InvalidTransition]]:
    """Move a task to ``target`` if the status machine allows it."""
    task = plan.find_task(task_id)
    if task is None:
        return Err(TaskNotFound(task_id))

    if not can_transition(task.status, target):
        return Err(InvalidTransition(status_label(task.status), status_label(target)))

    now = utcnow()
    updated_task = task.touch(now, status=target)
    event = TaskStatusChanged(
        plan_id=str(plan.id),
        task_id=task_id,
        previous_status=task.status,
        new_status=target,
        occurred_at=now,
    )
    return Ok(CommandOutcome(event=event, updated_plan=plan.with_task(updated_task, now), task=updated_task))


def review_task(plan: WorkPlan, task_id: str, target_status: str = "Reviewed") -> Result[CommandOutcome, TransitionError]:
    """Approve (Reviewed) or send back (ToBeRefined/Refined) a task."""
    factory = REVIEW_TARGETS.get(target_status)
    if factory is None:
        allowed = ", ".join(REVIEW_TARGETS)
        return Err(ValidationError(f"Review target must be one of {allowed}, got {target_status!r}"))
    return change_status(plan, task_id, factory())


def merge_task(plan: WorkPlan, task_id: str) -> Result[CommandOutcome, TransitionError]:
    return change_status(plan, task_id, Merged())


def block_task(plan: WorkPlan, task_id: str, reason: str) -> Result[CommandOutcome, TransitionError]:
    if not reason or not reason.strip():
        return Err(ValidationError("A reason is required to block a task"))
    return change_status(plan, task_id, Blocked(reason=reason))


def abandon_task(plan: WorkPlan, task_id: str, reason: str) -> Result[CommandOutcome, TransitionError]:
    if not reason or not reason.strip():
        return Err(ValidationError("A reason is required to abandon a task"))
    return change_status(plan, task_id, Abandoned(reason=reason))
