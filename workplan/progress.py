"""Acceptance-criteria progress for a single PR task.

Recomputes completion from the criteria flags and moves the task status
along with it: completing every criterion of a Refined task promotes it
to Implemented, and unchecking a criterion of an Implemented or Reviewed
task sends it back to Refined.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

from .errors import CriteriaNotFound, InvalidStatus
from .models import AcceptanceCriterion, PrTask
from .results import Err, Ok, Result
from .status import (
    PROGRESSABLE_TYPES,
    Implemented,
    PrTaskStatus,
    Refined,
    status_label,
)

ProgressError = Union[InvalidStatus, CriteriaNotFound]


@dataclass(frozen=True, slots=True)
class CriteriaUpdate:
    id: str
    completed: bool


@dataclass(frozen=True, slots=True)
class ProgressUpdateRequest:
    criteria_updates: Tuple[CriteriaUpdate, ...]


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    completed: int
    total: int
    percentage: int
    all_completed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "total": self.total,
            "percentage": self.percentage,
            "all_completed": self.all_completed,
        }


@dataclass(frozen=True, slots=True)
class ProgressUpdateResult:
    updated_task: PrTask
    progress: ProgressSummary


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def evaluate_completion(criteria: Sequence[AcceptanceCriterion]) -> ProgressSummary:
    """Summarize how many criteria are checked."""
    total = len(criteria)
    completed = sum(1 for criterion in criteria if criterion.is_completed)
    percentage = _round_half_up(completed * 100 / total) if total > 0 else 0
    return ProgressSummary(
        completed=completed,
        total=total,
        percentage=percentage,
        all_completed=total > 0 and completed == total,
    )


def apply_criteria_updates(
    criteria: Sequence[AcceptanceCriterion],
    updates: Sequence[CriteriaUpdate],
) -> Tuple[AcceptanceCriterion, ...]:
    """Overwrite the completion flag of every named criterion; later updates win."""
    requested = {update.id: update.completed for update in updates}
    return tuple(
        criterion.with_completion(requested[criterion.id]) if criterion.id in requested else criterion
        for criterion in criteria
    )


def determine_status_transition(current: PrTaskStatus, all_completed: bool) -> PrTaskStatus:
    if all_completed and current.type == "Refined":
        return Implemented()
    if not all_completed and current.type in ("Implemented", "Reviewed"):
        return Refined()
    return current


def _must_be_progressable(status: PrTaskStatus) -> List[ProgressError]:
    if status.type in PROGRESSABLE_TYPES:
        return []
    return [
        InvalidStatus(
            status=status.type,
            details=(
                f"Cannot update progress from status {status_label(status)}. "
                "Only Refined, Implemented, and Reviewed statuses are allowed."
            ),
        )
    ]


def _must_reference_known_criteria(
    criteria: Sequence[AcceptanceCriterion],
    updates: Sequence[CriteriaUpdate],
) -> List[ProgressError]:
    existing = {criterion.id for criterion in criteria}
    unknown = [update.id for update in updates if update.id not in existing]
    if not unknown:
        return []
    return [CriteriaNotFound(criterion_ids=tuple(unknown))]


def update_progress(
    task: PrTask,
    request: ProgressUpdateRequest,
) -> Result[ProgressUpdateResult, List[ProgressError]]:
    """Apply a batch of criteria updates to ``task``.

    Both preconditions are checked and all failures are returned together.
    """
    errors = _must_be_progressable(task.status) + _must_reference_known_criteria(
        task.acceptance_criteria, request.criteria_updates
    )
    if errors:
        return Err(errors)

    criteria = apply_criteria_updates(task.acceptance_criteria, request.criteria_updates)
    progress = evaluate_completion(criteria)
    status = determine_status_transition(task.status, progress.all_completed)

    updated_task = task.touch(acceptance_criteria=criteria, status=status)
    return Ok(ProgressUpdateResult(updated_task=updated_task, progress=progress))
