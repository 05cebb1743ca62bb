"""Error kinds returned (never raised) by the work plan core.

Each kind is a small frozen dataclass. ``error_message`` is the stable
mapping the command layer uses to turn a failure into user-facing text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class TaskNotFound:
    kind: ClassVar[str] = "TaskNotFound"

    task_id: str

    @property
    def message(self) -> str:
        return f"Task not found: {self.task_id}"


@dataclass(frozen=True, slots=True)
class ValidationError:
    kind: ClassVar[str] = "ValidationError"

    details: str

    @property
    def message(self) -> str:
        return f"Validation error: {self.details}"


@dataclass(frozen=True, slots=True)
class InvalidStatus:
    kind: ClassVar[str] = "InvalidStatus"

    status: str
    details: str

    @property
    def message(self) -> str:
        return self.details


@dataclass(frozen=True, slots=True)
class CriteriaNotFound:
    kind: ClassVar[str] = "CriteriaNotFound"

    criterion_ids: Tuple[str, ...]

    @property
    def message(self) -> str:
        return f"Acceptance criteria IDs not found: {', '.join(self.criterion_ids)}"


@dataclass(frozen=True, slots=True)
class NotAssigned:
    kind: ClassVar[str] = "NotAssigned"

    task_id: str

    @property
    def message(self) -> str:
        return f"Task {self.task_id} is not assigned to a worktree"


@dataclass(frozen=True, slots=True)
class InvalidTransition:
    kind: ClassVar[str] = "InvalidTransition"

    from_status: str
    to_status: str

    @property
    def message(self) -> str:
        return f"Cannot transition from {self.from_status} to {self.to_status}"


@dataclass(frozen=True, slots=True)
class StorageError:
    kind: ClassVar[str] = "StorageError"

    details: str
    cause: Optional[BaseException] = field(default=None, compare=False)

    @property
    def message(self) -> str:
        if self.cause is not None:
            return f"{self.details}: {self.cause}"
        return self.details


@dataclass(frozen=True, slots=True)
class PlanNotFound:
    kind: ClassVar[str] = "PlanNotFound"

    @property
    def message(self) -> str:
        return "No current plan found"


PlanError = Union[
    TaskNotFound,
    ValidationError,
    InvalidStatus,
    CriteriaNotFound,
    NotAssigned,
    InvalidTransition,
    StorageError,
    PlanNotFound,
]

ERROR_KINDS = (
    TaskNotFound,
    ValidationError,
    InvalidStatus,
    CriteriaNotFound,
    NotAssigned,
    InvalidTransition,
    StorageError,
    PlanNotFound,
)


def error_message(error: PlanError) -> str:
    """Render any error kind as a single line of text."""
    if isinstance(error, ERROR_KINDS):
        return error.message
    raise TypeError(f"Unknown error type: {error!r}")


def error_payload(error: PlanError) -> dict:
    """Structured failure payload for the tool layer."""
    message = error_message(error)
    return {"success": False, "error": error.kind, "message": message}
