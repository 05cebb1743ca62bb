"""Unit tests for error kinds and the result type."""

import pytest

from workplan.errors import (
    CriteriaNotFound,
    InvalidStatus,
    InvalidTransition,
    NotAssigned,
    PlanNotFound,
    StorageError,
    TaskNotFound,
    ValidationError,
    error_message,
    error_payload,
)
from workplan.results import Err, Ok


class TestErrorMessage:
    """Test cases for rendering error kinds."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (TaskNotFound("T1"), "Task not found: T1"),
            (ValidationError("Title cannot be empty"), "Validation error: Title cannot be empty"),
            (InvalidStatus("Merged", "Cannot update progress"), "Cannot update progress"),
            (CriteriaNotFound(("AC-1", "AC-2")), "Acceptance criteria IDs not found: AC-1, AC-2"),
            (NotAssigned("T1"), "Task T1 is not assigned to a worktree"),
            (InvalidTransition("Refined", "Merged"), "Cannot transition from Refined to Merged"),
            (StorageError("Failed to write plan", OSError("disk full")), "Failed to write plan: disk full"),
            (PlanNotFound(), "No current plan found"),
        ],
    )
    def test_messages(self, error, expected):
        assert error_message(error) == expected

    def test_unknown_error_kind(self):
        with pytest.raises(TypeError, match="Unknown error type"):
            error_message(RuntimeError("nope"))

    def test_payload(self):
        assert error_payload(TaskNotFound("T1")) == {
            "success": False,
            "error": "TaskNotFound",
            "message": "Task not found: T1",
        }

    def test_storage_error_cause_ignored_for_equality(self):
        assert StorageError("x", OSError("a")) == StorageError("x", OSError("b"))


class TestResult:
    """Test cases for Ok/Err chaining."""

    def test_ok_chain(self):
        result = Ok(2).map(lambda v: v * 3).and_then(lambda v: Ok(v + 1))

        assert result == Ok(7)
        assert result.map_err(str) == Ok(7)

    def test_err_short_circuits(self):
        result = Err("bad").map(lambda v: v * 3).and_then(lambda v: Ok(v))

        assert result == Err("bad")
        assert result.map_err(str.upper) == Err("BAD")

    def test_wrong_unwrap_raises(self):
        with pytest.raises(ValueError):
            Ok(1).unwrap_err()
        with pytest.raises(ValueError):
            Err("e").unwrap()
