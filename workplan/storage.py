"""Durable single-snapshot persistence for the current work plan.

The plan lives in one JSON document, ``current_plan.json``, inside the
storage directory. Writes go to a temporary file first and are renamed over
the canonical path, so a crash mid-write never leaves a torn document.
There is no locking: two concurrent read-modify-write cycles can lose an
update.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .clock import format_timestamp, is_timestamp, parse_timestamp
from .errors import StorageError
from .models import WorkPlan
from .planner_logging import log_error_with_context, log_operation, log_performance
from .results import Err, Ok, Result

logger = logging.getLogger("workplan.storage")

CURRENT_PLAN_FILENAME = "current_plan.json"

# Persisted keys that hold timestamps: plan, task and criterion stamps plus
# the Blocked/Abandoned status payloads.
DATE_FIELDS = frozenset({"created_at", "updated_at", "since", "at"})


def serialize_dates(obj: Any) -> Any:
    """Recursively replace datetimes with their ISO-8601 string form."""
    if isinstance(obj, datetime):
        return format_timestamp(obj)
    if isinstance(obj, (list, tuple)):
        return [serialize_dates(item) for item in obj]
    if isinstance(obj, dict):
        return {key: serialize_dates(value) for key, value in obj.items()}
    return obj


def deserialize_dates(obj: Any) -> Any:
    """Inverse of ``serialize_dates``.

    Only values under a date field name are revived, so free text such as a
    task title shaped like a timestamp stays a string.
    """
    if isinstance(obj, list):
        return [deserialize_dates(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _revive_field(key, value) for key, value in obj.items()}
    return obj


def _revive_field(key: str, value: Any) -> Any:
    if key in DATE_FIELDS and isinstance(value, str) and is_timestamp(value):
        return parse_timestamp(value)
    return deserialize_dates(value)


class PlanStore:
    """Read and atomically replace the current plan snapshot."""

    STORAGE_DIR_ENV = "WORKPLAN_STORAGE_DIR"

    def __init__(self, storage_dir: Path | str):
        self.storage_dir = Path(storage_dir)

    @property
    def plan_path(self) -> Path:
        return self.storage_dir / CURRENT_PLAN_FILENAME

    @property
    def temp_path(self) -> Path:
        return self.plan_path.with_name(CURRENT_PLAN_FILENAME + ".tmp")

    @log_performance("save_plan")
    def save(self, plan: WorkPlan) -> Result[WorkPlan, StorageError]:
        """Persist ``plan`` as the current snapshot."""
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_error_with_context(e, {"operation": "save_plan", "path": str(self.storage_dir)})
            return Err(StorageError("Failed to create storage directory", e))

        try:
            content = json.dumps(serialize_dates(plan.to_dict()), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            log_error_with_context(e, {"operation": "save_plan", "plan_id": str(plan.id)})
            return Err(StorageError("Failed to prepare write operation", e))

        try:
            with log_operation("save_plan", path=str(self.plan_path), plan_id=str(plan.id)):
                self.temp_path.write_text(content + "\n", encoding="utf-8")
                os.replace(self.temp_path, self.plan_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                self.temp_path.unlink()
            log_error_with_context(e, {"operation": "save_plan", "path": str(self.plan_path)})
            return Err(StorageError("Failed to write plan", e))

        logger.info(f"Plan {plan.id} saved to {self.plan_path}")
        return Ok(plan)

    @log_performance("load_plan")
    def load(self) -> Result[Optional[WorkPlan], StorageError]:
        """Load the current snapshot; ``Ok(None)`` when no plan exists yet."""
        try:
            raw = self.plan_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No plan stored at {self.plan_path}")
            return Ok(None)
        except (OSError, UnicodeDecodeError) as e:
            log_error_with_context(e, {"operation": "load_plan", "path": str(self.plan_path)})
            return Err(StorageError("Failed to load current plan", e))

        try:
            plan = WorkPlan.from_dict(deserialize_dates(json.loads(raw)))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log_error_with_context(e, {"operation": "load_plan", "path": str(self.plan_path)})
            return Err(StorageError("Failed to load current plan", e))

        return Ok(plan)
