"""Work plan tracker exports."""

from .lines import build_plan_view, build_track_view, derive_lines
from .models import AcceptanceCriterion, PrTask, WorkPlan
from .planner_logging import setup_logging
from .storage import PlanStore
from .workflow import PlanWorkflow

__all__ = [
    "AcceptanceCriterion",
    "PrTask",
    "WorkPlan",
    "PlanStore",
    "PlanWorkflow",
    "build_plan_view",
    "build_track_view",
    "derive_lines",
    "setup_logging",
]
