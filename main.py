"""MCP server exposing work plan tracking tools for parallel PR development."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from workplan import PlanWorkflow, build_plan_view, setup_logging
from workplan.workflow import resolve_storage_dir

mcp = FastMCP("workplan")

LOG_LEVEL_ENV = "WORKPLAN_LOG_LEVEL"
LOG_FILE_ENV = "WORKPLAN_LOG_FILE"


def _workflow(root: Optional[str] = None) -> PlanWorkflow:
    return PlanWorkflow.from_environment(root)


@mcp.tool()
def plan(
    name: str,
    feature_branch: str,
    prd_path: str,
    design_doc_path: str,
    tasks: List[Dict[str, Any]],
    origin_worktree_path: str = "",
    description: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 1: Create the work plan for a feature and make it the current plan.

    Each task needs an id, title, description and branch; tasks sharing a
    branch form one execution line. Optional per task: dependencies (task
    ids), acceptance_criteria (scenario/given/when/then) and
    definition_of_ready. Every task starts as ToBeRefined."""

    return _workflow(root).create_plan(
        name=name,
        feature_branch=feature_branch,
        prd_path=prd_path,
        design_doc_path=design_doc_path,
        tasks=tasks,
        origin_worktree_path=origin_worktree_path,
        description=description,
    )


@mcp.tool()
def refinement(
    task_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    acceptance_criteria: Optional[List[Dict[str, Any]]] = None,
    definition_of_ready: Optional[List[str]] = None,
    dependencies: Optional[List[str]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Refine a task's details and mark it Refined.

    Omitted fields stay as they are. Supplied acceptance criteria replace the
    existing ones and start incomplete."""

    return _workflow(root).refine(
        task_id,
        title=title,
        description=description,
        acceptance_criteria=acceptance_criteria,
        definition_of_ready=definition_of_ready,
        dependencies=dependencies,
    )


@mcp.tool()
def progress(task_id: str, criteria_updates: List[Dict[str, Any]], root: Optional[str] = None) -> Dict[str, Any]:
    """Check or uncheck acceptance criteria ({"id": ..., "completed": bool}).

    A Refined task moves to Implemented once every criterion is complete;
    an Implemented task drops back to Refined when one is unchecked."""

    return _workflow(root).update_progress(task_id, criteria_updates)


@mcp.tool()
def assign(task_id: str, worktree_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Assign a task to the worktree that will implement it."""

    return _workflow(root).assign(task_id, worktree_name)


@mcp.tool()
def review(task_id: str, new_status: str = "Reviewed", root: Optional[str] = None) -> Dict[str, Any]:
    """Record a review outcome: Reviewed to approve, ToBeRefined or Refined to send the task back."""

    return _workflow(root).review(task_id, new_status)


@mcp.tool()
def merge(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Mark a reviewed task as merged into the feature branch."""

    return _workflow(root).merge(task_id)


@mcp.tool()
def block(task_id: str, reason: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Mark a task as blocked with the reason it cannot proceed."""

    return _workflow(root).block(task_id, reason)


@mcp.tool()
def abandon(task_id: str, reason: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Abandon a task permanently."""

    return _workflow(root).abandon(task_id, reason)


@mcp.tool()
def track(client_agent: str = "other", root: Optional[str] = None) -> Dict[str, Any]:
    """Show execution lines, their dependencies and which ones can start now.

    client_agent is one of 'claude code', 'cursor', 'claude' or 'other' and
    selects the visualization guidance returned with the view."""

    return _workflow(root).track(client_agent)


@mcp.resource("workplan://current")
def resource_current_plan() -> str:
    """Resource view summarising the current plan line by line."""

    loaded = _workflow().store.load()
    if loaded.is_err():
        return loaded.unwrap_err().message
    current = loaded.unwrap()
    if current is None:
        return "No current plan. Create one with the plan tool."

    view = build_plan_view(current, include_completed_lines=True)
    lines = [f"Work Plan: {current.name} ({current.feature_branch})"]
    for line in view.lines:
        lines.append("")
        executable = "executable" if line.executability.is_executable else "waiting"
        lines.append(f"- {line.branch} [{line.state.value}, {executable}]")
        if line.dependencies:
            lines.append(f"  Depends on: {', '.join(line.dependencies)}")
        for task in line.tasks:
            worktree = f" @ {task.assigned_worktree}" if task.assigned_worktree else ""
            lines.append(f"  {task.id}: {task.title} ({task.status}){worktree}")

    return "\n".join(lines)


def main() -> None:
    log_file = os.getenv(LOG_FILE_ENV)
    setup_logging(os.getenv(LOG_LEVEL_ENV, "INFO").upper(), Path(log_file) if log_file else None)
    # Fail fast on a misconfigured project root.
    resolve_storage_dir()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
