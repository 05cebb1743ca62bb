"""Guidance texts returned to agents alongside tool results."""

from __future__ import annotations

CLIENT_AGENTS = ("claude code", "cursor", "claude", "other")

PLAN_NEXT_ACTION = """
You MUST do the following step next:
    1. Visualize the current plan for users as a single execution-line diagram in Mermaid.
    2. In your personal worktree, branch off your working branch from the feature branch and switch to it.
       You have to do it!: `git switch -c <your-branch-name>`
    3. Assign yourself the task that best fits your role.
"""

ASSIGN_NEXT_ACTION = """
You MUST do the following step next:
1. If you haven't already, spin up a Git worktree for this task and kick off implementation.
2. In your worktree, branch off your own working branch from the feature branch.
   You have to do it!: `git worktree add -b <your-branch-name> <current-directory>/<your-branch-name>`
   The worktree must be created under the current directory.
3. Understand and refine the task, and then break it down into more detailed steps.
"""

PROGRESS_NEXT_ACTION = """
You MUST do the following step next:
    1. While building, keep asking yourself whether new insights call for tweaks to the implementation plan or acceptance criteria.
    2. If they do, run another refinement session.
    3. If not, forge ahead with the build, and when everything is wrapped up, hand it off for review.
"""

REVIEW_NEXT_ACTION = """
Your next actions are MANDATORY:
  1. Reflect on the review and confirm whether any issues were flagged.
  2. If issues exist, reset the status and start fixing them; if everything passes, merge the work into the feature branch.
  3. Merge your personal working branch from your worktree into the original worktree's feature branch.
     You have to do it!: git -C [/path/to/original-worktree] merge [your work branch]
     Resolve any conflicts that arise.
"""

MERGE_NEXT_ACTION = """
Independently identify the next task, self-assign it, and proactively drive it to completion.
"""

BLOCK_NEXT_ACTION = """
Record what would unblock this task, then pick another executable line with `track` while you wait.
"""

ABANDON_NEXT_ACTION = """
Tell the team why the task was abandoned and check with `track` whether dependent lines need re-planning.
"""

_TRACK_NEXT_ACTION = """
You MUST do the following step next:
  1. Create a rich single task map that clearly visualizes the dependencies and parallel execution of PR tasks.
  2. Act fully autonomously and keep asking yourself which tasks you can start right now.
  3. If you see a task that's ready to start, assign it to yourself.
"""

_DIAGRAM_INSTRUCTIONS = {
    "mermaid": "Visualize as a Mermaid diagram",
    "ascii": "Visualize as an ASCII-based visual representation.",
}


def refinement_next_action(task_title: str) -> str:
    return (
        "\nYou MUST take the following steps next:\n"
        "1. Pause and confirm that your refinements are sound and that the implementation plan is crystal-clear.\n"
        f"2. If everything checks out, proceed with implementing {task_title}.\n"
    )


def track_next_action(client_agent: str) -> str:
    """Cursor and Claude render Mermaid; everything else gets ASCII art."""
    use_mermaid = client_agent in ("cursor", "claude")
    instruction = _DIAGRAM_INSTRUCTIONS["mermaid" if use_mermaid else "ascii"]
    return f"{_TRACK_NEXT_ACTION}\n**Visualization**: {instruction}\n"
