"""Deterministic, network-free fallbacks.

Used by the coordinator when no provider is configured or every provider
failed. Output depends only on the input and the current time.
"""

from __future__ import annotations

from datetime import datetime

from layr.agent.validator import find_cycle
from layr.schemas import Plan, Step, utc_now


HEURISTIC_STEPS: tuple[tuple[str, str], ...] = (
    ("Initialize project", "Set up project structure"),
    ("Create model", "Define data model"),
    ("Add routes", "Implement API routes"),
    ("Test project", "Write and run tests"),
)

HEURISTIC_DESCRIPTION = (
    "Fallback plan generated locally because no AI provider was available. "
    "Review and customize as needed."
)


def heuristic_plan(goal: str, now: datetime | None = None) -> Plan:
    """Four-step linear plan for `goal`; step n depends only on step n-1."""
    now = now or utc_now()
    steps = [
        Step(
            id=i,
            title=title,
            description=description,
            dependencies=[i - 1] if i > 1 else [],
        )
        for i, (title, description) in enumerate(HEURISTIC_STEPS, start=1)
    ]
    return Plan(
        id=f"local-fallback-{int(now.timestamp() * 1000)}",
        title=f"Plan for: {goal}",
        description=HEURISTIC_DESCRIPTION,
        goal=goal,
        steps=steps,
        created_at=now,
        updated_at=now,
        metadata={"source": "heuristic"},
    )


def _longest_chain(plan: Plan) -> int:
    known = {str(step.id) for step in plan.steps}
    depth = {str(step.id): 1 for step in plan.steps}
    # Relaxation converges in len(steps) passes on an acyclic graph.
    for _ in range(len(plan.steps)):
        changed = False
        for step in plan.steps:
            for dep in step.dependencies:
                key = str(dep)
                if key in known and depth[key] + 1 > depth[str(step.id)]:
                    depth[str(step.id)] = depth[key] + 1
                    changed = True
        if not changed:
            break
    return max(depth.values(), default=0)


def heuristic_critique(plan: Plan) -> str:
    """Structural review of `plan` for when no provider can critique it."""
    lines = [
        "Expert critique unavailable: no AI provider could be reached.",
        f"Structural review of '{plan.title}':",
        f"- {len(plan.steps)} step(s) in total.",
    ]
    if not plan.steps:
        lines.append("- The plan has no steps; break the goal down into actionable tasks.")
    else:
        roots = [step for step in plan.steps if not step.dependencies]
        lines.append(f"- {len(roots)} step(s) can start immediately.")

        cycle = find_cycle(plan.to_wire()["tasks"])
        if cycle:
            lines.append(f"- Dependency cycle detected: {' -> '.join(cycle)}.")
        else:
            lines.append(f"- Longest dependency chain: {_longest_chain(plan)} step(s).")

        undescribed = [str(step.id) for step in plan.steps if not step.description]
        if undescribed:
            lines.append(f"- Steps without a description: {', '.join(undescribed)}.")
        unestimated = [
            str(step.id)
            for step in plan.steps
            if not step.estimated_duration and step.estimated_time_min is None
        ]
        if unestimated:
            lines.append(f"- Steps without a time estimate: {', '.join(unestimated)}.")

    lines.append(
        "Consider reviewing the plan manually for completeness, realistic timelines, "
        "and proper task organization."
    )
    return "\n".join(lines)