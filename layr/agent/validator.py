"""Structural validation of parsed plans.

Checks, in order:
1. Shape: `title` is a non-empty string, steps (`steps` or `tasks`) is a
   list of objects, each `dependencies` is a list.
2. Step IDs are pairwise distinct.
3. The dependency graph is acyclic.

Validation is pass/fail. It never drops or repairs steps; callers reject
the plan and fall back.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Mapping, Sequence

from layr.errors import ValidationError


WHITE, GRAY, BLACK = 0, 1, 2


def plan_steps(plan: Mapping[str, Any]) -> Any:
    """Steps of a wire plan; `steps` wins over `tasks` when both exist."""
    if "steps" in plan:
        return plan["steps"]
    return plan.get("tasks")


def step_key(step: Mapping[str, Any], position: int) -> str:
    """Identity of a step: its `id` if given, else `#<1-based position>`.

    Positional keys live in their own namespace, so a step without an ID
    never collides with another step's explicit ID.
    """
    step_id = step.get("id")
    if step_id is None or step_id == "":
        return f"#{position + 1}"
    return str(step_id)


class DependencyResolver:
    """Maps dependency references to step keys.

    A reference matches an explicit step ID first, then the position of a
    step that has no ID, then an exact step title.
    """

    def __init__(self, steps: Sequence[Mapping[str, Any]]):
        self.keys = [step_key(step, i) for i, step in enumerate(steps)]
        self._by_key = set(self.keys)
        self._by_title: dict[str, str] = {}
        for key, step in zip(self.keys, steps):
            title = step.get("title")
            if isinstance(title, str) and title.strip():
                self._by_title.setdefault(title.strip(), key)

    def resolve(self, reference: Any) -> str | None:
        ref = str(reference).strip()
        if ref in self._by_key:
            return ref
        if f"#{ref}" in self._by_key:
            return f"#{ref}"
        return self._by_title.get(ref)


def _check_shape(plan: Any) -> list[Mapping[str, Any]]:
    if not isinstance(plan, Mapping):
        raise ValidationError("Invalid plan structure: expected an object")

    title = plan.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Invalid plan structure: 'title' must be a non-empty string")

    steps = plan_steps(plan)
    if not isinstance(steps, list):
        raise ValidationError("Invalid plan structure: 'tasks' must be an array")

    for i, step in enumerate(steps):
        if not isinstance(step, Mapping):
            raise ValidationError(f"Invalid plan structure: step {i + 1} is not an object")
        deps = step.get("dependencies")
        if deps is not None and not isinstance(deps, list):
            raise ValidationError(
                f"Invalid plan structure: dependencies of step {i + 1} must be an array"
            )
    return steps


def find_duplicate_ids(steps: Sequence[Mapping[str, Any]]) -> list[str]:
    counts = Counter(step_key(step, i) for i, step in enumerate(steps))
    return [key for key, count in counts.items() if count > 1]


def find_cycle(steps: Sequence[Mapping[str, Any]]) -> list[str] | None:
    """Return one dependency cycle as a list of step keys, or None.

    Iterative three-colour DFS over dense integer indices. Assumes step
    keys are unique. References that match no step are ignored.
    """
    resolver = DependencyResolver(steps)
    index = {key: i for i, key in enumerate(resolver.keys)}
    adjacency: list[list[int]] = []
    for step in steps:
        edges = []
        for ref in step.get("dependencies") or []:
            target = resolver.resolve(ref)
            if target is not None:
                edges.append(index[target])
        adjacency.append(edges)

    color = [WHITE] * len(steps)
    for root in range(len(steps)):
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        stack = [(root, iter(adjacency[root]))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if color[child] == GRAY:
                    path = [n for n, _ in stack]
                    cycle = path[path.index(child):] + [child]
                    return [resolver.keys[n] for n in cycle]
                if color[child] == WHITE:
                    color[child] = GRAY
                    stack.append((child, iter(adjacency[child])))
                    break
            else:
                color[node] = BLACK
                stack.pop()
    return None


def validate_plan(plan: Any, *, provider: str | None = None) -> None:
    """Raise ValidationError unless `plan` is structurally valid."""
    try:
        steps = _check_shape(plan)

        duplicates = find_duplicate_ids(steps)
        if duplicates:
            raise ValidationError(f"Step IDs must be unique (duplicated: {', '.join(duplicates)})")

        cycle = find_cycle(steps)
        if cycle:
            raise ValidationError(f"Plan has cyclic dependencies: {' -> '.join(cycle)}")
    except ValidationError as e:
        e.provider = provider
        raise
