"""Turn a validated wire object into a stamped Plan.

The model is never trusted with identifiers or timestamps: step IDs are
re-stamped 1..n in order, the plan gets a fresh ID, and both timestamps
are set here. Missing optional fields get the same defaults every time.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Any, Mapping
from uuid import uuid4

from layr.agent.validator import DependencyResolver, plan_steps
from layr.schemas import Complexity, Plan, Priority, Step, TaskStatus, utc_now


logger = logging.getLogger(__name__)

DEFAULT_DURATION = "1 hour"


def new_plan_id() -> str:
    """`plan_<epoch-ms>_<9 hex chars>`."""
    return f"plan_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce(enum_cls, value: Any, default):
    if value is None:
        return default
    try:
        return enum_cls(_text(value).lower().replace("_", "-"))
    except ValueError:
        return default


def _minutes(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        try:
            return int(value.strip())
        except ValueError:
            # Beyond the interpreter's int digit limit.
            return None
    return None


def build_plan(
    data: Mapping[str, Any],
    *,
    goal: str = "",
    provider: str | None = None,
    now: datetime | None = None,
) -> Plan:
    """Build a Plan from a wire object that already passed `validate_plan`.

    Args:
        data: Parsed model output (`tasks` or `steps` list)
        goal: Goal text to record when the model does not echo one
        provider: Provider that produced the output, stored in metadata
        now: Timestamp to stamp (defaults to the current UTC time)

    Returns:
        A draft Plan with re-stamped step IDs
    """
    now = now or utc_now()
    raw_steps = plan_steps(data) or []
    resolver = DependencyResolver(raw_steps)
    stamped = {key: i + 1 for i, key in enumerate(resolver.keys)}

    dropped: list[dict[str, Any]] = []
    steps: list[Step] = []
    for i, raw in enumerate(raw_steps):
        dependencies: list[int] = []
        for ref in raw.get("dependencies") or []:
            target = resolver.resolve(ref)
            if target is None:
                dropped.append({"step": i + 1, "reference": ref})
                continue
            if stamped[target] not in dependencies:
                dependencies.append(stamped[target])

        duration = raw.get("estimatedDuration", raw.get("estimated_duration"))
        minutes = raw.get("estimatedTimeMin", raw.get("estimated_time_min"))
        steps.append(
            Step(
                id=i + 1,
                title=_text(raw.get("title")) or f"Task {i + 1}",
                description=_text(raw.get("description")),
                dependencies=dependencies,
                status=_coerce(TaskStatus, raw.get("status"), TaskStatus.TODO),
                priority=_coerce(Priority, raw.get("priority"), Priority.MEDIUM),
                complexity=_coerce(Complexity, raw.get("complexity"), None),
                estimated_duration=_text(duration) or DEFAULT_DURATION,
                estimated_time_min=_minutes(minutes),
            )
        )

    metadata: dict[str, Any] = {}
    if isinstance(data.get("metadata"), Mapping):
        metadata.update(data["metadata"])
    if provider:
        metadata["provider"] = provider
    if dropped:
        logger.warning(
            f"Dropped {len(dropped)} dependency reference(s) to unknown steps "
            f"from {provider or 'model'} plan"
        )
        metadata["dropped_dependencies"] = dropped

    return Plan(
        id=new_plan_id(),
        title=_text(data.get("title")),
        description=_text(data.get("description")),
        goal=_text(data.get("goal")) or goal,
        steps=steps,
        created_at=now,
        updated_at=now,
        metadata=metadata,
    )
