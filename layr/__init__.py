"""Layr: turn a free-text goal into a dependency-ordered plan.

Plans come from OpenAI-compatible LLM providers with retry and a bounded
fallback chain, or from a deterministic local heuristic when no provider
is usable.
"""

from layr.agent.coordinator import PlanningCoordinator
from layr.config import PlannerConfig, Settings, build_planner_config, get_settings
from layr.schemas import CritiqueOutcome, Plan, PlanOutcome, Session, Step

__version__ = "0.1.0"

__all__ = [
    "CritiqueOutcome",
    "Plan",
    "PlanOutcome",
    "PlannerConfig",
    "PlanningCoordinator",
    "Session",
    "Settings",
    "Step",
    "build_planner_config",
    "get_settings",
]
