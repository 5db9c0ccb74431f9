"""Pydantic schemas for the planning core.

These schemas define the contracts between:
- The coordinator and its callers (Plan, Session, outcomes)
- The coordinator and provider clients (ProviderConfig, RetryConfig)
- Provider clients and the chat-completions HTTP APIs (LLMMessage, LLMResponse)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


StepId = int | str


# =============================================================================
# Enums
# =============================================================================

class TaskStatus(str, Enum):
    """Progress of a single step."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Complexity(str, Enum):
    """Estimated complexity of a step."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# =============================================================================
# Plan Schemas
# =============================================================================

class Step(BaseModel):
    """Atomic unit of work inside a plan."""
    id: StepId = Field(..., description="Unique within the owning plan")
    title: str = Field(..., description="Short step title")
    description: str = Field(default="", description="What the step does")
    dependencies: list[StepId] = Field(default_factory=list, description="IDs of steps this one waits on")
    status: TaskStatus = Field(default=TaskStatus.TODO)
    priority: Priority = Field(default=Priority.MEDIUM)
    complexity: Complexity | None = None
    estimated_duration: str | None = Field(default=None, description="Free-text estimate, e.g. '2 hours'")
    estimated_time_min: int | None = Field(default=None, ge=0)


class Plan(BaseModel):
    """A goal broken down into a dependency-ordered set of steps."""
    id: str
    title: str
    description: str = ""
    goal: str = ""
    steps: list[Step] = Field(default_factory=list)
    status: PlanStatus = Field(default=PlanStatus.DRAFT)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self, include_ids: bool = True) -> dict[str, Any]:
        """Render the plan in the JSON shape the models are asked to emit."""
        tasks = []
        for step in self.steps:
            task: dict[str, Any] = {
                "title": step.title,
                "description": step.description,
                "status": step.status.value,
                "priority": step.priority.value,
                "estimatedDuration": step.estimated_duration or "",
                "dependencies": list(step.dependencies),
            }
            if include_ids:
                task = {"id": step.id, **task}
            tasks.append(task)
        return {
            "title": self.title,
            "description": self.description,
            "tasks": tasks,
        }


# =============================================================================
# Conversation / Session Schemas
# =============================================================================

class ConversationMessage(BaseModel):
    """One entry in the append-only conversation history."""
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class SessionMetadata(BaseModel):
    llm_provider: str | None = None
    total_interactions: int = 0


class Session(BaseModel):
    """Conversation history plus the plans generated in it.

    Durable storage belongs to a SessionStore; the coordinator only holds
    a session for the duration of one operation.
    """
    id: str
    title: str = "New Planning Session"
    description: str = "A new planning session"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    conversation: list[ConversationMessage] = Field(default_factory=list)
    plans: list[Plan] = Field(default_factory=list)
    current_plan: Plan | None = None
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)


# =============================================================================
# Provider Configuration
# =============================================================================

class ProviderConfig(BaseModel):
    """Connection settings for one chat-completions provider."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Provider key, e.g. 'mistral'")
    api_key: str = Field(..., repr=False)
    base_url: str
    model: str
    max_tokens: int = Field(default=4000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")


class RetryConfig(BaseModel):
    """Backoff parameters. Delays are in seconds."""
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=5, ge=0)
    base_delay: float = Field(default=2.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)


# =============================================================================
# LLM Schemas
# =============================================================================

class LLMMessage(BaseModel):
    """A single message in an LLM conversation."""
    role: Literal["system", "user", "assistant"] = Field(...)
    content: str = Field(...)


class LLMResponse(BaseModel):
    """Response from an LLM provider."""
    content: str | None = None
    model: str
    usage: dict[str, int] = Field(default_factory=dict)
    finish_reason: str | None = None
    raw_response: dict[str, Any] | None = None


# =============================================================================
# Coordinator Outcomes
# =============================================================================

class PlanOutcome(BaseModel):
    """Result of a generate/refine operation, including how it was produced."""
    plan: Plan
    provider: str | None = Field(default=None, description="Provider that produced the plan; None for heuristic")
    fallback_used: bool = Field(default=False, description="An alternate provider produced the plan")
    heuristic_used: bool = Field(default=False, description="No provider succeeded; local fallback used")
    failures: list[str] = Field(default_factory=list, description="Errors from providers that were tried and failed")


class CritiqueOutcome(BaseModel):
    """Result of a critique operation."""
    critique: str
    provider: str | None = None
    fallback_used: bool = False
    heuristic_used: bool = False
    failures: list[str] = Field(default_factory=list)
