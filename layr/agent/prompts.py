"""Prompt templates for plan generation, refinement and critique.

Prompts are deterministic: the same plan and feedback always produce the
same text, so provider behaviour is the only variable between attempts.
"""

from __future__ import annotations

import json
from typing import Sequence

from layr.schemas import ConversationMessage, LLMMessage, Plan


# =============================================================================
# Generate
# =============================================================================

PLAN_SYSTEM_PROMPT = """You are an expert planning assistant. Generate a detailed, structured plan based on the user's request.

CRITICAL: Your response must be valid JSON in exactly this format:
{
  "title": "Clear, actionable plan title",
  "description": "Brief description of what this plan accomplishes",
  "tasks": [
    {
      "title": "Task title",
      "description": "Detailed task description",
      "status": "todo",
      "priority": "high|medium|low",
      "estimatedDuration": "2 hours",
      "dependencies": []
    }
  ]
}

Rules:
- Break down complex tasks into smaller, manageable subtasks
- Set realistic priorities and time estimates
- "dependencies" lists the 1-based positions of earlier tasks that must finish first
- Never make tasks depend on each other in a cycle
- Ensure each task is actionable and specific
- Respond ONLY with valid JSON, no additional text"""


# =============================================================================
# Refine
# =============================================================================

REFINE_SYSTEM_PROMPT = """You are refining an existing plan based on user feedback.

Current plan:
{plan_json}

User feedback: {feedback}

CRITICAL: Respond with valid JSON in exactly this format:
{{
  "title": "Updated plan title",
  "description": "Updated description",
  "tasks": [
    {{
      "id": 1,
      "title": "Task title",
      "description": "Task description",
      "status": "todo|in-progress|completed",
      "priority": "high|medium|low",
      "estimatedDuration": "time estimate",
      "dependencies": []
    }}
  ]
}}

Task IDs must be unique and "dependencies" must only reference IDs of other tasks in the plan.
Modify the plan based on the feedback. Respond ONLY with valid JSON."""


# =============================================================================
# Critique
# =============================================================================

CRITIQUE_SYSTEM_PROMPT = """You are an expert consultant reviewing a project plan. Provide constructive feedback.

Plan to review:
{plan_json}

Provide a thoughtful critique covering:
- Completeness and feasibility
- Task organization and dependencies
- Time estimates and priorities
- Potential risks or missing elements
- Suggestions for improvement

Be specific and actionable in your feedback."""

CRITIQUE_REQUEST = "Please provide your expert critique of this plan."


# =============================================================================
# Helper Functions
# =============================================================================

def plan_to_json(plan: Plan) -> str:
    return json.dumps(plan.to_wire(), indent=2, ensure_ascii=False)


def format_refine_prompt(plan: Plan, feedback: str) -> str:
    """Format the refine system prompt with the current plan."""
    return REFINE_SYSTEM_PROMPT.format(plan_json=plan_to_json(plan), feedback=feedback)


def format_critique_prompt(plan: Plan) -> str:
    """Format the critique system prompt with the plan under review."""
    return CRITIQUE_SYSTEM_PROMPT.format(plan_json=plan_to_json(plan))


def build_messages(
    system_prompt: str,
    user_content: str,
    context: Sequence[ConversationMessage] | None = None,
) -> list[LLMMessage]:
    """System prompt, then conversation context, then the new user turn."""
    messages = [LLMMessage(role="system", content=system_prompt)]
    for message in context or []:
        messages.append(LLMMessage(role=message.role, content=message.content))
    messages.append(LLMMessage(role="user", content=user_content))
    return messages
