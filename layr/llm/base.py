"""Abstract base class for plan providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from layr.schemas import ConversationMessage, LLMMessage, Plan


class ProviderClient(ABC):
    """Capability set every plan provider implements.

    The coordinator depends only on this interface. Implementations raise
    typed errors (see `layr.errors`) and never substitute a made-up plan.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider key (e.g., 'mistral', 'deepseek')."""
        ...

    @abstractmethod
    async def generate_plan(
        self,
        prompt: str,
        context: Sequence[ConversationMessage] | None = None,
    ) -> Plan:
        """Generate a new plan for a free-text goal.

        Args:
            prompt: The user's goal
            context: Conversation history to include before the prompt

        Returns:
            A validated Plan with stamped IDs and timestamps
        """
        ...

    @abstractmethod
    async def refine_plan(
        self,
        plan: Plan,
        feedback: str,
        context: Sequence[ConversationMessage] | None = None,
    ) -> Plan:
        """Return a new Plan that applies `feedback` to `plan`.

        The result keeps the original plan's `id` and `created_at`.
        """
        ...

    @abstractmethod
    async def critique(
        self,
        plan: Plan,
        context: Sequence[ConversationMessage] | None = None,
    ) -> str:
        """Return a free-text review of `plan`."""
        ...

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _build_request(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Build the chat-completions request payload."""
        return {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
