"""Planning coordinator.

Turns "zero or more possibly failing providers" into "always produces a
plan" for one logical operation:

    NotStarted -> PrimaryAttempted -> (FallbackAttempted)? -> (HeuristicUsed)? -> Done

The coordinator reads no environment variables; it is built from an
explicit PlannerConfig. Sessions are only held for the duration of one
operation and written back through the SessionStore when one is given.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from layr.agent.heuristic import heuristic_critique, heuristic_plan
from layr.agent.memory import (
    SessionStore,
    append_message,
    new_session,
    record_interaction,
    record_plan,
)
from layr.config import KeyLookup, PlannerConfig, Settings, build_planner_config
from layr.errors import AllProvidersFailed, ConfigurationError, LayrError
from layr.llm.base import ProviderClient
from layr.llm.retry import Sleep
from layr.llm.router import ProviderRouter, RouteResult
from layr.schemas import CritiqueOutcome, Plan, PlanOutcome, Session


logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlanningCoordinator:
    """Runs generate / refine / critique across the provider fallback chain."""

    def __init__(
        self,
        config: PlannerConfig,
        store: SessionStore | None = None,
        router: ProviderRouter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
    ):
        self.config = config
        self.store = store
        self.router = router or ProviderRouter.from_config(config, transport=transport, sleep=sleep)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        key_lookup: KeyLookup | None = None,
        store: SessionStore | None = None,
    ) -> "PlanningCoordinator":
        """Build a coordinator from environment settings and a credential lookup."""
        return cls(build_planner_config(settings, key_lookup), store=store)

    @property
    def available_providers(self) -> list[str]:
        return self.router.available_providers

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, title: str | None = None, description: str | None = None) -> Session:
        session = new_session(title, description)
        await self._save(session)
        return session

    async def load_session(self, session_id: str) -> Session:
        if self.store is None:
            raise ValueError("No session store configured")
        session = await self.store.load(session_id)
        if session is None:
            raise ValueError(f"Session not found: {session_id}")
        return session

    async def _save(self, session: Session | None) -> None:
        if session is not None and self.store is not None:
            await self.store.save(session)

    # =========================================================================
    # Fallback chain
    # =========================================================================

    async def _attempt(
        self,
        operation: str,
        call: Callable[[ProviderClient], Awaitable[T]],
        provider: str | None,
    ) -> tuple[RouteResult[T] | None, list[str]]:
        """Run the provider chain.

        Returns the route result, or None (plus the failures seen) when the
        caller should use its heuristic fallback.
        """
        try:
            return await self.router.run(operation, call, provider), []
        except AllProvidersFailed as e:
            failures = [str(error) for _, error in e.failures]
            if not self.config.heuristic_fallback:
                logger.error(f"{operation.capitalize()} failed on every provider: {e}")
                raise e.last_error from e
            logger.info(f"All providers failed for {operation}; using heuristic fallback")
            return None, failures
        except ConfigurationError:
            # A provider the caller named must never be silently replaced.
            if provider is not None or not self.config.heuristic_fallback:
                raise
            logger.info(f"No AI providers configured for {operation}; using heuristic fallback")
            return None, []

    async def _fail(self, session: Session | None, action: str, error: LayrError) -> None:
        if session is not None:
            append_message(session, "assistant", f"Failed to {action}: {error}")
            await self._save(session)

    # =========================================================================
    # Operations
    # =========================================================================

    async def generate_plan(
        self,
        goal: str,
        provider: str | None = None,
        session: Session | None = None,
    ) -> PlanOutcome:
        """Generate a plan for `goal`.

        Args:
            goal: Free-text goal
            provider: Provider to try first; must be configured if given
            session: Session whose conversation is used as context and
                which records the outcome

        Returns:
            PlanOutcome describing the plan and how it was produced

        Raises:
            ConfigurationError: `provider` is named but not configured
            LayrError: every provider failed and the heuristic is disabled
        """
        context = list(session.conversation) if session else None
        if session is not None:
            append_message(session, "user", goal)

        try:
            result, failures = await self._attempt(
                "plan generation",
                lambda client: client.generate_plan(goal, context),
                provider,
            )
        except LayrError as e:
            await self._fail(session, "generate plan", e)
            raise

        if result is None:
            outcome = PlanOutcome(plan=heuristic_plan(goal), heuristic_used=True, failures=failures)
            summary = f"Generated plan: {outcome.plan.title} (local heuristic fallback)"
        else:
            outcome = PlanOutcome(
                plan=result.value,
                provider=result.provider,
                fallback_used=result.fallback_used,
                failures=[str(error) for _, error in result.failures],
            )
            summary = f"Generated plan: {outcome.plan.title}"
            if result.fallback_used:
                summary += f" (fallback provider {result.provider})"

        if session is not None:
            append_message(session, "assistant", summary)
            record_plan(session, outcome.plan, outcome.provider)
            await self._save(session)
        return outcome

    async def refine_plan(
        self,
        feedback: str,
        plan: Plan | None = None,
        provider: str | None = None,
        session: Session | None = None,
    ) -> PlanOutcome:
        """Refine `plan` (or the session's current plan) with `feedback`.

        When no provider can refine it, the plan is returned unchanged and
        the outcome is flagged as heuristic.
        """
        plan = plan or (session.current_plan if session else None)
        if plan is None:
            raise ValueError("No plan to refine")

        context = list(session.conversation) if session else None
        if session is not None:
            append_message(session, "user", f"Refine plan: {feedback}")

        try:
            result, failures = await self._attempt(
                "plan refinement",
                lambda client: client.refine_plan(plan, feedback, context),
                provider,
            )
        except LayrError as e:
            await self._fail(session, "refine plan", e)
            raise

        if result is None:
            outcome = PlanOutcome(plan=plan, heuristic_used=True, failures=failures)
            summary = f"Kept plan unchanged: {plan.title} (no provider could refine it)"
        else:
            outcome = PlanOutcome(
                plan=result.value,
                provider=result.provider,
                fallback_used=result.fallback_used,
                failures=[str(error) for _, error in result.failures],
            )
            summary = f"Refined plan: {outcome.plan.title}"

        if session is not None:
            append_message(session, "assistant", summary)
            if result is None:
                record_interaction(session, None)
            else:
                record_plan(session, outcome.plan, outcome.provider)
            await self._save(session)
        return outcome

    async def critique(
        self,
        plan: Plan | None = None,
        provider: str | None = None,
        session: Session | None = None,
    ) -> CritiqueOutcome:
        """Critique `plan` (or the session's current plan)."""
        plan = plan or (session.current_plan if session else None)
        if plan is None:
            raise ValueError("No plan to critique")

        context = list(session.conversation) if session else None
        if session is not None:
            append_message(session, "user", "Request expert critique of current plan")

        try:
            result, failures = await self._attempt(
                "plan critique",
                lambda client: client.critique(plan, context),
                provider,
            )
        except LayrError as e:
            await self._fail(session, "critique plan", e)
            raise

        if result is None:
            outcome = CritiqueOutcome(critique=heuristic_critique(plan), heuristic_used=True, failures=failures)
        else:
            outcome = CritiqueOutcome(
                critique=result.value,
                provider=result.provider,
                fallback_used=result.fallback_used,
                failures=[str(error) for _, error in result.failures],
            )

        if session is not None:
            append_message(session, "assistant", f"Expert critique: {outcome.critique}")
            record_interaction(session, outcome.provider)
            await self._save(session)
        return outcome

    async def aclose(self) -> None:
        await self.router.aclose()

    async def __aenter__(self) -> "PlanningCoordinator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
