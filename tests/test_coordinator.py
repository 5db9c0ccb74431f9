from __future__ import annotations

import json

import httpx
import pytest

from layr.agent.coordinator import PlanningCoordinator
from layr.agent.memory import InMemorySessionStore
from layr.agent.validator import validate_plan
from layr.config import PlannerConfig
from layr.errors import ConfigurationError, ServiceUnavailable
from layr.llm.router import ProviderRouter
from layr.schemas import Plan, RetryConfig, Step


def _coordinator(*providers, heuristic: bool = True, store=None) -> PlanningCoordinator:
    router = ProviderRouter({p.provider_name: p for p in providers})
    config = PlannerConfig(heuristic_fallback=heuristic)
    return PlanningCoordinator(config, store=store, router=router)


def _existing_plan() -> Plan:
    return Plan(
        id="plan_existing",
        title="Existing plan",
        goal="Ship it",
        steps=[Step(id=1, title="Write code", description="Implement"), Step(id=2, title="Ship", dependencies=[1])],
    )


# =============================================================================
# Heuristic fallback
# =============================================================================

@pytest.mark.asyncio
async def test_no_providers_returns_heuristic_plan() -> None:
    coordinator = PlanningCoordinator(PlannerConfig())

    outcome = await coordinator.generate_plan("Build a REST API")

    plan = outcome.plan
    assert outcome.heuristic_used is True
    assert outcome.provider is None
    assert plan.title == "Plan for: Build a REST API"
    assert [step.id for step in plan.steps] == [1, 2, 3, 4]
    assert [step.dependencies for step in plan.steps] == [[], [1], [2], [3]]
    assert plan.id.startswith("local-fallback-")
    validate_plan(plan.to_wire())


@pytest.mark.asyncio
async def test_both_providers_failing_falls_back_to_heuristic(fake_provider) -> None:
    coordinator = _coordinator(
        fake_provider("mistral", error=ServiceUnavailable("down", status_code=503)),
        fake_provider("deepseek", error=ServiceUnavailable("down", status_code=503)),
    )

    outcome = await coordinator.generate_plan("Write a CLI")

    assert outcome.heuristic_used is True
    assert outcome.plan.title == "Plan for: Write a CLI"
    assert len(outcome.failures) == 2
    assert "mistral" in outcome.failures[0]
    assert "deepseek" in outcome.failures[1]


@pytest.mark.asyncio
async def test_heuristic_disabled_raises_last_error(fake_provider) -> None:
    coordinator = _coordinator(
        fake_provider("mistral", error=ServiceUnavailable("primary down")),
        fake_provider("deepseek", error=ServiceUnavailable("secondary down")),
        heuristic=False,
    )

    with pytest.raises(ServiceUnavailable) as exc_info:
        await coordinator.generate_plan("Write a CLI")

    assert exc_info.value.provider == "deepseek"
    assert "secondary down" in str(exc_info.value)


@pytest.mark.asyncio
async def test_heuristic_disabled_without_providers_raises_configuration_error() -> None:
    coordinator = PlanningCoordinator(PlannerConfig(heuristic_fallback=False))

    with pytest.raises(ConfigurationError):
        await coordinator.generate_plan("Write a CLI")


@pytest.mark.asyncio
async def test_named_unconfigured_provider_is_not_substituted(fake_provider) -> None:
    mistral = fake_provider("mistral")
    store = InMemorySessionStore()
    coordinator = _coordinator(mistral, store=store)
    session = await coordinator.create_session()

    with pytest.raises(ConfigurationError):
        await coordinator.generate_plan("Write a CLI", provider="openai", session=session)

    assert mistral.calls == []
    saved = await store.load(session.id)
    assert saved.conversation[-1].role == "assistant"
    assert saved.conversation[-1].content.startswith("Failed to generate plan:")
    assert saved.plans == []


# =============================================================================
# Provider paths
# =============================================================================

@pytest.mark.asyncio
async def test_fallback_provider_result_is_reported(fake_provider) -> None:
    coordinator = _coordinator(
        fake_provider("mistral", error=ServiceUnavailable("down")),
        fake_provider("deepseek"),
    )

    outcome = await coordinator.generate_plan("Write a CLI")

    assert outcome.provider == "deepseek"
    assert outcome.fallback_used is True
    assert outcome.heuristic_used is False
    assert len(outcome.failures) == 1


@pytest.mark.asyncio
async def test_primary_exhausts_retries_then_secondary_called_once(
    make_provider_config, wire_plan, sleep_recorder, chat_reply
) -> None:
    hits = {"mistral.test": 0, "deepseek.test": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        hits[request.url.host] += 1
        if request.url.host == "mistral.test":
            return httpx.Response(503, text="overloaded")
        return chat_reply(json.dumps(wire_plan))

    config = PlannerConfig(
        providers=(
            make_provider_config("mistral", base_url="https://mistral.test/v1"),
            make_provider_config("deepseek", base_url="https://deepseek.test/v1"),
        ),
        default_provider="mistral",
        retry=RetryConfig(max_retries=2),
    )

    async with PlanningCoordinator(
        config, transport=httpx.MockTransport(handler), sleep=sleep_recorder
    ) as coordinator:
        outcome = await coordinator.generate_plan("Build a REST API")

    assert hits == {"mistral.test": 3, "deepseek.test": 1}
    assert sleep_recorder.delays == [2.0, 4.0]
    assert outcome.provider == "deepseek"
    assert outcome.fallback_used is True
    assert outcome.plan.title == "REST API"
    assert "ServiceUnavailable" in outcome.failures[0]


# =============================================================================
# Sessions
# =============================================================================

@pytest.mark.asyncio
async def test_generate_records_conversation_and_plan(fake_provider) -> None:
    mistral = fake_provider("mistral")
    store = InMemorySessionStore()
    coordinator = _coordinator(mistral, store=store)
    session = await coordinator.create_session("Planning", "Try things")

    await coordinator.generate_plan("First goal", session=session)
    await coordinator.generate_plan("Second goal", session=session)

    saved = await coordinator.load_session(session.id)
    assert [m.role for m in saved.conversation] == ["user", "assistant", "user", "assistant"]
    assert saved.conversation[1].content == "Generated plan: mistral plan"
    assert len(saved.plans) == 2
    assert saved.current_plan.goal == "Second goal"
    assert saved.metadata.llm_provider == "mistral"
    assert saved.metadata.total_interactions == 2
    # The second call sees the first exchange, not its own prompt.
    assert [m.content for m in mistral.contexts[1]] == ["First goal", "Generated plan: mistral plan"]


@pytest.mark.asyncio
async def test_heuristic_outcome_is_labelled_in_session() -> None:
    coordinator = PlanningCoordinator(PlannerConfig())
    session = await coordinator.create_session()

    await coordinator.generate_plan("Build a REST API", session=session)

    assert session.conversation[-1].content == (
        "Generated plan: Plan for: Build a REST API (local heuristic fallback)"
    )
    assert session.current_plan.metadata["source"] == "heuristic"


@pytest.mark.asyncio
async def test_load_session_requires_store_and_known_id() -> None:
    without_store = PlanningCoordinator(PlannerConfig())
    with pytest.raises(ValueError, match="No session store"):
        await without_store.load_session("session_x")

    with_store = PlanningCoordinator(PlannerConfig(), store=InMemorySessionStore())
    with pytest.raises(ValueError, match="Session not found"):
        await with_store.load_session("session_x")


# =============================================================================
# Refine / critique
# =============================================================================

@pytest.mark.asyncio
async def test_refine_uses_session_current_plan(fake_provider) -> None:
    coordinator = _coordinator(fake_provider("mistral"))
    session = await coordinator.create_session()
    await coordinator.generate_plan("Write a CLI", session=session)

    outcome = await coordinator.refine_plan("Add tests", session=session)

    assert outcome.plan.title == "mistral plan (refined)"
    assert outcome.plan.id == "plan_mistral"
    assert session.current_plan == outcome.plan
    assert session.conversation[-2].content == "Refine plan: Add tests"
    assert session.conversation[-1].content == "Refined plan: mistral plan (refined)"


@pytest.mark.asyncio
async def test_refine_without_any_plan_is_an_error(fake_provider) -> None:
    coordinator = _coordinator(fake_provider("mistral"))

    with pytest.raises(ValueError, match="No plan to refine"):
        await coordinator.refine_plan("Add tests")


@pytest.mark.asyncio
async def test_refine_keeps_plan_when_no_provider_can_refine(fake_provider) -> None:
    coordinator = _coordinator(fake_provider("mistral", error=ServiceUnavailable("down")))
    plan = _existing_plan()

    outcome = await coordinator.refine_plan("Add tests", plan=plan)

    assert outcome.heuristic_used is True
    assert outcome.plan == plan


@pytest.mark.asyncio
async def test_critique_from_provider(fake_provider) -> None:
    coordinator = _coordinator(fake_provider("mistral"))
    session = await coordinator.create_session()
    session.current_plan = _existing_plan()

    outcome = await coordinator.critique(session=session)

    assert outcome.critique == "mistral says: looks reasonable"
    assert outcome.provider == "mistral"
    assert session.conversation[-1].content == "Expert critique: mistral says: looks reasonable"
    assert session.metadata.total_interactions == 1


@pytest.mark.asyncio
async def test_critique_falls_back_to_structural_review() -> None:
    coordinator = PlanningCoordinator(PlannerConfig())

    outcome = await coordinator.critique(plan=_existing_plan())

    assert outcome.heuristic_used is True
    assert "Existing plan" in outcome.critique
    assert "Longest dependency chain: 2 step(s)." in outcome.critique


@pytest.mark.asyncio
async def test_critique_without_plan_is_an_error() -> None:
    coordinator = PlanningCoordinator(PlannerConfig())

    with pytest.raises(ValueError, match="No plan to critique"):
        await coordinator.critique()


# =============================================================================
# Hostile replies
# =============================================================================

def _two_provider_config(make_provider_config) -> PlannerConfig:
    return PlannerConfig(
        providers=(
            make_provider_config("mistral", base_url="https://mistral.test/v1"),
            make_provider_config("deepseek", base_url="https://deepseek.test/v1"),
        ),
        default_provider="mistral",
        retry=RetryConfig(max_retries=0),
    )


@pytest.mark.asyncio
async def test_non_finite_estimate_still_yields_provider_plan(make_provider_config, chat_reply) -> None:
    content = (
        '{"title": "x", "description": "d", '
        '"tasks": [{"title": "a", "estimatedTimeMin": 1e999, "dependencies": []}]}'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return chat_reply(content)

    async with PlanningCoordinator(
        _two_provider_config(make_provider_config), transport=httpx.MockTransport(handler)
    ) as coordinator:
        outcome = await coordinator.generate_plan("Build a REST API")

    assert outcome.provider == "mistral"
    assert outcome.heuristic_used is False
    assert outcome.plan.steps[0].estimated_time_min is None


@pytest.mark.asyncio
async def test_malformed_replies_from_every_provider_use_heuristic(make_provider_config, chat_reply) -> None:
    replies = {
        "mistral.test": chat_reply('{"title": "x", "tasks": [], "n": NaN}'),
        "deepseek.test": httpx.Response(200, json={"choices": {"0": "not a list"}}),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return replies[request.url.host]

    async with PlanningCoordinator(
        _two_provider_config(make_provider_config), transport=httpx.MockTransport(handler)
    ) as coordinator:
        outcome = await coordinator.generate_plan("Build a REST API")

    assert outcome.heuristic_used is True
    assert outcome.plan.title == "Plan for: Build a REST API"
    assert "ParseError [mistral/parse]" in outcome.failures[0]
    assert "ParseError [deepseek/parse]" in outcome.failures[1]
