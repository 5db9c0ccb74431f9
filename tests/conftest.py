from __future__ import annotations

import json
from typing import Any, Callable, Sequence

import httpx
import pytest

from layr.llm.base import ProviderClient
from layr.schemas import ConversationMessage, Plan, ProviderConfig, Step, utc_now


WIRE_PLAN: dict[str, Any] = {
    "title": "REST API",
    "description": "Build a small REST API",
    "tasks": [
        {
            "title": "Scaffold project",
            "description": "Create the package layout",
            "status": "todo",
            "priority": "high",
            "estimatedDuration": "1 hour",
            "dependencies": [],
        },
        {
            "title": "Define models",
            "description": "Write the data models",
            "status": "todo",
            "priority": "medium",
            "estimatedDuration": "2 hours",
            "dependencies": [1],
        },
        {
            "title": "Add endpoints",
            "description": "Implement CRUD routes",
            "status": "todo",
            "priority": "medium",
            "estimatedDuration": "3 hours",
            "dependencies": [2],
        },
    ],
}


def chat_body(content: str | None, model: str = "test-model") -> dict[str, Any]:
    return {
        "id": "cmpl-test",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
    }


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeProvider(ProviderClient):
    """Scripted provider: raises `error` if set, otherwise answers."""

    def __init__(self, name: str, error: Exception | None = None) -> None:
        self._name = name
        self.error = error
        self.calls: list[tuple[str, Any]] = []
        self.contexts: list[Sequence[ConversationMessage] | None] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return self._name

    async def generate_plan(self, prompt, context=None) -> Plan:
        self.calls.append(("generate", prompt))
        self.contexts.append(context)
        if self.error:
            raise self.error
        return Plan(
            id=f"plan_{self._name}",
            title=f"{self._name} plan",
            goal=prompt,
            steps=[Step(id=1, title="Only step")],
        )

    async def refine_plan(self, plan, feedback, context=None) -> Plan:
        self.calls.append(("refine", feedback))
        if self.error:
            raise self.error
        return plan.model_copy(update={"title": f"{plan.title} (refined)", "updated_at": utc_now()})

    async def critique(self, plan, context=None) -> str:
        self.calls.append(("critique", plan.id))
        if self.error:
            raise self.error
        return f"{self._name} says: looks reasonable"

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def wire_plan() -> dict[str, Any]:
    return json.loads(json.dumps(WIRE_PLAN))


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def make_provider_config() -> Callable[..., ProviderConfig]:
    def _make(name: str = "mistral", base_url: str = "https://llm.test/v1", **overrides: Any) -> ProviderConfig:
        values: dict[str, Any] = {
            "name": name,
            "api_key": f"{name}-key",
            "base_url": base_url,
            "model": f"{name}-model",
        }
        values.update(overrides)
        return ProviderConfig(**values)

    return _make


@pytest.fixture()
def chat_reply() -> Callable[..., httpx.Response]:
    def _reply(content: str | None, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json=chat_body(content))

    return _reply


@pytest.fixture()
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture()
def chat_envelope() -> Callable[..., dict[str, Any]]:
    return chat_body
