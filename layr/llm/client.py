"""Generic chat-completions provider client.

Mistral, DeepSeek and OpenAI all expose the same OpenAI-compatible
endpoint, so one client serves every vendor; the differences live in
ProviderConfig (endpoint, model, credentials) and `layr.llm.vendors`.

Every call goes through RetryPolicy. Plan responses are then sanitized,
validated and stamped before they leave this module.
"""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from layr.agent.normalize import build_plan
from layr.agent.prompts import (
    CRITIQUE_REQUEST,
    PLAN_SYSTEM_PROMPT,
    build_messages,
    format_critique_prompt,
    format_refine_prompt,
)
from layr.agent.sanitizer import parse_plan_json
from layr.agent.validator import validate_plan
from layr.errors import (
    ConfigurationError,
    ParseError,
    TransportError,
    ValidationError,
    classify_status,
)
from layr.llm.base import ProviderClient
from layr.llm.retry import RetryPolicy
from layr.schemas import (
    ConversationMessage,
    LLMMessage,
    LLMResponse,
    Plan,
    ProviderConfig,
    utc_now,
)


logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"
CRITIQUE_TEMPERATURE = 0.8


def _error_detail(response: httpx.Response) -> str:
    """Best-effort error message from a failed response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase


class ChatCompletionClient(ProviderClient):
    """Plan provider backed by an OpenAI-compatible chat-completions API."""

    def __init__(
        self,
        config: ProviderConfig,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not config.api_key:
            raise ConfigurationError(f"{config.name} API key not configured", provider=config.name)

        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return self.config.name

    async def chat_completion(
        self,
        messages: list[LLMMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Send a chat completion request under the retry policy.

        Raises:
            TransportError: (or a subclass) once retries are exhausted or the
                request is rejected
            ParseError: the response body is not a JSON object
        """
        model = self.config.model
        payload = self._build_request(
            messages=messages,
            model=model,
            temperature=self.config.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.config.max_tokens,
        )

        async def send() -> httpx.Response:
            try:
                response = await self._client.post(CHAT_COMPLETIONS_PATH, json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise classify_status(
                    status,
                    f"HTTP {status}: {_error_detail(e.response)}",
                    provider=self.provider_name,
                ) from e
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"Request timed out after {self.config.timeout:.0f}s",
                    provider=self.provider_name,
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(f"Request failed: {e}", provider=self.provider_name) from e
            return response

        start_time = time.perf_counter()
        response = await self.retry_policy.run(send, provider=self.provider_name)
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        try:
            data = response.json()
        except (ValueError, RecursionError) as e:
            raise ParseError(f"Response body is not JSON: {e}", provider=self.provider_name) from e
        if not isinstance(data, dict):
            raise ParseError("Response body is not a JSON object", provider=self.provider_name)

        choices = data.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices else {}
        message = choice.get("message") if isinstance(choice, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        finish_reason = choice.get("finish_reason") if isinstance(choice, dict) else None

        logger.debug(f"{self.provider_name}/{model} answered in {latency_ms}ms")

        return LLMResponse(
            content=content if isinstance(content, str) else None,
            model=str(data.get("model") or model),
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
            raw_response=data,
        )

    def _require_content(self, response: LLMResponse) -> str:
        if not response.content or not response.content.strip():
            raise ParseError("No content in response", provider=self.provider_name)
        return response.content

    def _plan_from_content(self, content: str, goal: str) -> Plan:
        data = parse_plan_json(content, provider=self.provider_name)
        validate_plan(data, provider=self.provider_name)
        try:
            return build_plan(data, goal=goal, provider=self.provider_name)
        except (ValueError, TypeError, OverflowError) as e:
            raise ValidationError(f"Invalid plan structure: {e}", provider=self.provider_name) from e

    async def generate_plan(
        self,
        prompt: str,
        context: Sequence[ConversationMessage] | None = None,
    ) -> Plan:
        messages = build_messages(PLAN_SYSTEM_PROMPT, prompt, context)
        response = await self.chat_completion(messages)
        plan = self._plan_from_content(self._require_content(response), goal=prompt)
        logger.info(f"{self.provider_name} generated plan '{plan.title}' with {len(plan.steps)} steps")
        return plan

    async def refine_plan(
        self,
        plan: Plan,
        feedback: str,
        context: Sequence[ConversationMessage] | None = None,
    ) -> Plan:
        messages = build_messages(format_refine_prompt(plan, feedback), feedback, context)
        response = await self.chat_completion(messages)
        refined = self._plan_from_content(self._require_content(response), goal=plan.goal)
        logger.info(f"{self.provider_name} refined plan {plan.id}")
        return refined.model_copy(
            update={
                "id": plan.id,
                "goal": plan.goal or refined.goal,
                "created_at": plan.created_at,
                "updated_at": utc_now(),
            }
        )

    async def critique(
        self,
        plan: Plan,
        context: Sequence[ConversationMessage] | None = None,
    ) -> str:
        messages = build_messages(format_critique_prompt(plan), CRITIQUE_REQUEST, context)
        response = await self.chat_completion(messages, temperature=CRITIQUE_TEMPERATURE)
        return self._require_content(response).strip()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
