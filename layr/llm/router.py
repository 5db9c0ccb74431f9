"""Provider router with bounded fallback.

Strategy:
- Use the provider the caller named, else the configured default
- On failure: try exactly one alternate configured provider
- Providers are tried strictly in sequence, never concurrently
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, Mapping, TypeVar

import httpx

from layr.errors import AllProvidersFailed, ConfigurationError, LayrError
from layr.llm.base import ProviderClient
from layr.llm.client import ChatCompletionClient
from layr.llm.retry import RetryPolicy, Sleep

if TYPE_CHECKING:
    from layr.config import PlannerConfig


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Primary plus one alternate.
MAX_PROVIDER_ATTEMPTS = 2


@dataclass
class RouteResult(Generic[T]):
    """Value returned by the provider that succeeded, plus earlier failures."""
    value: T
    provider: str
    fallback_used: bool = False
    failures: list[tuple[str, LayrError]] = field(default_factory=list)


class ProviderRouter:
    """Routes plan operations to providers with fallback logic."""

    def __init__(
        self,
        clients: Mapping[str, ProviderClient],
        default_provider: str | None = None,
    ):
        # Insertion order is the preference order for alternates.
        self._clients: dict[str, ProviderClient] = dict(clients)
        if default_provider in self._clients:
            self.default_provider = default_provider
        else:
            self.default_provider = next(iter(self._clients), None)

    @classmethod
    def from_config(
        cls,
        config: PlannerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
    ) -> "ProviderRouter":
        """Create one ChatCompletionClient per configured provider."""
        clients: dict[str, ProviderClient] = {}
        for provider in config.providers:
            clients[provider.name] = ChatCompletionClient(
                provider,
                retry_policy=RetryPolicy(config.retry, sleep=sleep),
                transport=transport,
            )
        return cls(clients, default_provider=config.default_provider)

    @property
    def available_providers(self) -> list[str]:
        return list(self._clients)

    def get_client(self, provider: str) -> ProviderClient:
        """Get the client for a provider the caller named explicitly."""
        try:
            return self._clients[provider]
        except KeyError:
            raise ConfigurationError(
                f"{provider} client not available. Check your API key configuration.",
                provider=provider,
            ) from None

    def resolve_chain(self, provider: str | None = None) -> list[str]:
        """Ordered providers to attempt for one operation.

        A named provider that is not configured raises ConfigurationError;
        no other provider is substituted for it.
        """
        if provider is not None:
            self.get_client(provider)
            primary = provider
        else:
            primary = self.default_provider
        if primary is None:
            return []
        alternates = [name for name in self._clients if name != primary]
        return ([primary] + alternates)[:MAX_PROVIDER_ATTEMPTS]

    async def run(
        self,
        operation: str,
        call: Callable[[ProviderClient], Awaitable[T]],
        provider: str | None = None,
    ) -> RouteResult[T]:
        """Run `call` against the primary provider, then one alternate.

        Args:
            operation: Name used in log messages (e.g. "plan generation")
            call: Coroutine factory taking the client to use
            provider: Explicitly requested provider, if any

        Returns:
            RouteResult from the first provider that succeeded

        Raises:
            ConfigurationError: nothing is configured, or `provider` is unknown
            AllProvidersFailed: every attempted provider raised a LayrError
        """
        chain = self.resolve_chain(provider)
        if not chain:
            raise ConfigurationError("No LLM providers configured")

        failures: list[tuple[str, LayrError]] = []
        for position, name in enumerate(chain):
            if position:
                logger.info(f"Trying fallback provider for {operation}: {name}")
            try:
                value = await call(self._clients[name])
            except LayrError as e:
                if e.provider is None:
                    e.provider = name
                failures.append((name, e))
                logger.warning(f"{name} {operation} failed: {e}")
                continue

            if position:
                logger.info(f"{operation.capitalize()} succeeded using fallback provider {name}")
            else:
                logger.info(f"{operation.capitalize()} succeeded using {name}")
            return RouteResult(value=value, provider=name, fallback_used=position > 0, failures=failures)

        raise AllProvidersFailed(failures)

    async def aclose(self) -> None:
        """Close all clients."""
        for client in self._clients.values():
            await client.aclose()
