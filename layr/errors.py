"""Error taxonomy for plan generation.

Every failure raised by the planning core names the stage it came from:
- transport: the HTTP call to a provider failed (retried where the class allows it)
- parse: the model answered but no JSON object could be extracted
- validation: the JSON parsed but the plan is structurally invalid
- configuration: the caller asked for a provider that is not configured
"""

from __future__ import annotations

from typing import Literal


Stage = Literal["transport", "parse", "validation", "configuration"]


class LayrError(RuntimeError):
    """Base class for all planning errors."""

    stage: Stage = "transport"

    def __init__(self, message: str, *, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        label = type(self).__name__
        if self.provider:
            return f"{label} [{self.provider}/{self.stage}]: {self.message}"
        return f"{label} [{self.stage}]: {self.message}"


# =============================================================================
# Transport
# =============================================================================

class TransportError(LayrError):
    """Network failure, timeout, or an unclassified server error."""

    stage: Stage = "transport"
    retryable: bool = True
    delay_multiplier: float = 1.0

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.attempts = 0


class RateLimited(TransportError):
    """HTTP 429."""

    delay_multiplier = 3.0


class QuotaExceeded(TransportError):
    """HTTP 402 - payment or quota problem on the provider account."""

    delay_multiplier = 2.0


class ServiceUnavailable(TransportError):
    """HTTP 502/503."""

    delay_multiplier = 1.0


class ClientRejected(TransportError):
    """Any other 4xx. The request itself is wrong, so it is never retried."""

    retryable = False


def classify_status(
    status_code: int,
    message: str,
    *,
    provider: str | None = None,
) -> TransportError:
    """Map an HTTP status code to the matching transport error."""
    if status_code == 429:
        error_cls: type[TransportError] = RateLimited
    elif status_code == 402:
        error_cls = QuotaExceeded
    elif status_code in (502, 503):
        error_cls = ServiceUnavailable
    elif 400 <= status_code < 500:
        error_cls = ClientRejected
    else:
        error_cls = TransportError
    return error_cls(message, provider=provider, status_code=status_code)


# =============================================================================
# Response handling
# =============================================================================

class ParseError(LayrError):
    """Model output could not be turned into a JSON object."""

    stage: Stage = "parse"


class ValidationError(LayrError):
    """Parsed plan violates a structural invariant (shape, unique IDs, acyclic)."""

    stage: Stage = "validation"


class ConfigurationError(LayrError):
    """A named provider has no credentials or is unknown."""

    stage: Stage = "configuration"


class AllProvidersFailed(LayrError):
    """Every provider in the fallback chain failed for one operation."""

    def __init__(self, failures: list[tuple[str, LayrError]]):
        self.failures = failures
        last_provider, last_error = failures[-1]
        self.stage = last_error.stage
        tried = ", ".join(name for name, _ in failures)
        super().__init__(
            f"all providers failed ({tried}); last error: {last_error.message}",
            provider=last_provider,
        )

    @property
    def last_error(self) -> LayrError:
        return self.failures[-1][1]
