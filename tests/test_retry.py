from __future__ import annotations

import pytest

from layr.errors import (
    ClientRejected,
    ParseError,
    QuotaExceeded,
    RateLimited,
    ServiceUnavailable,
    TransportError,
    classify_status,
)
from layr.llm.retry import RetryPolicy
from layr.schemas import RetryConfig


BACKOFF = RetryConfig(max_retries=5, base_delay=2.0, max_delay=30.0, backoff_factor=2.0)


def test_rate_limit_delays_grow_geometrically_and_cap() -> None:
    policy = RetryPolicy(BACKOFF)
    error = RateLimited("slow down")

    delays = [policy.compute_delay(attempt, error) for attempt in range(4)]

    assert delays == [6.0, 12.0, 24.0, 30.0]


@pytest.mark.parametrize(
    "error, expected",
    [
        (QuotaExceeded("quota"), [4.0, 8.0, 16.0]),
        (ServiceUnavailable("down"), [2.0, 4.0, 8.0]),
        (TransportError("reset"), [2.0, 4.0, 8.0]),
    ],
)
def test_failure_class_multipliers(error: TransportError, expected: list[float]) -> None:
    policy = RetryPolicy(BACKOFF)

    assert [policy.compute_delay(attempt, error) for attempt in range(3)] == expected


@pytest.mark.parametrize(
    "error",
    [RateLimited("r"), QuotaExceeded("q"), ServiceUnavailable("s"), TransportError("t")],
)
def test_delays_are_monotonic_and_bounded(error: TransportError) -> None:
    policy = RetryPolicy(BACKOFF)

    delays = [policy.compute_delay(attempt, error) for attempt in range(10)]

    assert delays == sorted(delays)
    assert max(delays) <= BACKOFF.max_delay


def test_next_delay_stops_for_non_retryable_and_last_attempt() -> None:
    policy = RetryPolicy(RetryConfig(max_retries=2))

    assert policy.next_delay(0, ClientRejected("bad request")) is None
    assert policy.next_delay(0, ParseError("not json")) is None
    assert policy.next_delay(1, ServiceUnavailable("down")) is not None
    assert policy.next_delay(2, ServiceUnavailable("down")) is None


@pytest.mark.asyncio
async def test_run_retries_until_success(sleep_recorder) -> None:
    policy = RetryPolicy(BACKOFF, sleep=sleep_recorder)
    outcomes = [RateLimited("429"), RateLimited("429"), "ok"]

    async def operation() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert await policy.run(operation, provider="mistral") == "ok"
    assert sleep_recorder.delays == [6.0, 12.0]


@pytest.mark.asyncio
async def test_run_raises_last_error_after_exhausting_attempts(sleep_recorder) -> None:
    policy = RetryPolicy(RetryConfig(max_retries=2, base_delay=1.0), sleep=sleep_recorder)
    calls = 0

    async def operation() -> None:
        nonlocal calls
        calls += 1
        raise ServiceUnavailable(f"down #{calls}", status_code=503)

    with pytest.raises(ServiceUnavailable) as exc_info:
        await policy.run(operation)

    assert calls == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.message == "down #3"
    assert sleep_recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_rejection_is_not_retried(sleep_recorder) -> None:
    policy = RetryPolicy(BACKOFF, sleep=sleep_recorder)
    calls = 0

    async def operation() -> None:
        nonlocal calls
        calls += 1
        raise ClientRejected("unauthorized", status_code=401)

    with pytest.raises(ClientRejected):
        await policy.run(operation)

    assert calls == 1
    assert sleep_recorder.delays == []


@pytest.mark.parametrize(
    "status, error_cls",
    [
        (429, RateLimited),
        (402, QuotaExceeded),
        (502, ServiceUnavailable),
        (503, ServiceUnavailable),
        (400, ClientRejected),
        (401, ClientRejected),
        (404, ClientRejected),
        (500, TransportError),
        (504, TransportError),
    ],
)
def test_classify_status(status: int, error_cls: type[TransportError]) -> None:
    error = classify_status(status, "boom", provider="deepseek")

    assert type(error) is error_cls
    assert error.status_code == status
    assert error.provider == "deepseek"
