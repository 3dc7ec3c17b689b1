"""Unit tests for the retry policy"""

import pytest

from ledger_sync.domain.exceptions import (
    AbsenceError,
    AuthorizationError,
    TransientServiceError,
    ValidationFailure,
)
from ledger_sync.infrastructure.clients.retry import RetryPolicy, execute_with_retry


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_retries=2, backoff_base_ms=1000, backoff_cap_ms=30000)


class FlakyOperation:
    """Raises the queued errors in order, then returns 'ok'"""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def test_transient_failures_back_off_exponentially(policy: RetryPolicy):
    failure = TransientServiceError("unavailable", 503)

    first = policy.decide(failure, 1)
    second = policy.decide(failure, 2)
    third = policy.decide(failure, 3)

    assert (first.retry, first.delay_ms) == (True, 2000)
    assert (second.retry, second.delay_ms) == (True, 4000)
    assert third.retry is False


def test_backoff_is_capped(policy: RetryPolicy):
    assert policy.backoff_ms(4) == 16000
    assert policy.backoff_ms(5) == 30000
    assert policy.backoff_ms(12) == 30000


@pytest.mark.parametrize(
    "failure",
    [
        AbsenceError("not found", 404),
        AuthorizationError("forbidden", 403),
        ValidationFailure("amount must be positive", 400),
    ],
)
def test_terminal_failures_are_not_retried(policy: RetryPolicy, failure):
    assert policy.decide(failure, 1).retry is False


async def test_execute_gives_up_after_max_retries(policy: RetryPolicy, fake_sleep, sleeps):
    operation = FlakyOperation(*(TransientServiceError("down", 503) for _ in range(5)))

    with pytest.raises(TransientServiceError):
        await execute_with_retry(operation, policy, fake_sleep)

    assert operation.calls == 3
    assert sleeps == [2.0, 4.0]


async def test_execute_recovers_from_one_transient_failure(policy: RetryPolicy, fake_sleep, sleeps):
    operation = FlakyOperation(TransientServiceError("timeout"))

    assert await execute_with_retry(operation, policy, fake_sleep) == "ok"
    assert operation.calls == 2
    assert sleeps == [2.0]


async def test_execute_does_not_retry_absence(policy: RetryPolicy, fake_sleep, sleeps):
    operation = FlakyOperation(AbsenceError("no debt record", 404))

    with pytest.raises(AbsenceError):
        await execute_with_retry(operation, policy, fake_sleep)

    assert operation.calls == 1
    assert sleeps == []


async def test_zero_retries_policy(fake_sleep, sleeps):
    operation = FlakyOperation(TransientServiceError("down", 502))

    with pytest.raises(TransientServiceError):
        await execute_with_retry(operation, RetryPolicy(max_retries=0), fake_sleep)

    assert operation.calls == 1
    assert sleeps == []
