"""Retry policy for ledger API requests with exponential backoff"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ledger_sync.config import settings
from ledger_sync.domain.exceptions import ApiFailure, FailureKind
from ledger_sync.infrastructure.observability.metrics import retry_counter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Absence is an answer, auth needs the session layer, validation needs the user
TERMINAL_KINDS = frozenset({FailureKind.ABSENCE, FailureKind.AUTHORIZATION, FailureKind.VALIDATION})


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay_ms: int = 0


class RetryPolicy:
    """
    Decide per failed request whether and after how long to retry.

    Retry strategy:
    - 404 (absence), 401/403 and other 4xx: never retried
    - 503, other 5xx, timeouts and transport failures: up to max_retries more attempts
    - Backoff: min(base * 2^failures, cap) → 2000ms, 4000ms, ... capped at 30000ms
    """

    def __init__(
        self,
        max_retries: int | None = None,
        backoff_base_ms: int | None = None,
        backoff_cap_ms: int | None = None,
    ):
        self.max_retries = settings.retry_max_attempts if max_retries is None else max_retries
        self.backoff_base_ms = settings.retry_backoff_base_ms if backoff_base_ms is None else backoff_base_ms
        self.backoff_cap_ms = settings.retry_backoff_cap_ms if backoff_cap_ms is None else backoff_cap_ms

    def backoff_ms(self, failure_count: int) -> int:
        return min(self.backoff_base_ms * (2 ** failure_count), self.backoff_cap_ms)

    def decide(self, failure: ApiFailure, failure_count: int) -> RetryDecision:
        """failure_count is the number of failures so far, including this one"""
        if failure.kind in TERMINAL_KINDS:
            return RetryDecision(retry=False)
        if failure_count > self.max_retries:
            return RetryDecision(retry=False)
        return RetryDecision(retry=True, delay_ms=self.backoff_ms(failure_count))


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an API operation, retrying per policy; the last failure is re-raised"""
    failures = 0
    while True:
        try:
            return await operation()
        except ApiFailure as e:
            failures += 1
            decision = policy.decide(e, failures)
            if not decision.retry:
                raise

            retry_counter.labels(failure_kind=e.kind.value).inc()
            logger.warning(
                "Retrying ledger request after %s failure",
                e.kind.value,
                extra={"attempt": failures, "delay_ms": decision.delay_ms, "status_code": e.status_code},
            )
            await sleep(decision.delay_ms / 1000)
