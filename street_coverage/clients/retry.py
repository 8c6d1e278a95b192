"""Retry and endpoint failover expressed as an explicit state machine.

The state records the current attempt, the endpoint index and the total
backoff spent. ``call_with_failover`` drives it with an injectable ``sleep``
so policies can be exercised in tests without real delays.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Callable, List, Sequence, Tuple, TypeVar

from ..config import (
    OVERPASS_MAX_RETRIES,
    RETRY_BACKOFF_FACTOR,
    RETRY_BACKOFF_MAX_SECONDS,
    RETRY_INITIAL_BACKOFF_SECONDS,
)
from ..errors import ExternalServiceError, ServiceExhaustedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "call_with_failover",
]


class RetryDecision(str, Enum):
    RETRY = "retry"
    NEXT_ENDPOINT = "next_endpoint"
    GIVE_UP = "give_up"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = OVERPASS_MAX_RETRIES
    initial_backoff_s: float = RETRY_INITIAL_BACKOFF_SECONDS
    factor: float = RETRY_BACKOFF_FACTOR
    max_backoff_s: float = RETRY_BACKOFF_MAX_SECONDS

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based) on the same endpoint."""

        delay = self.initial_backoff_s * (self.factor ** max(attempt - 1, 0))
        return min(delay, self.max_backoff_s)


@dataclass(slots=True)
class RetryState:
    policy: RetryPolicy
    endpoint_count: int
    attempt: int = 1
    endpoint_index: int = 0
    elapsed_backoff_s: float = 0.0
    failures: List[ExternalServiceError] = field(default_factory=list)

    def record_failure(self, error: ExternalServiceError) -> Tuple[RetryDecision, float]:
        """Advance the state after ``error`` and return the next step and delay."""

        self.failures.append(error)
        if not error.retryable:
            return RetryDecision.GIVE_UP, 0.0
        if self.attempt < max(self.policy.max_attempts, 1):
            delay = self.policy.backoff_for(self.attempt)
            self.attempt += 1
            self.elapsed_backoff_s += delay
            return RetryDecision.RETRY, delay
        if self.endpoint_index + 1 < self.endpoint_count:
            self.endpoint_index += 1
            self.attempt = 1
            return RetryDecision.NEXT_ENDPOINT, 0.0
        return RetryDecision.GIVE_UP, 0.0


def call_with_failover(
    endpoints: Sequence[str],
    request: Callable[[str], T],
    *,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
    context: str = "request",
) -> T:
    """Call ``request(endpoint)`` until it succeeds or every option is spent.

    Non-retryable errors propagate immediately. When all endpoints and
    attempts are exhausted a :class:`ServiceExhaustedError` is raised.
    """

    if not endpoints:
        raise ValueError("At least one endpoint is required")
    state = RetryState(policy or RetryPolicy(), len(endpoints))
    while True:
        endpoint = endpoints[state.endpoint_index]
        attempt = state.attempt
        try:
            return request(endpoint)
        except ExternalServiceError as exc:
            decision, delay = state.record_failure(exc)
            if decision is RetryDecision.RETRY:
                LOGGER.warning(
                    "%s failed on %s (attempt %d/%d); retrying in %.1fs: %s",
                    context,
                    endpoint,
                    attempt,
                    state.policy.max_attempts,
                    delay,
                    exc,
                )
                sleep(delay)
                continue
            if decision is RetryDecision.NEXT_ENDPOINT:
                LOGGER.warning(
                    "%s exhausted retries on %s; failing over to %s",
                    context,
                    endpoint,
                    endpoints[state.endpoint_index],
                )
                continue
            if not exc.retryable:
                raise
            raise ServiceExhaustedError(
                f"{context} failed on all {len(endpoints)} endpoint(s) after "
                f"{len(state.failures)} attempt(s): {exc}",
                service=exc.service,
                status_code=exc.status_code,
            ) from exc
