"""Tests for the retry/failover state machine and response classification."""

from __future__ import annotations

from typing import List

import pytest
import requests

from street_coverage.clients import RetryDecision, RetryPolicy, RetryState, call_with_failover
from street_coverage.clients.response_handling import (
    classify_response_status,
    error_for_exception,
    extract_error,
)
from street_coverage.errors import (
    NonRetryableServiceError,
    RetryableServiceError,
    ServiceExhaustedError,
)


class FakeResp:
    def __init__(self, status_code: int, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.url = "https://example.test/api"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _retryable(msg: str = "boom") -> RetryableServiceError:
    return RetryableServiceError(msg, service="test", status_code=503)


def test_backoff_grows_and_caps() -> None:
    policy = RetryPolicy(max_attempts=5, initial_backoff_s=2, factor=2, max_backoff_s=8)
    assert [policy.backoff_for(a) for a in range(1, 5)] == [2, 4, 8, 8]


def test_state_walks_attempts_then_endpoints() -> None:
    state = RetryState(RetryPolicy(max_attempts=3, initial_backoff_s=2, factor=2), endpoint_count=2)
    decisions = [state.record_failure(_retryable()) for _ in range(6)]

    assert decisions == [
        (RetryDecision.RETRY, 2),
        (RetryDecision.RETRY, 4),
        (RetryDecision.NEXT_ENDPOINT, 0.0),
        (RetryDecision.RETRY, 2),
        (RetryDecision.RETRY, 4),
        (RetryDecision.GIVE_UP, 0.0),
    ]
    assert state.endpoint_index == 1
    assert state.elapsed_backoff_s == 12
    assert len(state.failures) == 6


def test_non_retryable_gives_up_immediately() -> None:
    state = RetryState(RetryPolicy(), endpoint_count=3)
    decision, _ = state.record_failure(NonRetryableServiceError("bad request"))
    assert decision is RetryDecision.GIVE_UP
    assert state.endpoint_index == 0


def test_call_with_failover_moves_to_next_endpoint(no_sleep) -> None:
    calls: List[str] = []

    def request(endpoint: str) -> str:
        calls.append(endpoint)
        if endpoint == "primary":
            raise _retryable()
        return f"ok from {endpoint}"

    result = call_with_failover(
        ["primary", "mirror"],
        request,
        policy=RetryPolicy(max_attempts=2, initial_backoff_s=1, factor=2),
        sleep=no_sleep,
    )

    assert result == "ok from mirror"
    assert calls == ["primary", "primary", "mirror"]
    assert no_sleep.calls == [1]


def test_call_with_failover_exhausts_everything(no_sleep) -> None:
    def request(endpoint: str) -> str:
        raise _retryable(f"{endpoint} down")

    with pytest.raises(ServiceExhaustedError) as excinfo:
        call_with_failover(
            ["a", "b"], request, policy=RetryPolicy(max_attempts=2), sleep=no_sleep
        )

    assert excinfo.value.status_code == 503
    assert "b down" in str(excinfo.value)
    assert len(no_sleep.calls) == 2


def test_call_with_failover_reraises_non_retryable(no_sleep) -> None:
    calls: List[str] = []

    def request(endpoint: str) -> str:
        calls.append(endpoint)
        raise NonRetryableServiceError("rate limited", status_code=429)

    with pytest.raises(NonRetryableServiceError):
        call_with_failover(["a", "b"], request, sleep=no_sleep)
    assert calls == ["a"]
    assert no_sleep.calls == []


def test_call_with_failover_requires_endpoints() -> None:
    with pytest.raises(ValueError):
        call_with_failover([], lambda endpoint: endpoint)


@pytest.mark.parametrize(
    "status,action,error_type",
    [
        (200, "ok", None),
        (502, "retry", RetryableServiceError),
        (503, "retry", RetryableServiceError),
        (504, "retry", RetryableServiceError),
        (400, "raise", NonRetryableServiceError),
        (429, "raise", NonRetryableServiceError),
        (404, "raise", NonRetryableServiceError),
    ],
)
def test_classify_response_status(status, action, error_type) -> None:
    got_action, err = classify_response_status(FakeResp(status), "Overpass", service="overpass")
    assert got_action == action
    if error_type is None:
        assert err is None
    else:
        assert isinstance(err, error_type)
        assert err.status_code == status
        assert err.service == "overpass"


def test_error_detail_is_included() -> None:
    resp = FakeResp(400, {"code": "InvalidQuery", "message": "Query string malformed"})
    _, err = classify_response_status(resp, "OSRM match", service="osrm")
    assert "InvalidQuery | Query string malformed" in str(err)
    assert extract_error(FakeResp(504, text="  gateway timeout  ")) == "gateway timeout"
    assert extract_error(None) is None


def test_transport_errors_are_retryable() -> None:
    err = error_for_exception(requests.Timeout("read timed out"), "Overpass", service="overpass")
    assert err.retryable is True
    assert "timed out" in str(err)
    err = error_for_exception(requests.ConnectionError("reset"), "Overpass", service="overpass")
    assert "network error" in str(err)
