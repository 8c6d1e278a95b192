"""Tests for the OSRM map-matching client."""

from __future__ import annotations

from typing import Any, Dict, List

import polyline
import pytest

from street_coverage.clients import OsrmClient, RetryPolicy
from street_coverage.clients.osrm import decode_geometry, parse_match_response
from street_coverage.errors import NonRetryableServiceError, ServiceExhaustedError


class FakeResp:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.text = ""
        self.url = "https://osrm.test"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses: List[FakeResp]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params})
        return self.responses.pop(0)


def _matching(nodes_per_leg, confidence=0.9, distance=100.0):
    coords = [(51.5, -0.1), (51.5005, -0.1), (51.501, -0.1)]
    return {
        "confidence": confidence,
        "distance": distance,
        "duration": 60.0,
        "geometry": polyline.encode(coords),
        "legs": [{"annotation": {"nodes": nodes}} for nodes in nodes_per_leg],
    }


def _build_client(responses, attempts=2):
    session = FakeSession(responses)
    sleeps: List[float] = []
    client = OsrmClient(
        "https://osrm.test/",
        "foot",
        session=session,  # type: ignore[arg-type]
        policy=RetryPolicy(max_attempts=attempts, initial_backoff_s=1),
        sleep=sleeps.append,
    )
    return client, session, sleeps


def test_decode_geometry() -> None:
    encoded = polyline.encode([(51.5, -0.1), (51.6, -0.2)])
    assert decode_geometry(encoded) == [(51.5, -0.1), (51.6, -0.2)]
    assert decode_geometry("") == []


def test_parse_match_response_flattens_legs_and_matchings() -> None:
    payload = {
        "code": "Ok",
        "matchings": [
            _matching([[1, 2, 3], [3, 4]], confidence=0.8),
            _matching([[4, 5]], confidence=0.4, distance=50.0),
        ],
    }
    result = parse_match_response(payload)
    assert result.node_ids == [1, 2, 3, 4, 5]
    assert result.confidence == pytest.approx(0.6)
    assert result.distance_m == pytest.approx(150.0)
    assert len(result.geometry) == 6
    assert parse_match_response({"code": "Ok", "matchings": []}).node_ids == []


def test_match_sends_coordinates_and_timestamps(point_factory) -> None:
    client, session, _ = _build_client(
        [FakeResp(200, {"code": "Ok", "matchings": [_matching([[7, 8]])]})]
    )
    points = [point_factory(0, 0, seconds=0), point_factory(0, 10, seconds=5)]

    result = client.match(points)

    assert result.node_ids == [7, 8]
    call = session.calls[0]
    assert call["url"].startswith("https://osrm.test/match/v1/foot/")
    assert call["url"].count(";") == 1
    assert call["params"]["annotations"] == "nodes"
    assert len(call["params"]["timestamps"].split(";")) == 2


def test_match_without_timestamps_omits_them(point_factory) -> None:
    client, session, _ = _build_client(
        [FakeResp(200, {"code": "Ok", "matchings": [_matching([[7, 8]])]})]
    )
    client.match([point_factory(0, 0), point_factory(0, 10)])
    assert "timestamps" not in session.calls[0]["params"]


def test_single_point_is_not_sent(point_factory) -> None:
    client, session, _ = _build_client([])
    assert client.match([point_factory(0, 0)]).node_ids == []
    assert session.calls == []


def test_no_match_code_fails_fast(point_factory) -> None:
    client, session, sleeps = _build_client(
        [FakeResp(200, {"code": "NoMatch", "message": "Could not match the trace."})]
    )
    with pytest.raises(NonRetryableServiceError) as excinfo:
        client.match([point_factory(0, 0), point_factory(0, 10)])
    assert "NoMatch" in str(excinfo.value)
    assert sleeps == []


def test_uri_too_long_fails_fast(point_factory) -> None:
    client, _, _ = _build_client([FakeResp(414)])
    with pytest.raises(NonRetryableServiceError):
        client.match([point_factory(0, 0), point_factory(0, 10)])


def test_server_errors_are_retried_then_exhausted(point_factory) -> None:
    client, session, sleeps = _build_client([FakeResp(502), FakeResp(503)])
    with pytest.raises(ServiceExhaustedError):
        client.match([point_factory(0, 0), point_factory(0, 10)])
    assert len(session.calls) == 2
    assert sleeps == [1]
