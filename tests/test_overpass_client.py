"""Tests for the Overpass road-graph client using a fake HTTP session."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from street_coverage.clients import OverpassClient, RetryPolicy
from street_coverage.clients.overpass import nodes_from_ways, parse_street_segment, parse_way_info
from street_coverage.errors import NonRetryableServiceError, ServiceExhaustedError
from street_coverage.matching.names import is_unnamed
from street_coverage.models import BoundingBox


class FakeResp:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.url = "https://overpass.test/api/interpreter"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for POST calls."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _way_element(way_id: int, nodes: List[int], tags: Dict[str, str], start_lng: float = -0.1):
    geometry = [{"lat": 51.5, "lon": start_lng + i * 0.001} for i in range(len(nodes))]
    return {"type": "way", "id": way_id, "nodes": nodes, "tags": tags, "geometry": geometry}


def _build_client(responses, endpoints=("https://a.test", "https://b.test"), attempts=2):
    session = FakeSession(responses)
    sleeps: List[float] = []
    client = OverpassClient(
        list(endpoints),
        session=session,  # type: ignore[arg-type]
        policy=RetryPolicy(max_attempts=attempts, initial_backoff_s=1, factor=2),
        sleep=sleeps.append,
    )
    return client, session, sleeps


def test_parse_street_segment_name_fallbacks() -> None:
    segment = parse_street_segment(
        _way_element(10, [1, 2, 3], {"highway": "footway", "alt_name": "Towpath", "surface": "gravel"})
    )
    assert segment is not None
    assert segment.id == "10"
    assert segment.name == "Towpath"
    assert segment.surface == "gravel"
    assert segment.length_m == pytest.approx(138.4, rel=0.01)
    assert parse_street_segment({"type": "node", "id": 1}) is None
    assert parse_street_segment(_way_element(11, [1], {})) is None
    unnamed = parse_street_segment(_way_element(12, [1, 2], {}))
    assert unnamed.name == "Unnamed Road"
    assert is_unnamed(unnamed.name)
    assert unnamed.road_type == "unknown"


def test_parse_way_info_maps_node_coords() -> None:
    way = parse_way_info(_way_element(20, [5, 6, 7], {"highway": "residential", "name": "Elm Row"}))
    assert way is not None
    assert way.node_ids == (5, 6, 7)
    assert way.node_coords[6] == pytest.approx((51.5, -0.099))
    assert way.name == "Elm Row"


def test_streets_in_bbox_builds_query_and_parses() -> None:
    payload = {
        "elements": [
            _way_element(1, [1, 2], {"highway": "residential", "name": "Oak Road"}),
            {"type": "node", "id": 9, "lat": 51.5, "lon": -0.1},
        ]
    }
    client, session, _ = _build_client([FakeResp(200, payload)])

    streets = client.streets_in_bbox(BoundingBox(51.49, -0.11, 51.51, -0.09))

    assert [s.name for s in streets] == ["Oak Road"]
    query = session.calls[0]["data"]["data"]
    assert query.startswith("[out:json][timeout:60];way[\"highway\"~\"^(")
    assert "(51.49,-0.11,51.51,-0.09)" in query
    assert query.endswith("out body geom;")


def test_streets_in_radius_uses_around_filter() -> None:
    client, session, _ = _build_client([FakeResp(200, {"elements": []})])
    assert client.streets_in_radius(51.5, -0.1, 250) == []
    assert "(around:250,51.5,-0.1)" in session.calls[0]["data"]["data"]


def test_ways_for_nodes_groups_by_node() -> None:
    payload = {
        "elements": [
            _way_element(100, [1, 2, 3], {"highway": "residential"}),
            _way_element(200, [3, 4], {"highway": "service"}),
        ]
    }
    client, session, _ = _build_client([FakeResp(200, payload)])

    result = client.ways_for_nodes([1, 3, 99])

    assert [w.way_id for w in result[1]] == [100]
    assert [w.way_id for w in result[3]] == [100, 200]
    assert result[99] == []
    assert "node(id:1,3,99);way(bn)" in session.calls[0]["data"]["data"]


def test_ways_in_bbox_and_nodes_from_ways() -> None:
    payload = {
        "elements": [
            _way_element(100, [1, 2, 3], {"highway": "residential"}),
            _way_element(200, [3, 4], {"highway": "service"}, start_lng=-0.098),
        ]
    }
    client, _, _ = _build_client([FakeResp(200, payload)])

    ways = client.ways_in_bbox(BoundingBox(51.49, -0.11, 51.51, -0.09))
    nodes = {n.node_id: n for n in nodes_from_ways(ways.values())}

    assert set(ways) == {100, 200}
    assert set(nodes) == {1, 2, 3, 4}
    assert nodes[3].way_ids == (100, 200)


def test_retries_then_fails_over_to_mirror() -> None:
    ok = FakeResp(200, {"elements": []})
    client, session, sleeps = _build_client(
        [FakeResp(503), requests.Timeout("slow"), ok]
    )

    assert client.streets_in_bbox(BoundingBox(0, 0, 1, 1)) == []
    assert [c["url"] for c in session.calls] == [
        "https://a.test",
        "https://a.test",
        "https://b.test",
    ]
    assert sleeps == [1]


def test_runtime_error_remark_is_retried() -> None:
    remark = FakeResp(200, {"elements": [], "remark": "runtime error: Query timed out"})
    client, session, _ = _build_client([remark, FakeResp(200, {"elements": []})])
    client.execute("node(1);out;")
    assert len(session.calls) == 2


def test_rate_limit_fails_fast() -> None:
    client, session, sleeps = _build_client([FakeResp(429, text="Too Many Requests")])
    with pytest.raises(NonRetryableServiceError) as excinfo:
        client.execute("node(1);out;")
    assert excinfo.value.status_code == 429
    assert len(session.calls) == 1
    assert sleeps == []


def test_all_mirrors_exhausted() -> None:
    client, session, _ = _build_client([FakeResp(504)] * 4)
    with pytest.raises(ServiceExhaustedError):
        client.execute("node(1);out;")
    assert len(session.calls) == 4
