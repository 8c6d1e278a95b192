"""Tests for shared output helpers."""

from __future__ import annotations

from datetime import datetime, timezone
import json

from street_coverage.models import CompletionStatus, CoverageSummary, MatchStrategy
from street_coverage.utils import (
    clamp_ratio,
    json_dumps_sorted,
    round_distance,
    round_ratio,
    safe_ratio,
    to_jsonable,
)


def test_rounding_helpers() -> None:
    assert round_distance(12.3456) == 12.35
    assert round_ratio(0.98765) == 0.988


def test_clamp_and_safe_ratio() -> None:
    assert clamp_ratio(1.4) == 1.0
    assert clamp_ratio(-0.2) == 0.0
    assert clamp_ratio(float("nan")) == 0.0
    assert clamp_ratio(1.4, upper=2.0) == 1.4
    assert safe_ratio(5, 0) == 0.0
    assert safe_ratio(5, 10) == 0.5


def test_to_jsonable_handles_dataclasses_and_enums() -> None:
    summary = CoverageSummary(
        strategy=MatchStrategy.EDGE,
        street_id="way/1",
        name="Elm Row",
        road_type="residential",
        length_m=120.0,
        percentage=50.0,
        is_complete=False,
        intervals=[(0.0, 50.0)],
    )
    data = to_jsonable({"summary": summary, "status": CompletionStatus.FULL, "ids": {3, 1}})
    assert data["summary"]["strategy"] == "edge"
    assert data["summary"]["intervals"] == [[0.0, 50.0]]
    assert data["status"] == "FULL"
    assert data["ids"] == [1, 3]


def test_json_dumps_sorted_is_canonical() -> None:
    when = datetime(2025, 1, 2, 3, 4, tzinfo=timezone.utc)
    text = json_dumps_sorted({"b": 1, "a": when})
    assert text == '{"a":"2025-01-02T03:04:00+00:00","b":1}'
    assert json.loads(json_dumps_sorted({"x": [1]}, pretty=True)) == {"x": [1]}
