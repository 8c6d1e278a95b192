"""Tests for chunked trace matching."""

from __future__ import annotations

import logging
from typing import List, Sequence

import pytest

from street_coverage.errors import RetryableServiceError
from street_coverage.graph import chunk_points, match_in_chunks, merge_chunk_results
from street_coverage.models import GpsPoint, TraceMatch


class _ScriptedMatcher:
    """Return a canned result per call; exceptions in the script are raised."""

    def __init__(self, script: Sequence[object]):
        self.script = list(script)
        self.calls: List[int] = []

    def match(self, points: Sequence[GpsPoint]) -> TraceMatch:
        self.calls.append(len(points))
        outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _trace(confidence: float, nodes: List[int]) -> TraceMatch:
    return TraceMatch(
        confidence=confidence,
        node_ids=nodes,
        geometry=[(51.5, -0.1 + n * 1e-4) for n in nodes],
        distance_m=10.0 * max(len(nodes) - 1, 0),
    )


def test_short_trace_is_single_chunk() -> None:
    assert chunk_points(list(range(40)), 100, 5) == [list(range(40))]
    assert chunk_points([], 100, 5) == []


def test_chunks_overlap_by_one_point() -> None:
    chunks = chunk_points(list(range(250)), 100, 5)
    assert [len(c) for c in chunks] == [100, 100, 52]
    assert chunks[0][-1] == chunks[1][0] == 99
    assert chunks[1][-1] == chunks[2][0] == 198
    assert chunks[-1][-1] == 249


def test_small_tail_merges_into_previous_chunk() -> None:
    chunks = chunk_points(list(range(200)), 100, 5)
    assert len(chunks) == 2
    assert chunks[1][0] == 99
    assert chunks[1][-1] == 199
    assert len(chunks[1]) == 101


def test_chunk_points_rejects_tiny_limit() -> None:
    with pytest.raises(ValueError):
        chunk_points([1, 2, 3], 1, 1)


def test_merge_drops_duplicated_boundary_nodes() -> None:
    merged = merge_chunk_results([_trace(0.9, [1, 2, 3]), _trace(0.7, [3, 4, 5])])
    assert merged.node_ids == [1, 2, 3, 4, 5]
    assert len(merged.geometry) == 5
    assert merged.confidence == pytest.approx(0.8)
    assert merged.distance_m == pytest.approx(40.0)
    assert merged.warnings == []


def test_merge_keeps_non_duplicated_boundary() -> None:
    merged = merge_chunk_results([_trace(0.9, [1, 2]), _trace(0.9, [5, 6])])
    assert merged.node_ids == [1, 2, 5, 6]


def test_low_confidence_is_only_a_warning() -> None:
    merged = merge_chunk_results([_trace(0.2, [1, 2]), _trace(0.3, [2, 3])])
    assert merged.node_ids == [1, 2, 3]
    assert any("Low match confidence" in w for w in merged.warnings)


def test_failed_chunk_is_not_fatal(
    point_factory, no_sleep, caplog: pytest.LogCaptureFixture
) -> None:
    points = [point_factory(0, i * 5) for i in range(12)]
    matcher = _ScriptedMatcher(
        [
            _trace(0.9, [1, 2, 3]),
            RetryableServiceError("upstream timeout", service="osrm"),
            _trace(0.9, [8, 9]),
        ]
    )

    with caplog.at_level(logging.WARNING):
        merged = match_in_chunks(
            points, matcher, max_coordinates=5, min_chunk_points=2, delay_s=1.1, sleep=no_sleep
        )

    assert matcher.calls == [5, 5, 4]
    assert no_sleep.calls == [1.1, 1.1]
    assert merged.node_ids == [1, 2, 3, 8, 9]
    assert merged.confidence == pytest.approx(0.6)
    assert any("Chunk 2/3 failed" in w for w in merged.warnings)
    assert any("Chunk 2/3 failed" in rec.message for rec in caplog.records)
