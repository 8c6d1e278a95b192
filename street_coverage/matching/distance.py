"""Per-segment covered distance from matched GPS points.

Two measurements are kept side by side:

* ``distance_covered_m`` sums straight-line hops between consecutive matched
  points (Phase A, easy to explain).
* ``geometry_distance_covered_m`` projects the same points onto the street
  geometry and sums the along-street movement (Phase B, robust to drift).

Both only count movement inside a consecutive run of point indices, so
leaving a street and coming back later never counts the gap.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import COMPLETION_THRESHOLD, MAX_ALLOWED_GAP_PERCENT, MAX_DISPLAY_RATIO
from ..geo import LocalProjection, point_distance_m, project_onto_polyline, segment_lengths_m
from ..models import (
    CompletionStatus,
    CoverageInterval,
    GpsPoint,
    MatchedSegment,
    StreetSegment,
)
from ..utils import clamp_ratio, round_distance, round_ratio, safe_ratio

IndexedPoint = Tuple[int, GpsPoint]

__all__ = [
    "calculate_consecutive_distance",
    "calculate_geometry_distance",
    "calculate_segment_coverage",
    "consecutive_runs",
    "coverage_interval_from_positions",
    "coverage_intervals_by_run",
    "determine_segment_status",
    "project_along_segment",
]


def consecutive_runs(indices: Iterable[int]) -> List[List[int]]:
    """Split sorted, de-duplicated indices into runs of consecutive values."""

    runs: List[List[int]] = []
    for index in sorted(set(indices)):
        if runs and index == runs[-1][-1] + 1:
            runs[-1].append(index)
        else:
            runs.append([index])
    return runs


def calculate_consecutive_distance(indexed_points: Sequence[IndexedPoint]) -> float:
    """Straight-line distance summed within consecutive index runs only."""

    by_index = dict(indexed_points)
    total = 0.0
    for run in consecutive_runs(by_index):
        for prev, curr in zip(run[:-1], run[1:]):
            total += point_distance_m(by_index[prev], by_index[curr])
    return total


def calculate_geometry_distance(indexed_positions: Sequence[Tuple[int, float]]) -> float:
    """Along-street movement summed within consecutive index runs only.

    ``indexed_positions`` pairs each original point index with its projected
    distance from the street start.
    """

    by_index = dict(indexed_positions)
    total = 0.0
    for run in consecutive_runs(by_index):
        for prev, curr in zip(run[:-1], run[1:]):
            total += abs(by_index[curr] - by_index[prev])
    return total


def project_along_segment(
    points: Sequence[GpsPoint],
    segment: StreetSegment,
    projection: LocalProjection,
) -> Tuple[np.ndarray, float]:
    """Return each point's distance from the segment start and the geometry length.

    The closest sub-segment is found in metric space; positions are measured
    with haversine sub-segment lengths so they agree with ``length_m``.
    """

    sub_lengths = segment_lengths_m(segment.geometry)
    line = projection.project(segment.geometry)
    metric_points = projection.project([(p.lat, p.lng) for p in points])
    positions, _offsets = project_onto_polyline(metric_points, line, sub_lengths)
    return positions, float(np.sum(sub_lengths))


def coverage_interval_from_positions(
    positions: Sequence[float], geometry_length_m: float
) -> Optional[CoverageInterval]:
    """Covered span in percent (floor of min, ceil of max), or None if empty."""

    if len(positions) == 0 or geometry_length_m <= 0:
        return None
    start = math.floor(min(positions) / geometry_length_m * 100.0)
    end = math.ceil(max(positions) / geometry_length_m * 100.0)
    start = int(min(max(start, 0), 100))
    end = int(min(max(end, 0), 100))
    if start >= end:
        return None
    return (float(start), float(end))


def coverage_intervals_by_run(
    indexed_positions: Sequence[Tuple[int, float]], geometry_length_m: float
) -> List[CoverageInterval]:
    """One covered span per consecutive index run, ordered by start.

    A lone point has no along-street movement and yields no span.
    """

    by_index = dict(indexed_positions)
    intervals = [
        coverage_interval_from_positions([by_index[i] for i in run], geometry_length_m)
        for run in consecutive_runs(by_index)
        if len(run) > 1
    ]
    return sorted(interval for interval in intervals if interval is not None)


def determine_segment_status(
    raw_ratio: float,
    intervals: Sequence[CoverageInterval],
    *,
    threshold: float = COMPLETION_THRESHOLD,
    max_gap_percent: float = MAX_ALLOWED_GAP_PERCENT,
) -> CompletionStatus:
    """FULL when the geometry ratio reaches ``threshold``.

    A ratio above 1.0 signals repeated passes or drift, so it must also be
    backed by a single run whose span reaches both street ends.
    """

    if raw_ratio < threshold:
        return CompletionStatus.PARTIAL
    if raw_ratio <= 1.0:
        return CompletionStatus.FULL
    for start, end in intervals:
        if (
            start <= max_gap_percent
            and end >= 100.0 - max_gap_percent
            and (end - start) >= threshold * 100.0
        ):
            return CompletionStatus.FULL
    return CompletionStatus.PARTIAL


def calculate_segment_coverage(
    segment: StreetSegment,
    indexed_points: Sequence[IndexedPoint],
    *,
    projection: LocalProjection,
    threshold: float = COMPLETION_THRESHOLD,
) -> MatchedSegment:
    """Build the rounded :class:`MatchedSegment` for one street."""

    ordered = sorted(dict(indexed_points).items())
    indices = [index for index, _ in ordered]
    points = [point for _, point in ordered]

    phase_a = calculate_consecutive_distance(ordered)
    intervals: List[CoverageInterval] = []
    phase_b = 0.0
    if points and len(segment.geometry) >= 2:
        positions, geometry_length = project_along_segment(points, segment, projection)
        indexed_positions = list(zip(indices, positions.tolist()))
        phase_b = calculate_geometry_distance(indexed_positions)
        intervals = coverage_intervals_by_run(indexed_positions, geometry_length)

    raw_a = safe_ratio(phase_a, segment.length_m)
    raw_b = safe_ratio(phase_b, segment.length_m)
    status = determine_segment_status(raw_b, intervals, threshold=threshold)
    return MatchedSegment(
        segment_id=segment.id,
        name=segment.name,
        road_type=segment.road_type,
        length_m=round_distance(segment.length_m),
        matched_point_indices=indices,
        distance_covered_m=round_distance(phase_a),
        geometry_distance_covered_m=round_distance(phase_b),
        coverage_ratio=round_ratio(clamp_ratio(raw_a, MAX_DISPLAY_RATIO)),
        geometry_coverage_ratio=round_ratio(clamp_ratio(raw_b, MAX_DISPLAY_RATIO)),
        raw_geometry_ratio=round_ratio(raw_b),
        completion_status=status,
        coverage_intervals=intervals,
    )
