"""Geometric matching pipeline: assign points, then measure each street."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from ..config import COMPLETION_THRESHOLD, MIN_POINTS_PER_SEGMENT, SNAP_TOLERANCE_M
from ..geo import LocalProjection
from ..models import GpsPoint, MatchedSegment, StreetSegment
from .distance import IndexedPoint, calculate_segment_coverage
from .geometric import assign_points, projection_for_trace

LOGGER = logging.getLogger(__name__)


def group_points_by_segment(
    points: Sequence[GpsPoint], assignments: Dict[int, str]
) -> Dict[str, List[IndexedPoint]]:
    """Group assigned points per segment, keeping original indices in order."""

    grouped: Dict[str, List[IndexedPoint]] = {}
    for index in sorted(assignments):
        grouped.setdefault(assignments[index], []).append((index, points[index]))
    return grouped


def match_trace(
    points: Sequence[GpsPoint],
    segments: Sequence[StreetSegment],
    *,
    tolerance_m: float = SNAP_TOLERANCE_M,
    threshold: float = COMPLETION_THRESHOLD,
    min_points: int = MIN_POINTS_PER_SEGMENT,
    projection: LocalProjection | None = None,
) -> List[MatchedSegment]:
    """Return per-segment coverage for one trace, longest covered first.

    Segments touched by fewer than ``min_points`` points are dropped as
    GPS noise.
    """

    if not points or not segments:
        return []
    projection = projection or projection_for_trace(points)
    assignments = assign_points(
        points, segments, tolerance_m=tolerance_m, projection=projection
    )
    by_id = {segment.id: segment for segment in segments}
    results: List[MatchedSegment] = []
    dropped = 0
    for segment_id, indexed in group_points_by_segment(points, assignments).items():
        if len(indexed) < min_points:
            dropped += 1
            continue
        results.append(
            calculate_segment_coverage(
                by_id[segment_id], indexed, projection=projection, threshold=threshold
            )
        )
    if dropped:
        LOGGER.debug(
            "Dropped %d segments with fewer than %d matched points", dropped, min_points
        )
    results.sort(key=lambda m: (-m.distance_covered_m, m.segment_id))
    LOGGER.info(
        "Matched %d/%d points to %d segments",
        len(assignments),
        len(points),
        len(results),
    )
    return results
