"""Nearest-street assignment for GPS points.

Points and candidate streets are projected into one local metric CRS; a
shapely STRtree narrows each point to streets within the snap tolerance and
the nearest one wins. Exact distance ties keep the earlier candidate.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import LineString

from ..config import BBOX_BUFFER_M, SNAP_TOLERANCE_M
from ..geo import LocalProjection, buffer_bbox, trace_bbox
from ..models import BoundingBox, GpsPoint, StreetSegment

LOGGER = logging.getLogger(__name__)

__all__ = ["assign_points", "candidate_bbox", "projection_for_trace"]


def candidate_bbox(
    points: Sequence[GpsPoint], buffer_m: float = BBOX_BUFFER_M
) -> Optional[BoundingBox]:
    """Trace bounding box grown by ``buffer_m`` for the candidate street query."""

    bbox = trace_bbox(points)
    if bbox is None:
        return None
    return buffer_bbox(bbox, buffer_m)


def projection_for_trace(points: Sequence[GpsPoint]) -> LocalProjection:
    return LocalProjection.for_points([(p.lat, p.lng) for p in points])


def assign_points(
    points: Sequence[GpsPoint],
    segments: Sequence[StreetSegment],
    *,
    tolerance_m: float = SNAP_TOLERANCE_M,
    projection: LocalProjection | None = None,
) -> Dict[int, str]:
    """Map original point index to the id of its nearest segment.

    Points farther than ``tolerance_m`` from every segment are left out.
    """

    if not points or not segments:
        return {}
    projection = projection or projection_for_trace(points)

    usable: List[StreetSegment] = []
    lines: List[LineString] = []
    for segment in segments:
        if len(segment.geometry) < 2:
            continue
        usable.append(segment)
        lines.append(LineString(projection.project(segment.geometry)))
    if not lines:
        return {}

    point_xy = projection.project([(p.lat, p.lng) for p in points])
    geoms = shapely.points(point_xy)
    tree = STRtree(lines)
    input_idx, tree_idx = tree.query(geoms, predicate="dwithin", distance=tolerance_m)
    if input_idx.size == 0:
        LOGGER.debug("No GPS points within %.1fm of %d streets", tolerance_m, len(lines))
        return {}

    distances = shapely.distance(geoms[input_idx], tree.geometries[tree_idx])
    # Sort by point, then distance, then candidate order; first row per point wins.
    order = np.lexsort((tree_idx, distances, input_idx))
    assignments: Dict[int, str] = {}
    for row in order:
        point_index = int(input_idx[row])
        if point_index in assignments or distances[row] > tolerance_m:
            continue
        assignments[point_index] = usable[int(tree_idx[row])].id

    LOGGER.debug(
        "Assigned %d/%d GPS points to %d streets",
        len(assignments),
        len(points),
        len(set(assignments.values())),
    )
    return assignments
