"""Decide which circular areas a GPS trace could touch.

Phase 1 rejects areas whose bounding box misses the trace's bounding box.
Phase 2 checks surviving areas point by point with great-circle distance
and stops as soon as enough interior points have been sampled.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from .config import OVERLAP_SAMPLE_POINTS
from .geo import haversine_m, radius_bbox, trace_bbox
from .models import Area, BoundingBox, GpsPoint, OverlapResult

LOGGER = logging.getLogger(__name__)

# Length of one degree of latitude used for area boxes. It is slightly
# shorter than the true value, which only makes the boxes larger.
METERS_PER_DEGREE_LAT = 110_574.0

__all__ = [
    "area_bbox",
    "bbox_area_km2",
    "check_area_overlap",
    "find_overlapping_areas",
    "is_point_in_area",
]


def area_bbox(area: Area) -> BoundingBox:
    """Bounding box that always contains the area's true circle."""

    return radius_bbox(
        area.center_lat,
        area.center_lng,
        area.radius_m,
        meters_per_degree=METERS_PER_DEGREE_LAT,
    )


def is_point_in_area(point: GpsPoint, area: Area) -> bool:
    distance = haversine_m(point.lat, point.lng, area.center_lat, area.center_lng)
    return distance <= area.radius_m


def bbox_area_km2(bbox: BoundingBox) -> float:
    """Approximate surface of a box, for diagnostics."""

    mid_lat = math.radians((bbox.min_lat + bbox.max_lat) / 2.0)
    height_km = (bbox.max_lat - bbox.min_lat) * METERS_PER_DEGREE_LAT / 1000.0
    width_km = (
        (bbox.max_lng - bbox.min_lng)
        * METERS_PER_DEGREE_LAT
        * math.cos(mid_lat)
        / 1000.0
    )
    return max(height_km, 0.0) * max(width_km, 0.0)


def check_area_overlap(
    area: Area,
    points: Sequence[GpsPoint],
    *,
    max_sample_points: int = OVERLAP_SAMPLE_POINTS,
) -> OverlapResult:
    """Scan points until ``max_sample_points`` interior points are found."""

    limit = max(max_sample_points, 1)
    samples: List[GpsPoint] = []
    for point in points:
        if is_point_in_area(point, area):
            samples.append(point)
            if len(samples) >= limit:
                break
    return OverlapResult(area=area, overlaps=bool(samples), sample_points=samples)


def find_overlapping_areas(
    points: Sequence[GpsPoint],
    areas: Sequence[Area],
    *,
    max_sample_points: int = OVERLAP_SAMPLE_POINTS,
    trace_box: Optional[BoundingBox] = None,
) -> List[OverlapResult]:
    """Return overlap results for the areas the trace actually enters."""

    box = trace_box or trace_bbox(points)
    if box is None or not areas:
        return []
    candidates = [area for area in areas if area_bbox(area).intersects(box)]
    LOGGER.debug(
        "Overlap pre-filter kept %d/%d areas (trace box %.2f km2)",
        len(candidates),
        len(areas),
        bbox_area_km2(box),
    )
    results: List[OverlapResult] = []
    for area in candidates:
        result = check_area_overlap(area, points, max_sample_points=max_sample_points)
        if result.overlaps:
            results.append(result)
    return results
