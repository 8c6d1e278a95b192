"""Geodesic helpers and local metric projection for matching."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from .models import BoundingBox, GpsPoint, LatLon

MetricArray = NDArray[np.float64]

EARTH_RADIUS_M = 6_371_000.0

# Coarse conversion used for the candidate-street buffer.
METERS_PER_DEGREE = 111_000.0

# Mean length of one degree of latitude, used for node snapping boxes.
METERS_PER_DEGREE_LAT = 111_320.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two lat/lng pairs."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def point_distance_m(a: GpsPoint, b: GpsPoint) -> float:
    return haversine_m(a.lat, a.lng, b.lat, b.lng)


def segment_lengths_m(coords: Sequence[LatLon]) -> MetricArray:
    """Haversine length of each sub-segment of a lat/lng polyline."""

    if len(coords) < 2:
        return np.zeros(0, dtype=float)
    return np.asarray(
        [
            haversine_m(a[0], a[1], b[0], b[1])
            for a, b in zip(coords[:-1], coords[1:])
        ],
        dtype=float,
    )


def polyline_length_m(coords: Sequence[LatLon]) -> float:
    return float(np.sum(segment_lengths_m(coords)))


def trace_bbox(points: Iterable[GpsPoint]) -> Optional[BoundingBox]:
    """Axis-aligned bounding box of a trace, or None for an empty trace."""

    lats: List[float] = []
    lngs: List[float] = []
    for point in points:
        lats.append(point.lat)
        lngs.append(point.lng)
    if not lats:
        return None
    return BoundingBox(min(lats), min(lngs), max(lats), max(lngs))


def buffer_bbox(bbox: BoundingBox, buffer_m: float) -> BoundingBox:
    """Grow a box by ``buffer_m`` meters on every side."""

    lat_delta = buffer_m / METERS_PER_DEGREE
    widest_lat = max(abs(bbox.min_lat), abs(bbox.max_lat))
    lng_delta = _lng_delta(widest_lat, buffer_m, METERS_PER_DEGREE)
    return BoundingBox(
        max(bbox.min_lat - lat_delta, -90.0),
        max(bbox.min_lng - lng_delta, -180.0),
        min(bbox.max_lat + lat_delta, 90.0),
        min(bbox.max_lng + lng_delta, 180.0),
    )


def radius_bbox(
    lat: float,
    lng: float,
    radius_m: float,
    *,
    meters_per_degree: float = METERS_PER_DEGREE_LAT,
) -> BoundingBox:
    """Box enclosing the circle of ``radius_m`` around ``(lat, lng)``.

    The longitude delta is scaled by ``cos(lat)``. It never falls below the
    exact great-circle extent of the circle, so the box always contains it.
    """

    lat_delta = radius_m / meters_per_degree
    lng_delta = _lng_delta(lat, radius_m, meters_per_degree)
    return BoundingBox(
        max(lat - lat_delta, -90.0),
        max(lng - lng_delta, -180.0),
        min(lat + lat_delta, 90.0),
        min(lng + lng_delta, 180.0),
    )


def _lng_delta(lat: float, radius_m: float, meters_per_degree: float) -> float:
    cos_lat = math.cos(math.radians(lat))
    angular = radius_m / EARTH_RADIUS_M
    if cos_lat <= math.sin(angular):
        # The circle reaches a pole.
        return 180.0
    scaled = radius_m / (meters_per_degree * cos_lat)
    exact = math.degrees(math.asin(math.sin(angular) / cos_lat))
    return max(scaled, exact)


class LocalProjection:
    """Project lat/lng coordinates into a local UTM zone (meters)."""

    def __init__(self, transformer: Transformer):
        self.transformer = transformer

    @classmethod
    def for_points(cls, points: Sequence[LatLon]) -> "LocalProjection":
        if not points:
            raise ValueError("Cannot build a projection for an empty point collection")
        return cls(_build_local_transformer(points))

    def project(self, points: Sequence[LatLon]) -> MetricArray:
        if not points:
            return np.empty((0, 2), dtype=float)
        lats = np.asarray([pt[0] for pt in points], dtype=float)
        lngs = np.asarray([pt[1] for pt in points], dtype=float)
        xs, ys = self.transformer.transform(lngs, lats)
        return np.column_stack((xs, ys)).astype(float, copy=False)


def _build_local_transformer(points: Sequence[LatLon]) -> Transformer:
    """Build a UTM transformer for the zone containing the points' centroid."""

    mean_lat = float(np.mean([pt[0] for pt in points]))
    mean_lng = float(np.mean([pt[1] for pt in points]))
    zone = int((mean_lng + 180.0) // 6.0) + 1
    zone = max(1, min(zone, 60))
    epsg = 32600 + zone if mean_lat >= 0 else 32700 + zone
    try:
        target_crs = CRS.from_epsg(epsg)
    except CRSError:
        target_crs = CRS.from_epsg(3857)
    return Transformer.from_crs(CRS.from_epsg(4326), target_crs, always_xy=True)


def project_onto_polyline(
    points: MetricArray,
    polyline: MetricArray,
    segment_lengths: Optional[Sequence[float]] = None,
) -> Tuple[MetricArray, MetricArray]:
    """Project points onto their closest location along a polyline.

    Every sub-segment is tested with a clamped projection; the closest one
    wins (first on ties). Returns ``(positions, offsets)`` where positions are
    cumulative distances from the polyline start and offsets are the
    perpendicular distances. ``segment_lengths`` replaces the planar
    sub-segment lengths when measuring positions (e.g. haversine lengths).
    """

    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    line = np.asarray(polyline, dtype=float).reshape(-1, 2)
    count = len(pts)
    if count == 0 or len(line) == 0:
        return np.zeros(count, dtype=float), np.full(count, np.inf, dtype=float)
    if len(line) == 1:
        return np.zeros(count, dtype=float), np.linalg.norm(pts - line[0], axis=1)

    starts = line[:-1]
    vectors = np.diff(line, axis=0)
    lengths_sq = np.einsum("ij,ij->i", vectors, vectors)
    relative = pts[:, None, :] - starts[None, :, :]
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.einsum("nmk,mk->nm", relative, vectors) / lengths_sq
    t = np.where(lengths_sq > 0, np.clip(t, 0.0, 1.0), 0.0)
    nearest = starts[None, :, :] + t[..., None] * vectors[None, :, :]
    distances = np.linalg.norm(pts[:, None, :] - nearest, axis=2)

    best = np.argmin(distances, axis=1)
    rows = np.arange(count)
    offsets = distances[rows, best]
    if segment_lengths is None:
        lengths = np.sqrt(lengths_sq)
    else:
        lengths = np.asarray(segment_lengths, dtype=float)
    cumulative = cumulative_distances(lengths)
    positions = cumulative[best] + t[rows, best] * lengths[best]
    return positions, offsets


def cumulative_distances(lengths: Sequence[float]) -> MetricArray:
    """Return cumulative distances for a sequence of sub-segment lengths."""

    return np.concatenate(([0.0], np.cumsum(np.asarray(lengths, dtype=float))))
