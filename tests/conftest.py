"""Global pytest fixtures & helpers.

Adds project root to path and provides factories for GPS points, street
segments and matched segments laid out on a local east/north grid (meters)
around a fixed origin.
"""
from __future__ import annotations

import math
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from street_coverage.geo import polyline_length_m
from street_coverage.models import (
    CompletionStatus,
    GpsPoint,
    MatchedSegment,
    StreetSegment,
)

ORIGIN_LAT = 51.5
ORIGIN_LNG = -0.1
METERS_PER_DEG = 111_320.0
START_TIME = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


# --- Factory helpers -------------------------------------------------
def latlng(north_m=0.0, east_m=0.0):
    lat = ORIGIN_LAT + north_m / METERS_PER_DEG
    lng = ORIGIN_LNG + east_m / (METERS_PER_DEG * math.cos(math.radians(ORIGIN_LAT)))
    return (lat, lng)


def make_point(north_m=0.0, east_m=0.0, seconds=None):
    lat, lng = latlng(north_m, east_m)
    ts = START_TIME + timedelta(seconds=seconds) if seconds is not None else None
    return GpsPoint(lat=lat, lng=lng, timestamp=ts)


def make_street(seg_id, name, start_east, end_east, north=0.0, road_type="residential", vertices=2):
    step = (end_east - start_east) / (vertices - 1)
    geometry = [latlng(north, start_east + i * step) for i in range(vertices)]
    return StreetSegment(
        id=seg_id,
        name=name,
        road_type=road_type,
        length_m=polyline_length_m(geometry),
        geometry=geometry,
    )


def make_matched(seg_id, name, length, covered, road_type="residential", status=None, gps=None):
    ratio = covered / length if length else 0.0
    if status is None:
        status = CompletionStatus.FULL if ratio >= 0.9 else CompletionStatus.PARTIAL
    return MatchedSegment(
        segment_id=seg_id,
        name=name,
        road_type=road_type,
        length_m=length,
        matched_point_indices=[0, 1, 2],
        distance_covered_m=covered if gps is None else gps,
        geometry_distance_covered_m=covered,
        coverage_ratio=min(ratio, 1.0),
        geometry_coverage_ratio=min(ratio, 1.0),
        raw_geometry_ratio=ratio,
        completion_status=status,
    )


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def offset():
    """Convert a (north, east) offset in meters to a lat/lng pair."""

    return latlng


@pytest.fixture
def point_factory():
    return make_point


@pytest.fixture
def street_factory():
    return make_street


@pytest.fixture
def matched_factory():
    return make_matched


@pytest.fixture
def walk_east():
    """Points every 10 m heading east along the origin latitude, 5 s apart."""

    def _walk(start_m, end_m, north_m=0.0, step_m=10.0, start_s=0):
        count = int(round((end_m - start_m) / step_m)) + 1
        return [
            make_point(north_m, start_m + i * step_m, seconds=start_s + i * 5)
            for i in range(count)
        ]

    return _walk


@pytest.fixture
def no_sleep():
    calls = []

    def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
