"""Central configuration for the street coverage engine.

All values are constants imported by the rest of the package. Every value can
be overridden through an environment variable of the same name (optionally
via a local `.env`). Components accept these as keyword defaults so callers
and tests can pass their own thresholds.
"""

from __future__ import annotations

import os
from typing import Tuple

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(key)
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Geometric matching
# ---------------------------------------------------------------------------
# Maximum perpendicular distance (meters) between a GPS point and a street.
SNAP_TOLERANCE_M = _env_float("SNAP_TOLERANCE_M", 25.0)

# Buffer added around the trace bounding box when fetching candidate streets.
BBOX_BUFFER_M = _env_float("BBOX_BUFFER_M", 100.0)

# Geometry coverage ratio at or above which a segment counts as FULL.
COMPLETION_THRESHOLD = _env_float("COMPLETION_THRESHOLD", 0.90)

# Streets up to this length must be covered end to end.
SHORT_STREET_MAX_LENGTH_M = _env_float("SHORT_STREET_MAX_LENGTH_M", 100.0)
SHORT_STREET_THRESHOLD = _env_float("SHORT_STREET_THRESHOLD", 1.0)

# Segments with fewer matched points are treated as GPS noise.
MIN_POINTS_PER_SEGMENT = _env_int("MIN_POINTS_PER_SEGMENT", 3)

# Upper bound applied to clamped coverage ratios.
MAX_DISPLAY_RATIO = 1.0


# ---------------------------------------------------------------------------
# Unnamed road bucketing
# ---------------------------------------------------------------------------
# An unnamed segment is dropped only when it is shorter than the minimum
# length and also covered less than the minimum distance.
UNNAMED_MIN_LENGTH_M = _env_float("UNNAMED_MIN_LENGTH_M", 30.0)
UNNAMED_MIN_COVERED_M = _env_float("UNNAMED_MIN_COVERED_M", 20.0)


# ---------------------------------------------------------------------------
# Coverage intervals
# ---------------------------------------------------------------------------
# Intervals within this many percent of touching are merged.
INTERVAL_MERGE_TOLERANCE_PERCENT = _env_float("INTERVAL_MERGE_TOLERANCE_PERCENT", 1.0)

# Largest gap (start, middle or end) tolerated on a completed street.
MAX_ALLOWED_GAP_PERCENT = _env_float("MAX_ALLOWED_GAP_PERCENT", 5.0)

# Minimum total merged span for a street to count as complete.
MIN_COMPLETE_SPAN_PERCENT = _env_float("MIN_COMPLETE_SPAN_PERCENT", 95.0)


# ---------------------------------------------------------------------------
# Edge-graph matching (OSRM map matching)
# ---------------------------------------------------------------------------
OSRM_BASE_URL = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")
OSRM_PROFILE = os.getenv("OSRM_PROFILE", "foot")

# Per-request coordinate limit of the matching service.
OSRM_MAX_COORDINATES = _env_int("OSRM_MAX_COORDINATES", 100)

# A trailing chunk smaller than this is folded into the previous chunk.
OSRM_MIN_CHUNK_POINTS = _env_int("OSRM_MIN_CHUNK_POINTS", 5)

# Pause between sequential chunk requests.
OSRM_CHUNK_DELAY_SECONDS = _env_float("OSRM_CHUNK_DELAY_SECONDS", 1.1)

# Mean confidence below this adds an advisory warning.
OSRM_LOW_CONFIDENCE = _env_float("OSRM_LOW_CONFIDENCE", 0.5)

# Edge validation gates.
MIN_EDGE_LENGTH_M = _env_float("MIN_EDGE_LENGTH_M", 1.0)
EXCLUDED_ROAD_TYPES = frozenset(
    _env_list(
        "EXCLUDED_ROAD_TYPES",
        ("motorway", "motorway_link", "trunk_link", "construction", "proposed"),
    )
)
ANTI_CROSSING_MAX_LENGTH_M = _env_float("ANTI_CROSSING_MAX_LENGTH_M", 20.0)
ANTI_CROSSING_MIN_WAY_EDGES = _env_int("ANTI_CROSSING_MIN_WAY_EDGES", 2)

# Fastest plausible speed between two edge endpoints (about 54 km/h).
MAX_SPEED_MPS = _env_float("MAX_SPEED_MPS", 15.0)


# ---------------------------------------------------------------------------
# Way resolution (Overpass)
# ---------------------------------------------------------------------------
OVERPASS_ENDPOINTS = _env_list(
    "OVERPASS_ENDPOINTS",
    (
        "https://overpass-api.de/api/interpreter",
        "https://overpass.kumi.systems/api/interpreter",
        "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
    ),
)

# Server-side query timeout passed inside the Overpass QL header.
OVERPASS_QUERY_TIMEOUT_SECONDS = _env_int("OVERPASS_QUERY_TIMEOUT_SECONDS", 60)

# Nodes per node-to-way lookup request and pause between batches.
WAY_RESOLVER_BATCH_SIZE = _env_int("WAY_RESOLVER_BATCH_SIZE", 50)
WAY_RESOLVER_BATCH_DELAY_SECONDS = _env_float(
    "WAY_RESOLVER_BATCH_DELAY_SECONDS", 0.5
)

# Node-to-way cache lifetime and capacity.
WAY_CACHE_TTL_DAYS = _env_int("WAY_CACHE_TTL_DAYS", 30)
WAY_CACHE_MAX_NODES = _env_int("WAY_CACHE_MAX_NODES", 200_000)

# Highway values requested when fetching streets for geometric matching.
STREET_ROAD_TYPES = _env_list(
    "STREET_ROAD_TYPES",
    (
        "residential",
        "primary",
        "secondary",
        "tertiary",
        "unclassified",
        "living_street",
        "pedestrian",
        "footway",
        "path",
        "cycleway",
        "track",
        "service",
        "steps",
    ),
)


# ---------------------------------------------------------------------------
# HTTP / retry behaviour
# ---------------------------------------------------------------------------
# Attempts per endpoint before failing over to the next one.
OVERPASS_MAX_RETRIES = _env_int("OVERPASS_MAX_RETRIES", 3)
OSRM_MAX_RETRIES = _env_int("OSRM_MAX_RETRIES", 2)

# Exponential backoff: initial delay doubled per attempt, capped.
RETRY_INITIAL_BACKOFF_SECONDS = _env_float("RETRY_INITIAL_BACKOFF_SECONDS", 2.0)
RETRY_BACKOFF_FACTOR = _env_float("RETRY_BACKOFF_FACTOR", 2.0)
RETRY_BACKOFF_MAX_SECONDS = _env_float("RETRY_BACKOFF_MAX_SECONDS", 8.0)

# Connection-level retries handled by urllib3 inside the session adapter.
HTTP_CONNECT_RETRIES = _env_int("HTTP_CONNECT_RETRIES", 2)

# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("REQUEST_TIMEOUT", 30)

USER_AGENT = os.getenv("STREET_COVERAGE_USER_AGENT", "street-coverage/0.1")


# ---------------------------------------------------------------------------
# Node-proximity matching
# ---------------------------------------------------------------------------
NODE_SNAP_RADIUS_M = _env_float("NODE_SNAP_RADIUS_M", 25.0)

# Ways with at most this many nodes need every node hit.
SHORT_WAY_MAX_NODES = _env_int("SHORT_WAY_MAX_NODES", 10)
NODE_COMPLETION_THRESHOLD = _env_float("NODE_COMPLETION_THRESHOLD", 0.90)


# ---------------------------------------------------------------------------
# Overlap detection
# ---------------------------------------------------------------------------
# Interior points kept per overlapping area; scanning stops once reached.
OVERLAP_SAMPLE_POINTS = _env_int("OVERLAP_SAMPLE_POINTS", 3)


# ---------------------------------------------------------------------------
# GPX input
# ---------------------------------------------------------------------------
GPX_MIN_POINTS = _env_int("GPX_MIN_POINTS", 2)

# Write JSON output with sorted keys and indentation when True.
OUTPUT_PRETTY_JSON = _env_bool("OUTPUT_PRETTY_JSON", True)
