"""Aggregate fragmented street segments into logical streets.

Segments sharing a normalized name and road type form one street. Unnamed
segments are bucketed by road type instead.
"""

from __future__ import annotations

from collections import OrderedDict
import logging
from typing import Dict, List, Sequence, Tuple

from ..config import (
    COMPLETION_THRESHOLD,
    MAX_DISPLAY_RATIO,
    SHORT_STREET_MAX_LENGTH_M,
    SHORT_STREET_THRESHOLD,
    UNNAMED_MIN_COVERED_M,
    UNNAMED_MIN_LENGTH_M,
)
from ..models import (
    AggregationResult,
    CompletionStatus,
    LogicalStreet,
    MatchedSegment,
    UnnamedBucket,
)
from ..utils import clamp_ratio, round_distance, round_ratio, safe_ratio
from .names import is_unnamed, normalize_street_name, normalize_street_name_strict

LOGGER = logging.getLogger(__name__)

UNNAMED_LABELS = {
    "footway": "Footpath (Unnamed)",
    "path": "Path (Unnamed)",
    "track": "Track (Unnamed)",
    "cycleway": "Cycleway (Unnamed)",
    "pedestrian": "Pedestrian Way (Unnamed)",
    "steps": "Steps (Unnamed)",
    "service": "Service Road (Unnamed)",
    "unknown": "Unknown Road (Unnamed)",
}

__all__ = [
    "UNNAMED_LABELS",
    "aggregate_matches",
    "aggregate_streets",
    "bucket_unnamed",
    "completion_threshold_for_length",
    "unnamed_label",
]


def completion_threshold_for_length(
    length_m: float,
    *,
    short_max_length_m: float = SHORT_STREET_MAX_LENGTH_M,
    short_threshold: float = SHORT_STREET_THRESHOLD,
    base_threshold: float = COMPLETION_THRESHOLD,
) -> float:
    """Short streets must be covered fully; longer ones use the base threshold."""

    if length_m <= short_max_length_m:
        return short_threshold
    return base_threshold


def unnamed_label(road_type: str) -> str:
    label = UNNAMED_LABELS.get(road_type)
    if label:
        return label
    readable = (road_type or "unknown").replace("_", " ")
    return f"{readable[:1].upper()}{readable[1:]} (Unnamed)"


def _totals(segments: Sequence[MatchedSegment]) -> Tuple[float, float, float]:
    length = sum(s.length_m for s in segments)
    run = sum(s.geometry_distance_covered_m for s in segments)
    gps = sum(s.distance_covered_m for s in segments)
    return length, run, gps


def _street_status(
    segments: Sequence[MatchedSegment],
    length: float,
    capped_ratio: float,
    raw_ratio: float,
    threshold: float = COMPLETION_THRESHOLD,
) -> CompletionStatus:
    if capped_ratio < completion_threshold_for_length(length, base_threshold=threshold):
        return CompletionStatus.PARTIAL
    # Inflated totals only count when every piece was completed on its own.
    if raw_ratio > 1.0 and any(
        s.completion_status is not CompletionStatus.FULL for s in segments
    ):
        return CompletionStatus.PARTIAL
    return CompletionStatus.FULL


def aggregate_streets(
    segments: Sequence[MatchedSegment],
    *,
    strict_names: bool = False,
    threshold: float = COMPLETION_THRESHOLD,
) -> List[LogicalStreet]:
    """Group named segments by (normalized name, road type)."""

    normalize = normalize_street_name_strict if strict_names else normalize_street_name
    groups: "OrderedDict[Tuple[str, str], List[MatchedSegment]]" = OrderedDict()
    for segment in segments:
        if is_unnamed(segment.name):
            continue
        key = (normalize(segment.name), segment.road_type)
        groups.setdefault(key, []).append(segment)

    streets: List[LogicalStreet] = []
    for (normalized, road_type), members in groups.items():
        length, run, gps = _totals(members)
        raw_ratio = safe_ratio(run, length)
        capped = clamp_ratio(raw_ratio, MAX_DISPLAY_RATIO)
        streets.append(
            LogicalStreet(
                display_name=(members[0].name or "").strip(),
                normalized_name=normalized,
                road_type=road_type,
                total_length_m=round_distance(length),
                total_distance_covered_m=round_distance(min(run, length)),
                total_distance_run_m=round_distance(run),
                total_gps_distance_m=round_distance(gps),
                coverage_ratio=round_ratio(capped),
                raw_coverage_ratio=round_ratio(raw_ratio),
                completion_status=_street_status(
                    members, length, capped, raw_ratio, threshold
                ),
                member_segment_ids=[s.segment_id for s in members],
            )
        )
    streets.sort(key=lambda s: (-s.coverage_ratio, -s.total_length_m, s.normalized_name))
    return streets


def bucket_unnamed(
    segments: Sequence[MatchedSegment],
    *,
    min_length_m: float = UNNAMED_MIN_LENGTH_M,
    min_covered_m: float = UNNAMED_MIN_COVERED_M,
) -> List[UnnamedBucket]:
    """Bucket unnamed segments by road type, dropping tiny noisy fragments."""

    groups: Dict[str, List[MatchedSegment]] = {}
    dropped = 0
    for segment in segments:
        if not is_unnamed(segment.name):
            continue
        if (
            segment.length_m < min_length_m
            and segment.geometry_distance_covered_m < min_covered_m
        ):
            dropped += 1
            continue
        groups.setdefault(segment.road_type or "unknown", []).append(segment)
    if dropped:
        LOGGER.debug("Dropped %d unnamed fragments below size minimums", dropped)

    buckets: List[UnnamedBucket] = []
    for road_type, members in groups.items():
        length, run, _gps = _totals(members)
        raw_ratio = safe_ratio(run, length)
        full = sum(1 for s in members if s.completion_status is CompletionStatus.FULL)
        buckets.append(
            UnnamedBucket(
                road_type=road_type,
                display_label=unnamed_label(road_type),
                total_length_m=round_distance(length),
                total_distance_covered_m=round_distance(min(run, length)),
                total_distance_run_m=round_distance(run),
                coverage_ratio=round_ratio(clamp_ratio(raw_ratio, MAX_DISPLAY_RATIO)),
                raw_coverage_ratio=round_ratio(raw_ratio),
                full_count=full,
                partial_count=len(members) - full,
                member_segment_ids=[s.segment_id for s in members],
            )
        )
    buckets.sort(key=lambda b: (-b.total_length_m, b.road_type))
    return buckets


def aggregate_matches(
    segments: Sequence[MatchedSegment],
    *,
    strict_names: bool = False,
    threshold: float = COMPLETION_THRESHOLD,
) -> AggregationResult:
    return AggregationResult(
        streets=aggregate_streets(
            segments, strict_names=strict_names, threshold=threshold
        ),
        unnamed_buckets=bucket_unnamed(segments),
    )
