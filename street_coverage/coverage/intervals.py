"""Covered-span intervals along a street, in percent of its length.

A street's cumulative state is a sorted list of non-overlapping intervals.
Merging only ever grows that set, so re-applying an interval that is already
covered changes nothing.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..config import (
    INTERVAL_MERGE_TOLERANCE_PERCENT,
    MAX_ALLOWED_GAP_PERCENT,
    MIN_COMPLETE_SPAN_PERCENT,
)
from ..models import CoverageInterval

__all__ = [
    "calculate_coverage_interval",
    "calculate_total_coverage",
    "has_significant_gap",
    "is_street_completed_with_gap_check",
    "merge_intervals",
]


def calculate_coverage_interval(
    start_percent: float, end_percent: float
) -> Optional[CoverageInterval]:
    """Clamp to 0..100 (2 decimals); None when the span is empty."""

    start = max(0.0, min(100.0, float(start_percent)))
    end = max(0.0, min(100.0, float(end_percent)))
    start = float(round(start, 2))
    end = float(round(end, 2))
    if start >= end:
        return None
    return (start, end)


def merge_intervals(
    existing: Iterable[CoverageInterval],
    new: Optional[CoverageInterval] = None,
    *,
    tolerance: float = INTERVAL_MERGE_TOLERANCE_PERCENT,
) -> List[CoverageInterval]:
    """Insert ``new`` into ``existing`` and merge overlapping or near-touching spans."""

    candidates = list(existing)
    if new is not None:
        candidates.append(new)
    cleaned = [
        interval
        for interval in (calculate_coverage_interval(s, e) for s, e in candidates)
        if interval is not None
    ]
    if not cleaned:
        return []
    cleaned.sort()
    merged: List[CoverageInterval] = [cleaned[0]]
    for start, end in cleaned[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end + tolerance:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def calculate_total_coverage(intervals: Iterable[CoverageInterval]) -> float:
    """Sum of interval spans, never above 100."""

    total = sum(max(end - start, 0.0) for start, end in intervals)
    return min(100.0, total)


def has_significant_gap(
    intervals: Iterable[CoverageInterval],
    *,
    max_gap_percent: float = MAX_ALLOWED_GAP_PERCENT,
    min_span_percent: float = MIN_COMPLETE_SPAN_PERCENT,
) -> bool:
    """True when coverage misses the start, the end, a middle stretch, or is too small.

    Separates one continuous 95% span from the same total scattered in
    disconnected chunks.
    """

    ordered = sorted(intervals)
    if not ordered:
        return True
    if ordered[0][0] > max_gap_percent:
        return True
    for (_, prev_end), (next_start, _) in zip(ordered[:-1], ordered[1:]):
        if next_start - prev_end > max_gap_percent:
            return True
    if ordered[-1][1] < 100.0 - max_gap_percent:
        return True
    return calculate_total_coverage(ordered) < min_span_percent


def is_street_completed_with_gap_check(
    intervals: Iterable[CoverageInterval], threshold_percent: float
) -> bool:
    ordered = list(intervals)
    if calculate_total_coverage(ordered) < threshold_percent:
        return False
    return not has_significant_gap(ordered)
