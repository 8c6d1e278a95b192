"""Cumulative coverage: interval merging and per-user progress."""

from .intervals import (
    calculate_coverage_interval,
    calculate_total_coverage,
    has_significant_gap,
    is_street_completed_with_gap_check,
    merge_intervals,
)
from .progress import ProgressStore

__all__ = [
    "ProgressStore",
    "calculate_coverage_interval",
    "calculate_total_coverage",
    "has_significant_gap",
    "is_street_completed_with_gap_check",
    "merge_intervals",
]
