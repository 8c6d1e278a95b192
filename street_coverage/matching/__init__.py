"""Geometric matching: point assignment, covered distance and aggregation."""

from .aggregation import aggregate_matches, aggregate_streets, bucket_unnamed
from .distance import (
    calculate_consecutive_distance,
    calculate_geometry_distance,
    calculate_segment_coverage,
)
from .geometric import assign_points, candidate_bbox
from .names import normalize_street_name, normalize_street_name_strict, street_names_match
from .pipeline import match_trace

__all__ = [
    "aggregate_matches",
    "aggregate_streets",
    "assign_points",
    "bucket_unnamed",
    "calculate_consecutive_distance",
    "calculate_geometry_distance",
    "calculate_segment_coverage",
    "candidate_bbox",
    "match_trace",
    "normalize_street_name",
    "normalize_street_name_strict",
    "street_names_match",
]
