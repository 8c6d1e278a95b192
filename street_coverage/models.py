"""Data model shared by the matching pipelines and the progress store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

LatLon = Tuple[float, float]
# [start_percent, end_percent] along a street, both within 0..100.
CoverageInterval = Tuple[float, float]


class CompletionStatus(str, Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class MatchStrategy(str, Enum):
    """Matching pipeline that produced a coverage summary."""

    GEOMETRIC = "geometric"
    EDGE = "edge"
    NODE_PROXIMITY = "node_proximity"


class RejectionReason(str, Enum):
    NOT_CONSECUTIVE = "not_consecutive"
    TOO_SHORT = "too_short"
    EXCLUDED_HIGHWAY_TYPE = "excluded_highway_type"
    ANTI_CROSSING = "anti_crossing"
    SPEED_TOO_HIGH = "speed_too_high"


@dataclass(frozen=True, slots=True)
class GpsPoint:
    lat: float
    lng: float
    elevation: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned lat/lng box (degrees)."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def intersects(self, other: "BoundingBox") -> bool:
        return not (
            self.max_lat < other.min_lat
            or self.min_lat > other.max_lat
            or self.max_lng < other.min_lng
            or self.min_lng > other.max_lng
        )

    def contains(self, lat: float, lng: float) -> bool:
        return (
            self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng
        )


@dataclass(slots=True)
class StreetSegment:
    """One atomic piece of road geometry supplied by the road graph."""

    id: str
    name: Optional[str]
    road_type: str
    length_m: float
    geometry: List[LatLon]
    ref: Optional[str] = None
    surface: Optional[str] = None
    access: Optional[str] = None
    alt_names: Tuple[str, ...] = ()


@dataclass(slots=True)
class MatchedSegment:
    """Per-run coverage of one street segment.

    ``distance_covered_m`` sums straight-line hops between consecutive matched
    points; ``geometry_distance_covered_m`` measures the same runs along the
    segment geometry and drives completion decisions. ``coverage_intervals``
    holds one span per consecutive run, so a leave-and-return visit never
    covers the stretch in between.
    """

    segment_id: str
    name: Optional[str]
    road_type: str
    length_m: float
    matched_point_indices: List[int]
    distance_covered_m: float
    geometry_distance_covered_m: float
    coverage_ratio: float
    geometry_coverage_ratio: float
    raw_geometry_ratio: float
    completion_status: CompletionStatus
    coverage_intervals: List[CoverageInterval] = field(default_factory=list)

    @property
    def point_count(self) -> int:
        return len(self.matched_point_indices)


@dataclass(slots=True)
class LogicalStreet:
    display_name: str
    normalized_name: str
    road_type: str
    total_length_m: float
    total_distance_covered_m: float
    total_distance_run_m: float
    total_gps_distance_m: float
    coverage_ratio: float
    raw_coverage_ratio: float
    completion_status: CompletionStatus
    member_segment_ids: List[str] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.member_segment_ids)


@dataclass(slots=True)
class UnnamedBucket:
    road_type: str
    display_label: str
    total_length_m: float
    total_distance_covered_m: float
    total_distance_run_m: float
    coverage_ratio: float
    raw_coverage_ratio: float
    full_count: int
    partial_count: int
    member_segment_ids: List[str] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.member_segment_ids)


@dataclass(slots=True)
class AggregationResult:
    streets: List[LogicalStreet]
    unnamed_buckets: List[UnnamedBucket]


@dataclass(frozen=True, slots=True)
class GraphNode:
    node_id: int
    lat: float
    lng: float
    way_ids: Tuple[int, ...] = ()


@dataclass(slots=True)
class WayInfo:
    """Way metadata cached per node for edge resolution."""

    way_id: int
    name: Optional[str]
    road_type: str
    node_ids: Tuple[int, ...]
    node_coords: Dict[int, LatLon] = field(default_factory=dict)
    length_m: float = 0.0


@dataclass(slots=True)
class TraceMatch:
    """Result of snapping a trace (or one chunk of it) to the road network."""

    confidence: float
    node_ids: List[int]
    geometry: List[LatLon]
    distance_m: float = 0.0
    duration_s: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "TraceMatch":
        return cls(confidence=0.0, node_ids=[], geometry=[])


@dataclass(slots=True)
class ResolvedEdge:
    """Edge between two adjacent network nodes, with ``node_a < node_b``."""

    node_a: int
    node_b: int
    way_id: int
    way_name: Optional[str]
    road_type: str
    length_m: float
    # Position of the pair in the matched node sequence.
    sequence_index: int = -1

    @property
    def edge_id(self) -> str:
        return f"{self.node_a}-{self.node_b}"


@dataclass(slots=True)
class ValidatedEdge(ResolvedEdge):
    is_valid: bool = True
    rejection_reason: Optional[RejectionReason] = None


@dataclass(slots=True)
class EdgeValidationResult:
    valid: List[ValidatedEdge] = field(default_factory=list)
    rejected: List[ValidatedEdge] = field(default_factory=list)
    rejection_reasons: Dict[str, int] = field(default_factory=dict)

    @property
    def total_edges(self) -> int:
        return len(self.valid) + len(self.rejected)

    @property
    def valid_count(self) -> int:
        return len(self.valid)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


@dataclass(slots=True)
class WayCompletion:
    """Completion of one way in edge or node-proximity mode."""

    way_id: int
    name: Optional[str]
    road_type: str
    completed: int
    total: int
    percentage: float
    is_complete: bool
    length_m: float = 0.0


@dataclass(slots=True)
class StreetCompletion:
    name: str
    way_ids: List[int]
    completed: int
    total: int
    percentage: float
    is_complete: bool


@dataclass(slots=True)
class CoverageSummary:
    """Strategy-independent per-street result consumed by the progress store."""

    strategy: MatchStrategy
    street_id: str
    name: Optional[str]
    road_type: str
    length_m: float
    percentage: float
    is_complete: bool
    intervals: List[CoverageInterval] = field(default_factory=list)


@dataclass(slots=True)
class StreetProgress:
    user_id: str
    street_id: str
    name: Optional[str]
    road_type: str
    length_m: float
    percentage: float = 0.0
    ever_completed: bool = False
    run_count: int = 0
    completion_count: int = 0
    first_run_date: Optional[datetime] = None
    last_run_date: Optional[datetime] = None
    intervals: List[CoverageInterval] = field(default_factory=list)
    applied_run_ids: Set[str] = field(default_factory=set)


@dataclass(slots=True)
class EdgeRecord:
    """Persisted distinct edge for one user."""

    user_id: str
    edge_id: str
    node_a: int
    node_b: int
    way_id: int
    way_name: Optional[str]
    road_type: str
    length_m: float
    run_count: int = 0
    first_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None


@dataclass(slots=True)
class NodeHit:
    user_id: str
    node_id: int
    way_ids: Tuple[int, ...] = ()
    first_hit_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Area:
    """User-defined circular area."""

    id: str
    name: str
    center_lat: float
    center_lng: float
    radius_m: float


@dataclass(slots=True)
class OverlapResult:
    area: Area
    overlaps: bool
    sample_points: List[GpsPoint] = field(default_factory=list)
