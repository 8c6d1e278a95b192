"""Edge validation gates for the edge-graph pipeline.

Gates run in a fixed order and stop at the first failure:

1. ``not_consecutive``: the two nodes must be adjacent in the matched path.
2. ``too_short``: the edge must reach the minimum length.
3. ``excluded_highway_type``: the way's road type must be allowed.
4. ``anti_crossing``: a short edge on a way with too few matched edges is a
   street that was crossed rather than run.
5. ``speed_too_high``: travel between the endpoints must be plausible.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
import logging
from typing import AbstractSet, Dict, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from ..config import (
    ANTI_CROSSING_MAX_LENGTH_M,
    ANTI_CROSSING_MIN_WAY_EDGES,
    EXCLUDED_ROAD_TYPES,
    MAX_SPEED_MPS,
    MIN_EDGE_LENGTH_M,
)
from ..geo import LocalProjection
from ..models import (
    EdgeValidationResult,
    GpsPoint,
    LatLon,
    RejectionReason,
    ResolvedEdge,
    ValidatedEdge,
)

LOGGER = logging.getLogger(__name__)

__all__ = ["adjacent_pairs", "estimate_node_times", "validate_edges"]


def adjacent_pairs(path_node_ids: Sequence[int]) -> Set[Tuple[int, int]]:
    """Normalized (low, high) pairs of nodes adjacent anywhere in the path."""

    return {
        (min(a, b), max(a, b))
        for a, b in zip(path_node_ids[:-1], path_node_ids[1:])
        if a != b
    }


def _speed_mps(
    edge: ResolvedEdge, node_times: Mapping[int, datetime]
) -> Optional[float]:
    start = node_times.get(edge.node_a)
    end = node_times.get(edge.node_b)
    if start is None or end is None:
        return None
    seconds = abs((end - start).total_seconds())
    if seconds <= 0:
        return None
    return edge.length_m / seconds


def _check(
    edge: ResolvedEdge,
    *,
    path_pairs: Set[Tuple[int, int]],
    edges_on_way: int,
    node_times: Optional[Mapping[int, datetime]],
    min_edge_length_m: float,
    excluded_road_types: AbstractSet[str],
    anti_crossing_max_length_m: float,
    anti_crossing_min_way_edges: int,
    max_speed_mps: Optional[float],
) -> Optional[RejectionReason]:
    if (edge.node_a, edge.node_b) not in path_pairs:
        return RejectionReason.NOT_CONSECUTIVE
    if edge.length_m < min_edge_length_m:
        return RejectionReason.TOO_SHORT
    if edge.road_type in excluded_road_types:
        return RejectionReason.EXCLUDED_HIGHWAY_TYPE
    if (
        edge.length_m < anti_crossing_max_length_m
        and edges_on_way < anti_crossing_min_way_edges
    ):
        return RejectionReason.ANTI_CROSSING
    if node_times and max_speed_mps:
        speed = _speed_mps(edge, node_times)
        if speed is not None and speed > max_speed_mps:
            return RejectionReason.SPEED_TOO_HIGH
    return None


def validate_edges(
    edges: Sequence[ResolvedEdge],
    path_node_ids: Sequence[int],
    *,
    node_times: Optional[Mapping[int, datetime]] = None,
    min_edge_length_m: float = MIN_EDGE_LENGTH_M,
    excluded_road_types: AbstractSet[str] = EXCLUDED_ROAD_TYPES,
    anti_crossing_max_length_m: float = ANTI_CROSSING_MAX_LENGTH_M,
    anti_crossing_min_way_edges: int = ANTI_CROSSING_MIN_WAY_EDGES,
    max_speed_mps: Optional[float] = MAX_SPEED_MPS,
) -> EdgeValidationResult:
    """Run every edge through the gates and count rejection reasons.

    Edge identity is direction-free, so repeated traversals of one edge count
    once toward the per-way edge total used by the anti-crossing gate.
    """

    path_pairs = adjacent_pairs(path_node_ids)
    distinct_by_way: Dict[int, Set[str]] = {}
    for edge in edges:
        distinct_by_way.setdefault(edge.way_id, set()).add(edge.edge_id)

    result = EdgeValidationResult()
    reasons: Counter[str] = Counter()
    for edge in edges:
        reason = _check(
            edge,
            path_pairs=path_pairs,
            edges_on_way=len(distinct_by_way.get(edge.way_id, ())),
            node_times=node_times,
            min_edge_length_m=min_edge_length_m,
            excluded_road_types=excluded_road_types,
            anti_crossing_max_length_m=anti_crossing_max_length_m,
            anti_crossing_min_way_edges=anti_crossing_min_way_edges,
            max_speed_mps=max_speed_mps,
        )
        validated = ValidatedEdge(
            node_a=edge.node_a,
            node_b=edge.node_b,
            way_id=edge.way_id,
            way_name=edge.way_name,
            road_type=edge.road_type,
            length_m=edge.length_m,
            sequence_index=edge.sequence_index,
            is_valid=reason is None,
            rejection_reason=reason,
        )
        if reason is None:
            result.valid.append(validated)
        else:
            reasons[reason.value] += 1
            result.rejected.append(validated)
    result.rejection_reasons = dict(reasons)
    if result.rejected:
        LOGGER.info(
            "Validated %d/%d edges; rejections: %s",
            result.valid_count,
            result.total_edges,
            result.rejection_reasons,
        )
    return result


def estimate_node_times(
    points: Sequence[GpsPoint],
    node_coords: Mapping[int, LatLon],
) -> Dict[int, datetime]:
    """Timestamp each node with the time of its closest timestamped GPS point."""

    timed = [p for p in points if p.timestamp is not None]
    if not timed or not node_coords:
        return {}
    projection = LocalProjection.for_points([(p.lat, p.lng) for p in timed])
    point_xy = projection.project([(p.lat, p.lng) for p in timed])
    node_ids = list(node_coords)
    node_xy = projection.project([node_coords[n] for n in node_ids])
    distances = np.linalg.norm(node_xy[:, None, :] - point_xy[None, :, :], axis=2)
    nearest = np.argmin(distances, axis=1)
    return {
        node_id: timed[int(index)].timestamp  # type: ignore[misc]
        for node_id, index in zip(node_ids, nearest)
    }
