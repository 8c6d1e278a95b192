"""Graph-free matching: every network node near any GPS point is a hit.

Sequence plays no part, so hits from one trace are a plain union.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence

import shapely
from shapely import STRtree
from shapely.geometry import box

from ..config import NODE_SNAP_RADIUS_M
from ..geo import haversine_m, radius_bbox
from ..interfaces import NodeIndex
from ..models import BoundingBox, GpsPoint, GraphNode

LOGGER = logging.getLogger(__name__)

__all__ = ["StrTreeNodeIndex", "count_hits_by_way", "match_nodes"]


class StrTreeNodeIndex:
    """In-memory node index answering bounding-box queries."""

    def __init__(self, nodes: Iterable[GraphNode]):
        self.nodes: List[GraphNode] = list(nodes)
        self._tree: STRtree | None = None
        if self.nodes:
            coords = [(node.lng, node.lat) for node in self.nodes]
            self._tree = STRtree(shapely.points(coords))

    def __len__(self) -> int:
        return len(self.nodes)

    def nodes_in_bbox(self, bbox: BoundingBox) -> List[GraphNode]:
        if self._tree is None:
            return []
        query = box(bbox.min_lng, bbox.min_lat, bbox.max_lng, bbox.max_lat)
        indices = self._tree.query(query)
        return [self.nodes[int(i)] for i in sorted(indices)]


def match_nodes(
    points: Sequence[GpsPoint],
    index: NodeIndex,
    *,
    radius_m: float = NODE_SNAP_RADIUS_M,
) -> Dict[int, GraphNode]:
    """Return every node within ``radius_m`` (great-circle) of any point."""

    hits: Dict[int, GraphNode] = {}
    for point in points:
        bbox = radius_bbox(point.lat, point.lng, radius_m)
        for node in index.nodes_in_bbox(bbox):
            if node.node_id in hits:
                continue
            if haversine_m(point.lat, point.lng, node.lat, node.lng) <= radius_m:
                hits[node.node_id] = node
    LOGGER.info("Node proximity: %d points hit %d nodes", len(points), len(hits))
    return hits


def count_hits_by_way(nodes: Iterable[GraphNode]) -> Dict[int, int]:
    """Count distinct hit nodes per way."""

    counts: Dict[int, int] = {}
    seen = set()
    for node in nodes:
        if node.node_id in seen:
            continue
        seen.add(node.node_id)
        for way_id in dict.fromkeys(node.way_ids):
            counts[way_id] = counts.get(way_id, 0) + 1
    return counts
