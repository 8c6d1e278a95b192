"""Narrow interfaces to the external collaborators used by the pipelines.

Pipelines never reach for module-level clients; callers build an
:class:`ExternalServices` bundle and pass it in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .models import BoundingBox, GpsPoint, GraphNode, StreetSegment, TraceMatch, WayInfo


class RoadGraph(Protocol):
    def streets_in_bbox(self, bbox: BoundingBox) -> List[StreetSegment]: ...

    def streets_in_radius(
        self, lat: float, lng: float, radius_m: float
    ) -> List[StreetSegment]: ...


class WayMatcher(Protocol):
    def match(self, points: Sequence[GpsPoint]) -> TraceMatch: ...


class WayLookup(Protocol):
    def ways_for_nodes(self, node_ids: Sequence[int]) -> Dict[int, List[WayInfo]]: ...


class NodeIndex(Protocol):
    def nodes_in_bbox(self, bbox: BoundingBox) -> Iterable[GraphNode]: ...


@dataclass(slots=True)
class WayTotals:
    """Externally supplied completion denominators per way."""

    edges: Dict[int, int] = field(default_factory=dict)
    nodes: Dict[int, int] = field(default_factory=dict)

    def edge_total(self, way_id: int) -> Optional[int]:
        return self.edges.get(way_id)

    def node_total(self, way_id: int) -> Optional[int]:
        return self.nodes.get(way_id)

    @classmethod
    def from_ways(cls, ways: Mapping[int, WayInfo]) -> "WayTotals":
        """Derive totals from way node sequences (one edge per consecutive pair)."""

        totals = cls()
        for way_id, way in ways.items():
            distinct = len(set(way.node_ids))
            totals.nodes[way_id] = distinct
            totals.edges[way_id] = max(len(way.node_ids) - 1, 0)
        return totals


@dataclass(slots=True)
class ExternalServices:
    """Collaborators injected into each matching run.

    Only the services needed by the chosen strategy must be present.
    """

    road_graph: Optional[RoadGraph] = None
    way_matcher: Optional[WayMatcher] = None
    way_lookup: Optional[WayLookup] = None
    node_index: Optional[NodeIndex] = None
    way_totals: WayTotals = field(default_factory=WayTotals)
    way_metadata: Dict[int, WayInfo] = field(default_factory=dict)
