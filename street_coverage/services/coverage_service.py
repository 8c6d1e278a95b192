"""Coverage service.

Runs one activity through a chosen matching strategy and folds the result
into the user's cumulative progress. External collaborators arrive through
:class:`ExternalServices`; the service holds no global clients. The way
resolver (and its node cache) lives as long as the service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..config import (
    BBOX_BUFFER_M,
    COMPLETION_THRESHOLD,
    MIN_POINTS_PER_SEGMENT,
    NODE_SNAP_RADIUS_M,
    OSRM_CHUNK_DELAY_SECONDS,
    OSRM_MAX_COORDINATES,
    OSRM_MIN_CHUNK_POINTS,
    SHORT_WAY_MAX_NODES,
    SNAP_TOLERANCE_M,
    WAY_RESOLVER_BATCH_DELAY_SECONDS,
)
from ..coverage import ProgressStore
from ..errors import EmptyTraceError, ExternalServiceError, RoadGraphUnavailableError
from ..graph import (
    WayResolver,
    count_hits_by_way,
    group_ways_by_name,
    match_in_chunks,
    match_nodes,
    validate_edges,
    way_completions,
)
from ..graph.edges import estimate_node_times
from ..interfaces import ExternalServices
from ..matching import aggregate_matches, candidate_bbox, match_trace
from ..models import (
    AggregationResult,
    Area,
    CompletionStatus,
    CoverageSummary,
    EdgeValidationResult,
    GpsPoint,
    LatLon,
    MatchedSegment,
    MatchStrategy,
    OverlapResult,
    StreetCompletion,
    StreetProgress,
    TraceMatch,
    WayCompletion,
    WayInfo,
)
from ..overlap import find_overlapping_areas


@dataclass(slots=True)
class CoverageServiceConfig:
    snap_tolerance_m: float = SNAP_TOLERANCE_M
    bbox_buffer_m: float = BBOX_BUFFER_M
    completion_threshold: float = COMPLETION_THRESHOLD
    min_points_per_segment: int = MIN_POINTS_PER_SEGMENT
    strict_names: bool = False
    node_snap_radius_m: float = NODE_SNAP_RADIUS_M
    max_coordinates: int = OSRM_MAX_COORDINATES
    min_chunk_points: int = OSRM_MIN_CHUNK_POINTS
    chunk_delay_s: float = OSRM_CHUNK_DELAY_SECONDS
    batch_delay_s: float = WAY_RESOLVER_BATCH_DELAY_SECONDS
    short_way_max_nodes: int = SHORT_WAY_MAX_NODES
    sleep: Callable[[float], None] = time.sleep
    logger: logging.Logger | None = None


@dataclass(slots=True)
class GeometricRunResult:
    matched_segments: List[MatchedSegment]
    aggregation: AggregationResult
    summaries: List[CoverageSummary]
    progress: List[StreetProgress]


@dataclass(slots=True)
class EdgeRunResult:
    trace: TraceMatch
    validation: EdgeValidationResult
    way_completions: List[WayCompletion]
    new_edges: int
    summaries: List[CoverageSummary]
    progress: List[StreetProgress]
    warnings: List[str] = field(default_factory=list)


@dataclass(slots=True)
class NodeRunResult:
    hit_node_ids: List[int]
    new_hits: int
    way_completions: List[WayCompletion]
    streets: List[StreetCompletion]
    summaries: List[CoverageSummary]
    progress: List[StreetProgress]


def summaries_from_matches(segments: Sequence[MatchedSegment]) -> List[CoverageSummary]:
    return [
        CoverageSummary(
            strategy=MatchStrategy.GEOMETRIC,
            street_id=segment.segment_id,
            name=segment.name,
            road_type=segment.road_type,
            length_m=segment.length_m,
            percentage=round(segment.geometry_coverage_ratio * 100.0, 1),
            is_complete=segment.completion_status is CompletionStatus.FULL,
            intervals=list(segment.coverage_intervals),
        )
        for segment in segments
    ]


def summaries_from_ways(
    strategy: MatchStrategy, completions: Sequence[WayCompletion]
) -> List[CoverageSummary]:
    return [
        CoverageSummary(
            strategy=strategy,
            street_id=f"way/{completion.way_id}",
            name=completion.name,
            road_type=completion.road_type,
            length_m=completion.length_m,
            percentage=completion.percentage,
            is_complete=completion.is_complete,
        )
        for completion in completions
    ]


class CoverageService:
    def __init__(
        self,
        services: ExternalServices,
        store: ProgressStore | None = None,
        config: CoverageServiceConfig | None = None,
    ):
        self.services = services
        self.store = store or ProgressStore()
        self.config = config or CoverageServiceConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._resolver: WayResolver | None = None
        if services.way_lookup is not None:
            self._resolver = WayResolver(
                services.way_lookup,
                batch_delay_s=self.config.batch_delay_s,
                sleep=self.config.sleep,
                logger=self._log,
            )

    def _merge(
        self,
        user_id: str,
        summaries: Sequence[CoverageSummary],
        run_id: Optional[str],
        run_date: Optional[datetime],
    ) -> List[StreetProgress]:
        return self.store.merge_summaries(
            user_id,
            summaries,
            run_id=run_id,
            run_date=run_date,
            completion_threshold=self.config.completion_threshold,
        )

    # ------------------------------------------------------------------
    # Geometric projection
    # ------------------------------------------------------------------
    def process_geometric(
        self,
        user_id: str,
        points: Sequence[GpsPoint],
        *,
        run_id: Optional[str] = None,
        run_date: Optional[datetime] = None,
    ) -> GeometricRunResult:
        if not points:
            raise EmptyTraceError("Cannot match an empty trace")
        road_graph = self.services.road_graph
        if road_graph is None:
            raise ValueError("Geometric matching requires a road graph service")
        bbox = candidate_bbox(points, self.config.bbox_buffer_m)
        if bbox is None:
            raise EmptyTraceError("Cannot match an empty trace")
        try:
            segments = road_graph.streets_in_bbox(bbox)
        except ExternalServiceError as exc:
            raise RoadGraphUnavailableError(
                f"Unable to fetch streets for trace: {exc}"
            ) from exc
        self._log.info(
            "Geometric run user=%s points=%d candidate_streets=%d",
            user_id,
            len(points),
            len(segments),
        )
        matched = match_trace(
            points,
            segments,
            tolerance_m=self.config.snap_tolerance_m,
            threshold=self.config.completion_threshold,
            min_points=self.config.min_points_per_segment,
        )
        aggregation = aggregate_matches(
            matched,
            strict_names=self.config.strict_names,
            threshold=self.config.completion_threshold,
        )
        summaries = summaries_from_matches(matched)
        progress = self._merge(user_id, summaries, run_id, run_date)
        return GeometricRunResult(
            matched_segments=matched,
            aggregation=aggregation,
            summaries=summaries,
            progress=progress,
        )

    # ------------------------------------------------------------------
    # Edge graph
    # ------------------------------------------------------------------
    def process_edges(
        self,
        user_id: str,
        points: Sequence[GpsPoint],
        *,
        run_id: Optional[str] = None,
        run_date: Optional[datetime] = None,
    ) -> EdgeRunResult:
        if not points:
            raise EmptyTraceError("Cannot match an empty trace")
        matcher = self.services.way_matcher
        if matcher is None or self._resolver is None:
            raise ValueError("Edge matching requires way matcher and way lookup services")

        trace = match_in_chunks(
            points,
            matcher,
            max_coordinates=self.config.max_coordinates,
            min_chunk_points=self.config.min_chunk_points,
            delay_s=self.config.chunk_delay_s,
            sleep=self.config.sleep,
        )
        if not trace.node_ids:
            raise RoadGraphUnavailableError(
                "No part of the trace could be matched to the road network"
            )
        edges, resolve_warnings = self._resolver.resolve_edges(trace.node_ids)
        ways_by_node = self._resolver.ways_for_nodes(trace.node_ids)
        known_ways: Dict[int, WayInfo] = dict(self.services.way_metadata)
        node_coords: Dict[int, LatLon] = {}
        for ways in ways_by_node.values():
            for way in ways:
                known_ways.setdefault(way.way_id, way)
                node_coords.update(way.node_coords)

        node_times = estimate_node_times(
            points, {n: node_coords[n] for n in trace.node_ids if n in node_coords}
        )
        validation = validate_edges(edges, trace.node_ids, node_times=node_times)
        new_edges = self.store.record_edges(
            user_id, validation.valid, run_id=run_id, run_at=run_date
        )

        touched = {edge.way_id for edge in validation.valid}
        cumulative = self.store.edge_counts_by_way(user_id)

        def total_edges(way_id: int) -> Optional[int]:
            total = self.services.way_totals.edge_total(way_id)
            if total is None and way_id in known_ways:
                total = max(len(known_ways[way_id].node_ids) - 1, 0)
            return total

        completions = way_completions(
            {way_id: cumulative.get(way_id, 0) for way_id in touched},
            total_edges,
            way_metadata=known_ways,
            short_max=max(self.config.short_way_max_nodes - 1, 0),
            unit="edges",
        )
        summaries = summaries_from_ways(MatchStrategy.EDGE, completions)
        progress = self._merge(user_id, summaries, run_id, run_date)
        warnings = list(trace.warnings) + resolve_warnings
        self._log.info(
            "Edge run user=%s nodes=%d valid_edges=%d rejected=%d new=%d",
            user_id,
            len(trace.node_ids),
            validation.valid_count,
            validation.rejected_count,
            new_edges,
        )
        return EdgeRunResult(
            trace=trace,
            validation=validation,
            way_completions=completions,
            new_edges=new_edges,
            summaries=summaries,
            progress=progress,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Node proximity
    # ------------------------------------------------------------------
    def process_node_proximity(
        self,
        user_id: str,
        points: Sequence[GpsPoint],
        *,
        run_id: Optional[str] = None,
        run_date: Optional[datetime] = None,
    ) -> NodeRunResult:
        if not points:
            raise EmptyTraceError("Cannot match an empty trace")
        index = self.services.node_index
        if index is None:
            raise ValueError("Node proximity matching requires a node index")

        hits = match_nodes(points, index, radius_m=self.config.node_snap_radius_m)
        new_hits = self.store.record_node_hits(user_id, hits.values(), hit_at=run_date)
        touched = set(count_hits_by_way(hits.values()))
        cumulative = self.store.node_hit_counts_by_way(user_id)
        metadata: Mapping[int, WayInfo] = self.services.way_metadata

        def total_nodes(way_id: int) -> Optional[int]:
            total = self.services.way_totals.node_total(way_id)
            if total is None and way_id in metadata:
                total = len(set(metadata[way_id].node_ids))
            return total

        completions = way_completions(
            {way_id: cumulative.get(way_id, 0) for way_id in touched},
            total_nodes,
            way_metadata=metadata,
            short_max=self.config.short_way_max_nodes,
            unit="nodes",
        )
        summaries = summaries_from_ways(MatchStrategy.NODE_PROXIMITY, completions)
        progress = self._merge(user_id, summaries, run_id, run_date)
        self._log.info(
            "Node run user=%s points=%d hit_nodes=%d new=%d ways=%d",
            user_id,
            len(points),
            len(hits),
            new_hits,
            len(completions),
        )
        return NodeRunResult(
            hit_node_ids=sorted(hits),
            new_hits=new_hits,
            way_completions=completions,
            streets=group_ways_by_name(completions),
            summaries=summaries,
            progress=progress,
        )

    # ------------------------------------------------------------------
    # Overlap
    # ------------------------------------------------------------------
    def find_overlapping_areas(
        self, points: Sequence[GpsPoint], areas: Sequence[Area]
    ) -> List[OverlapResult]:
        results = find_overlapping_areas(points, areas)
        self._log.info(
            "Trace overlaps %d/%d areas", len(results), len(areas)
        )
        return results
