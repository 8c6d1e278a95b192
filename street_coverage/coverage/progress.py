"""Cumulative per-user coverage state updated only through monotone merges.

Nothing here ever lowers a percentage, clears ``ever_completed`` or forgets
a validated edge or node hit. Replaying a run with the same ``run_id`` is a
no-op, so callers may safely retry.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..config import COMPLETION_THRESHOLD
from ..matching.aggregation import completion_threshold_for_length
from ..models import (
    CoverageSummary,
    EdgeRecord,
    GraphNode,
    NodeHit,
    StreetProgress,
    ValidatedEdge,
)
from .intervals import (
    calculate_total_coverage,
    is_street_completed_with_gap_check,
    merge_intervals,
)

LOGGER = logging.getLogger(__name__)

__all__ = ["ProgressStore"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _later(current: Optional[datetime], candidate: datetime) -> datetime:
    if current is None or candidate > current:
        return candidate
    return current


class ProgressStore:
    """In-memory, thread-safe store with idempotent upsert-by-key operations."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._streets: Dict[Tuple[str, str], StreetProgress] = {}
        self._edges: Dict[Tuple[str, str], EdgeRecord] = {}
        self._edge_runs: Dict[str, Set[str]] = {}
        self._node_hits: Dict[Tuple[str, int], NodeHit] = {}

    # ------------------------------------------------------------------
    # Street progress
    # ------------------------------------------------------------------
    def get_progress(self, user_id: str, street_id: str) -> Optional[StreetProgress]:
        with self._lock:
            return self._streets.get((user_id, street_id))

    def progress_for_user(self, user_id: str) -> List[StreetProgress]:
        with self._lock:
            return [p for (uid, _), p in self._streets.items() if uid == user_id]

    def upsert_progress(
        self,
        user_id: str,
        summary: CoverageSummary,
        *,
        run_id: Optional[str] = None,
        run_date: Optional[datetime] = None,
        completion_threshold: float = COMPLETION_THRESHOLD,
    ) -> StreetProgress:
        """Merge one run's coverage of one street into the cumulative state.

        With intervals the percentage is the merged interval coverage; without
        them the higher percentage wins. A run completes the street when it
        was complete on its own or when its intervals close the last gap.
        """

        run_date = run_date or _utcnow()
        key = (user_id, summary.street_id)
        with self._lock:
            progress = self._streets.get(key)
            if progress is None:
                progress = StreetProgress(
                    user_id=user_id,
                    street_id=summary.street_id,
                    name=summary.name,
                    road_type=summary.road_type,
                    length_m=summary.length_m,
                )
                self._streets[key] = progress
            if run_id is not None and run_id in progress.applied_run_ids:
                LOGGER.debug(
                    "Run %s already applied to street %s for user %s",
                    run_id,
                    summary.street_id,
                    user_id,
                )
                return progress

            completed = summary.is_complete
            if summary.intervals:
                threshold = (
                    completion_threshold_for_length(
                        progress.length_m, base_threshold=completion_threshold
                    )
                    * 100.0
                )
                was_closed = is_street_completed_with_gap_check(
                    progress.intervals, threshold
                )
                merged = progress.intervals
                for interval in summary.intervals:
                    merged = merge_intervals(merged, interval)
                progress.intervals = merged
                percentage = calculate_total_coverage(merged)
                closed = is_street_completed_with_gap_check(merged, threshold)
                completed = completed or (closed and not was_closed)
            else:
                percentage = min(max(summary.percentage, 0.0), 100.0)

            progress.percentage = max(progress.percentage, round(percentage, 2))
            progress.ever_completed = progress.ever_completed or completed
            progress.run_count += 1
            if completed:
                progress.completion_count += 1
            if progress.first_run_date is None or run_date < progress.first_run_date:
                progress.first_run_date = run_date
            progress.last_run_date = _later(progress.last_run_date, run_date)
            if progress.name is None and summary.name:
                progress.name = summary.name
            if run_id is not None:
                progress.applied_run_ids.add(run_id)
            return progress

    def merge_summaries(
        self,
        user_id: str,
        summaries: Iterable[CoverageSummary],
        *,
        run_id: Optional[str] = None,
        run_date: Optional[datetime] = None,
        completion_threshold: float = COMPLETION_THRESHOLD,
    ) -> List[StreetProgress]:
        """Apply summaries from any matching strategy."""

        run_date = run_date or _utcnow()
        updated = [
            self.upsert_progress(
                user_id,
                summary,
                run_id=run_id,
                run_date=run_date,
                completion_threshold=completion_threshold,
            )
            for summary in summaries
        ]
        LOGGER.info("Updated progress for %d streets (user=%s)", len(updated), user_id)
        return updated

    # ------------------------------------------------------------------
    # Validated edges
    # ------------------------------------------------------------------
    def record_edges(
        self,
        user_id: str,
        edges: Sequence[ValidatedEdge],
        *,
        run_id: Optional[str] = None,
        run_at: Optional[datetime] = None,
    ) -> int:
        """Upsert the distinct valid edges of a run; return how many are new."""

        run_at = run_at or _utcnow()
        with self._lock:
            applied = self._edge_runs.setdefault(user_id, set())
            if run_id is not None and run_id in applied:
                return 0
            created = 0
            seen: Set[str] = set()
            for edge in edges:
                if not edge.is_valid or edge.edge_id in seen:
                    continue
                seen.add(edge.edge_id)
                key = (user_id, edge.edge_id)
                record = self._edges.get(key)
                if record is None:
                    record = EdgeRecord(
                        user_id=user_id,
                        edge_id=edge.edge_id,
                        node_a=edge.node_a,
                        node_b=edge.node_b,
                        way_id=edge.way_id,
                        way_name=edge.way_name,
                        road_type=edge.road_type,
                        length_m=edge.length_m,
                        first_run_at=run_at,
                    )
                    self._edges[key] = record
                    created += 1
                record.run_count += 1
                if record.first_run_at is None or run_at < record.first_run_at:
                    record.first_run_at = run_at
                record.last_run_at = _later(record.last_run_at, run_at)
            if run_id is not None:
                applied.add(run_id)
            return created

    def edges_for_user(self, user_id: str) -> List[EdgeRecord]:
        with self._lock:
            return [r for (uid, _), r in self._edges.items() if uid == user_id]

    def edge_counts_by_way(self, user_id: str) -> Dict[int, int]:
        """Distinct validated edges ever recorded per way."""

        counts: Dict[int, int] = {}
        for record in self.edges_for_user(user_id):
            counts[record.way_id] = counts.get(record.way_id, 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Node hits
    # ------------------------------------------------------------------
    def record_node_hits(
        self,
        user_id: str,
        nodes: Iterable[GraphNode],
        *,
        hit_at: Optional[datetime] = None,
    ) -> int:
        """Upsert hits keyed by (user, node); return how many are new."""

        hit_at = hit_at or _utcnow()
        created = 0
        with self._lock:
            for node in nodes:
                key = (user_id, node.node_id)
                existing = self._node_hits.get(key)
                if existing is None:
                    self._node_hits[key] = NodeHit(
                        user_id=user_id,
                        node_id=node.node_id,
                        way_ids=tuple(node.way_ids),
                        first_hit_at=hit_at,
                    )
                    created += 1
                    continue
                extra = [w for w in node.way_ids if w not in existing.way_ids]
                if extra:
                    existing.way_ids = existing.way_ids + tuple(extra)
                if existing.first_hit_at is None or hit_at < existing.first_hit_at:
                    existing.first_hit_at = hit_at
        return created

    def node_hits_for_user(self, user_id: str) -> List[NodeHit]:
        with self._lock:
            return [h for (uid, _), h in self._node_hits.items() if uid == user_id]

    def node_hit_counts_by_way(self, user_id: str) -> Dict[int, int]:
        counts: Dict[int, int] = {}
        for hit in self.node_hits_for_user(user_id):
            for way_id in hit.way_ids:
                counts[way_id] = counts.get(way_id, 0) + 1
        return counts
