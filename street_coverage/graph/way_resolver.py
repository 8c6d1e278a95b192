"""Resolve consecutive matched nodes to the ways that own them.

Node-to-way membership is cached per node id in a TTL cache. Misses are
fetched in sequential batches; a batch that cannot be fetched after every
retry and endpoint aborts resolution with :class:`WayResolutionError`.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, MutableMapping, Optional, Sequence, Tuple

from cachetools import TTLCache

from ..config import (
    WAY_CACHE_MAX_NODES,
    WAY_CACHE_TTL_DAYS,
    WAY_RESOLVER_BATCH_DELAY_SECONDS,
    WAY_RESOLVER_BATCH_SIZE,
)
from ..errors import ExternalServiceError, WayResolutionError
from ..geo import haversine_m
from ..interfaces import WayLookup
from ..models import ResolvedEdge, WayInfo

LOGGER = logging.getLogger(__name__)

__all__ = ["WayResolver", "are_consecutive", "edge_length_m"]


def are_consecutive(way: WayInfo, node_a: int, node_b: int) -> bool:
    """True when the two nodes sit next to each other in the way's node order."""

    ids = way.node_ids
    for first, second in zip(ids[:-1], ids[1:]):
        if (first == node_a and second == node_b) or (
            first == node_b and second == node_a
        ):
            return True
    return False


def edge_length_m(way: WayInfo, node_a: int, node_b: int) -> float:
    """Edge length from node coordinates, else the way's mean edge length."""

    coord_a = way.node_coords.get(node_a)
    coord_b = way.node_coords.get(node_b)
    if coord_a is not None and coord_b is not None:
        return haversine_m(coord_a[0], coord_a[1], coord_b[0], coord_b[1])
    edges = len(way.node_ids) - 1
    if edges <= 0:
        return 0.0
    return way.length_m / edges


class WayResolver:
    def __init__(
        self,
        lookup: WayLookup,
        *,
        cache: MutableMapping[int, Tuple[WayInfo, ...]] | None = None,
        batch_size: int = WAY_RESOLVER_BATCH_SIZE,
        batch_delay_s: float = WAY_RESOLVER_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.lookup = lookup
        self._cache: MutableMapping[int, Tuple[WayInfo, ...]] = (
            cache
            if cache is not None
            else TTLCache(maxsize=WAY_CACHE_MAX_NODES, ttl=WAY_CACHE_TTL_DAYS * 86400)
        )
        self._lock = threading.RLock()
        self.batch_size = batch_size
        self.batch_delay_s = batch_delay_s
        self.sleep = sleep
        self._log = logger or LOGGER

    def _cached(self, node_id: int) -> Optional[Tuple[WayInfo, ...]]:
        with self._lock:
            return self._cache.get(node_id)

    def ways_for_nodes(self, node_ids: Sequence[int]) -> Dict[int, List[WayInfo]]:
        """Return ways per node, fetching cache misses in batches."""

        result: Dict[int, List[WayInfo]] = {}
        misses: List[int] = []
        for node_id in dict.fromkeys(node_ids):
            cached = self._cached(node_id)
            if cached is None:
                misses.append(node_id)
            else:
                result[node_id] = list(cached)

        batches = [
            misses[i : i + self.batch_size]
            for i in range(0, len(misses), self.batch_size)
        ]
        if batches:
            self._log.info(
                "Resolving %d uncached nodes in %d batch(es) (%d cached)",
                len(misses),
                len(batches),
                len(result),
            )
        for index, batch in enumerate(batches):
            if index:
                self.sleep(self.batch_delay_s)
            try:
                fetched = self.lookup.ways_for_nodes(batch)
            except ExternalServiceError as exc:
                raise WayResolutionError(
                    f"Way lookup batch {index + 1}/{len(batches)} failed: {exc}"
                ) from exc
            with self._lock:
                for node_id in batch:
                    ways = tuple(fetched.get(node_id, ()))
                    self._cache[node_id] = ways
                    result[node_id] = list(ways)
        return result

    @staticmethod
    def resolve_pair(
        node_a: int, node_b: int, ways_by_node: Dict[int, List[WayInfo]]
    ) -> Optional[WayInfo]:
        """Find the way in which ``node_a`` and ``node_b`` are consecutive."""

        ways_b = {way.way_id for way in ways_by_node.get(node_b, [])}
        candidates = sorted(
            (way for way in ways_by_node.get(node_a, []) if way.way_id in ways_b),
            key=lambda way: way.way_id,
        )
        for way in candidates:
            if are_consecutive(way, node_a, node_b):
                return way
        return None

    def resolve_edges(
        self, node_ids: Sequence[int]
    ) -> Tuple[List[ResolvedEdge], List[str]]:
        """Turn a matched node sequence into normalized edges plus warnings."""

        if len(node_ids) < 2:
            return [], []
        ways_by_node = self.ways_for_nodes(node_ids)
        edges: List[ResolvedEdge] = []
        unresolved = 0
        for index, (node_a, node_b) in enumerate(zip(node_ids[:-1], node_ids[1:])):
            if node_a == node_b:
                continue
            way = self.resolve_pair(node_a, node_b, ways_by_node)
            if way is None:
                unresolved += 1
                self._log.debug("No way owns consecutive nodes %s-%s", node_a, node_b)
                continue
            edges.append(
                ResolvedEdge(
                    node_a=min(node_a, node_b),
                    node_b=max(node_a, node_b),
                    way_id=way.way_id,
                    way_name=way.name,
                    road_type=way.road_type,
                    length_m=edge_length_m(way, node_a, node_b),
                    sequence_index=index,
                )
            )
        warnings: List[str] = []
        if unresolved:
            message = f"{unresolved} node pair(s) could not be resolved to a way"
            self._log.warning(message)
            warnings.append(message)
        return edges, warnings
