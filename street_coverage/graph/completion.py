"""Per-way completion for the edge-graph and node-proximity pipelines."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional

from ..config import NODE_COMPLETION_THRESHOLD, SHORT_WAY_MAX_NODES
from ..models import StreetCompletion, WayCompletion, WayInfo

LOGGER = logging.getLogger(__name__)

UNNAMED_STREET = "Unnamed"

__all__ = [
    "completion_percentage",
    "group_ways_by_name",
    "is_way_complete",
    "way_completions",
]


def is_way_complete(
    completed: int,
    total: int,
    *,
    short_max: int = SHORT_WAY_MAX_NODES,
    threshold: float = NODE_COMPLETION_THRESHOLD,
) -> bool:
    """Short ways need every element; longer ways need ``threshold``."""

    if total <= 0:
        return False
    if total <= short_max:
        return completed >= total
    return completed / total >= threshold


def completion_percentage(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(100.0, round(completed / total * 100.0, 1))


def way_completions(
    completed_by_way: Mapping[int, int],
    total_for: Callable[[int], Optional[int]],
    *,
    way_metadata: Mapping[int, WayInfo] | None = None,
    short_max: int = SHORT_WAY_MAX_NODES,
    threshold: float = NODE_COMPLETION_THRESHOLD,
    unit: str = "edges",
) -> List[WayCompletion]:
    """Divide completed counts by the externally supplied totals.

    More completed elements than the known total means the stored graph and
    the external totals have drifted apart; it is logged and clamped.
    """

    metadata = way_metadata or {}
    results: List[WayCompletion] = []
    for way_id in sorted(completed_by_way):
        completed = completed_by_way[way_id]
        total = total_for(way_id)
        if total is None:
            LOGGER.debug("No %s total known for way %s", unit, way_id)
            total = 0
        if total and completed > total:
            LOGGER.warning(
                "Way %s has %d completed %s but only %d known; totals drifted",
                way_id,
                completed,
                unit,
                total,
            )
        info = metadata.get(way_id)
        results.append(
            WayCompletion(
                way_id=way_id,
                name=info.name if info else None,
                road_type=info.road_type if info else "unknown",
                completed=completed,
                total=total,
                percentage=completion_percentage(completed, total),
                is_complete=is_way_complete(
                    completed, total, short_max=short_max, threshold=threshold
                ),
                length_m=info.length_m if info else 0.0,
            )
        )
    return results


def group_ways_by_name(completions: List[WayCompletion]) -> List[StreetCompletion]:
    """Roll way completion up to named streets; every way must be complete."""

    groups: Dict[str, List[WayCompletion]] = {}
    for completion in completions:
        groups.setdefault(completion.name or UNNAMED_STREET, []).append(completion)
    streets: List[StreetCompletion] = []
    for name, members in sorted(groups.items()):
        completed = sum(m.completed for m in members)
        total = sum(m.total for m in members)
        streets.append(
            StreetCompletion(
                name=name,
                way_ids=[m.way_id for m in members],
                completed=completed,
                total=total,
                percentage=completion_percentage(completed, total),
                is_complete=all(m.is_complete for m in members),
            )
        )
    return streets
