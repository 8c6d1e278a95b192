"""Chunked trace matching against a coordinate-limited map matcher.

Chunks overlap by one point and are matched strictly one after another with
a fixed pause in between. A failed chunk contributes an empty result and a
warning so the remaining chunks still count.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Sequence, TypeVar

from ..config import (
    OSRM_CHUNK_DELAY_SECONDS,
    OSRM_LOW_CONFIDENCE,
    OSRM_MAX_COORDINATES,
    OSRM_MIN_CHUNK_POINTS,
)
from ..errors import ExternalServiceError
from ..interfaces import WayMatcher
from ..models import GpsPoint, LatLon, TraceMatch

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = ["chunk_points", "match_in_chunks", "merge_chunk_results"]


def chunk_points(
    points: Sequence[T],
    max_coordinates: int = OSRM_MAX_COORDINATES,
    min_chunk_points: int = OSRM_MIN_CHUNK_POINTS,
) -> List[List[T]]:
    """Split ``points`` into windows of at most ``max_coordinates`` sharing one point.

    A trailing window shorter than ``min_chunk_points`` is folded into the
    previous one, which may then exceed the limit by a few points.
    """

    if max_coordinates < 2:
        raise ValueError("max_coordinates must be at least 2")
    items = list(points)
    if len(items) <= max_coordinates:
        return [items] if items else []
    step = max_coordinates - 1
    chunks: List[List[T]] = []
    start = 0
    while True:
        end = min(start + max_coordinates, len(items))
        chunks.append(items[start:end])
        if end == len(items):
            break
        start += step
    if len(chunks) > 1 and len(chunks[-1]) < min_chunk_points:
        tail = chunks.pop()
        chunks[-1].extend(tail[1:])
    return chunks


def _extend_without_boundary(target: List, items: Sequence) -> None:
    if target and items and target[-1] == items[0]:
        items = items[1:]
    target.extend(items)


def merge_chunk_results(
    results: Sequence[TraceMatch], *, low_confidence: float = OSRM_LOW_CONFIDENCE
) -> TraceMatch:
    """Concatenate chunk results, dropping each duplicated boundary element."""

    if not results:
        return TraceMatch.empty()
    node_ids: List[int] = []
    geometry: List[LatLon] = []
    warnings: List[str] = []
    distance = 0.0
    duration = 0.0
    for result in results:
        _extend_without_boundary(node_ids, result.node_ids)
        _extend_without_boundary(geometry, result.geometry)
        distance += result.distance_m
        duration += result.duration_s
        warnings.extend(result.warnings)
    confidence = sum(r.confidence for r in results) / len(results)
    if confidence < low_confidence:
        warnings.append(
            f"Low match confidence {confidence:.2f}; edges are still recorded"
        )
    return TraceMatch(
        confidence=confidence,
        node_ids=node_ids,
        geometry=geometry,
        distance_m=distance,
        duration_s=duration,
        warnings=warnings,
    )


def match_in_chunks(
    points: Sequence[GpsPoint],
    matcher: WayMatcher,
    *,
    max_coordinates: int = OSRM_MAX_COORDINATES,
    min_chunk_points: int = OSRM_MIN_CHUNK_POINTS,
    delay_s: float = OSRM_CHUNK_DELAY_SECONDS,
    low_confidence: float = OSRM_LOW_CONFIDENCE,
    sleep: Callable[[float], None] = time.sleep,
) -> TraceMatch:
    """Match a trace of any length by matching its chunks sequentially."""

    chunks = chunk_points(points, max_coordinates, min_chunk_points)
    results: List[TraceMatch] = []
    for index, chunk in enumerate(chunks):
        if index:
            sleep(delay_s)
        try:
            result = matcher.match(chunk)
        except ExternalServiceError as exc:
            message = f"Chunk {index + 1}/{len(chunks)} failed to match: {exc}"
            LOGGER.warning(message)
            result = TraceMatch.empty()
            result.warnings.append(message)
        results.append(result)
    merged = merge_chunk_results(results, low_confidence=low_confidence)
    LOGGER.info(
        "Matched %d points in %d chunk(s) to %d nodes (confidence %.2f)",
        len(points),
        len(chunks),
        len(merged.node_ids),
        merged.confidence,
    )
    return merged
