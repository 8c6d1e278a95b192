"""Road graph access over the Overpass API.

Supplies street segments with geometry for geometric matching, node-to-way
membership for edge resolution and highway nodes for proximity matching.
Every query goes through :func:`call_with_failover`, so it is retried with
backoff per endpoint and then failed over across the configured mirrors.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests
from requests import Session

from ..config import (
    OVERPASS_ENDPOINTS,
    OVERPASS_QUERY_TIMEOUT_SECONDS,
    REQUEST_TIMEOUT,
    STREET_ROAD_TYPES,
)
from ..errors import RetryableServiceError
from ..geo import polyline_length_m
from ..models import BoundingBox, GraphNode, LatLon, StreetSegment, WayInfo
from .response_handling import classify_response_status, error_for_exception
from .retry import RetryPolicy, call_with_failover
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

SERVICE = "overpass"
UNNAMED_ROAD = "Unnamed Road"

__all__ = [
    "OverpassClient",
    "nodes_from_ways",
    "parse_street_segment",
    "parse_way_info",
]


def _bbox_filter(bbox: BoundingBox) -> str:
    # Overpass order: south, west, north, east.
    return f"({bbox.min_lat},{bbox.min_lng},{bbox.max_lat},{bbox.max_lng})"


def _highway_filter(road_types: Sequence[str]) -> str:
    return '["highway"~"^(' + "|".join(road_types) + ')$"]'


def _way_coords(element: Dict[str, Any]) -> List[Optional[LatLon]]:
    coords: List[Optional[LatLon]] = []
    for item in element.get("geometry") or []:
        if not isinstance(item, dict) or item.get("lat") is None:
            coords.append(None)
            continue
        coords.append((float(item["lat"]), float(item["lon"])))
    return coords


def parse_street_segment(element: Dict[str, Any]) -> Optional[StreetSegment]:
    """Convert an Overpass way element into a :class:`StreetSegment`."""

    if element.get("type") != "way":
        return None
    geometry = [c for c in _way_coords(element) if c is not None]
    if len(geometry) < 2:
        return None
    tags = element.get("tags") or {}
    name = (
        tags.get("name") or tags.get("alt_name") or tags.get("name:en") or UNNAMED_ROAD
    )
    alt_names = tuple(
        tags[key] for key in ("alt_name", "name:en", "old_name") if tags.get(key)
    )
    return StreetSegment(
        id=str(element["id"]),
        name=name,
        road_type=tags.get("highway", "unknown"),
        length_m=polyline_length_m(geometry),
        geometry=geometry,
        ref=tags.get("ref"),
        surface=tags.get("surface"),
        access=tags.get("access"),
        alt_names=alt_names,
    )


def parse_way_info(element: Dict[str, Any]) -> Optional[WayInfo]:
    """Convert an Overpass way element into cached :class:`WayInfo`."""

    if element.get("type") != "way":
        return None
    node_ids = tuple(int(n) for n in element.get("nodes") or [])
    if len(node_ids) < 2:
        return None
    coords = _way_coords(element)
    node_coords: Dict[int, LatLon] = {}
    if len(coords) == len(node_ids):
        node_coords = {
            node_id: coord
            for node_id, coord in zip(node_ids, coords)
            if coord is not None
        }
    tags = element.get("tags") or {}
    ordered = [node_coords[n] for n in node_ids if n in node_coords]
    return WayInfo(
        way_id=int(element["id"]),
        name=tags.get("name"),
        road_type=tags.get("highway", "unknown"),
        node_ids=node_ids,
        node_coords=node_coords,
        length_m=polyline_length_m(ordered),
    )


class OverpassClient:
    """Thin Overpass client implementing the road-graph and way-lookup roles."""

    def __init__(
        self,
        endpoints: Sequence[str] = OVERPASS_ENDPOINTS,
        *,
        session: Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        query_timeout: int = OVERPASS_QUERY_TIMEOUT_SECONDS,
        road_types: Sequence[str] = STREET_ROAD_TYPES,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.endpoints = list(endpoints)
        self.session = session or get_default_session()
        self.timeout = timeout
        self.query_timeout = query_timeout
        self.road_types = tuple(road_types)
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Raw query execution
    # ------------------------------------------------------------------
    def execute(self, body: str) -> Dict[str, Any]:
        """Run an Overpass QL body (without header) and return the JSON payload."""

        query = f"[out:json][timeout:{self.query_timeout}];{body}"

        def _request(endpoint: str) -> Dict[str, Any]:
            try:
                resp = self.session.post(
                    endpoint, data={"data": query}, timeout=self.timeout
                )
            except requests.RequestException as exc:
                raise error_for_exception(
                    exc, f"Overpass {endpoint}", service=SERVICE
                ) from exc
            _action, error = classify_response_status(
                resp, f"Overpass {endpoint}", service=SERVICE
            )
            if error is not None:
                raise error
            try:
                payload = resp.json()
            except ValueError as exc:
                raise RetryableServiceError(
                    f"Overpass {endpoint} returned invalid JSON", service=SERVICE
                ) from exc
            if not isinstance(payload, dict):
                raise RetryableServiceError(
                    f"Overpass {endpoint} returned an unexpected payload",
                    service=SERVICE,
                )
            remark = str(payload.get("remark") or "")
            if "runtime error" in remark.lower():
                # Server-side timeouts arrive as 200 with a remark.
                raise RetryableServiceError(
                    f"Overpass {endpoint} runtime error: {remark}", service=SERVICE
                )
            return payload

        return call_with_failover(
            self.endpoints,
            _request,
            policy=self.policy,
            sleep=self.sleep,
            context="Overpass query",
        )

    @staticmethod
    def _elements(payload: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
        for element in payload.get("elements") or []:
            if isinstance(element, dict):
                yield element

    # ------------------------------------------------------------------
    # RoadGraph
    # ------------------------------------------------------------------
    def streets_in_bbox(self, bbox: BoundingBox) -> List[StreetSegment]:
        body = (
            f"way{_highway_filter(self.road_types)}{_bbox_filter(bbox)};"
            "out body geom;"
        )
        payload = self.execute(body)
        streets = self._parse_streets(payload)
        LOGGER.info("Fetched %d street segments in bbox %s", len(streets), bbox)
        return streets

    def streets_in_radius(
        self, lat: float, lng: float, radius_m: float
    ) -> List[StreetSegment]:
        body = (
            f"way{_highway_filter(self.road_types)}"
            f"(around:{radius_m:.0f},{lat},{lng});out body geom;"
        )
        payload = self.execute(body)
        streets = self._parse_streets(payload)
        LOGGER.info(
            "Fetched %d street segments within %.0fm of (%.5f, %.5f)",
            len(streets),
            radius_m,
            lat,
            lng,
        )
        return streets

    def _parse_streets(self, payload: Dict[str, Any]) -> List[StreetSegment]:
        streets: List[StreetSegment] = []
        for element in self._elements(payload):
            segment = parse_street_segment(element)
            if segment is not None:
                streets.append(segment)
        return streets

    # ------------------------------------------------------------------
    # WayLookup
    # ------------------------------------------------------------------
    def ways_for_nodes(self, node_ids: Sequence[int]) -> Dict[int, List[WayInfo]]:
        """Return the highway ways containing each node (empty list if none)."""

        result: Dict[int, List[WayInfo]] = {int(n): [] for n in node_ids}
        if not result:
            return result
        id_list = ",".join(str(n) for n in result)
        body = f'node(id:{id_list});way(bn)["highway"];out body geom;'
        payload = self.execute(body)
        for element in self._elements(payload):
            way = parse_way_info(element)
            if way is None:
                continue
            for node_id in way.node_ids:
                if node_id in result:
                    result[node_id].append(way)
        return result

    # ------------------------------------------------------------------
    # Node index source
    # ------------------------------------------------------------------
    def ways_in_bbox(self, bbox: BoundingBox) -> Dict[int, WayInfo]:
        body = (
            f"way{_highway_filter(self.road_types)}{_bbox_filter(bbox)};"
            "out body geom;"
        )
        payload = self.execute(body)
        ways: Dict[int, WayInfo] = {}
        for element in self._elements(payload):
            way = parse_way_info(element)
            if way is not None:
                ways[way.way_id] = way
        return ways


def nodes_from_ways(ways: Iterable[WayInfo]) -> List[GraphNode]:
    """Flatten way geometries into distinct graph nodes with way membership."""

    coords: Dict[int, LatLon] = {}
    membership: Dict[int, List[int]] = {}
    for way in ways:
        for node_id in dict.fromkeys(way.node_ids):
            coord = way.node_coords.get(node_id)
            if coord is None:
                continue
            coords.setdefault(node_id, coord)
            membership.setdefault(node_id, []).append(way.way_id)
    return [
        GraphNode(
            node_id=node_id,
            lat=coord[0],
            lng=coord[1],
            way_ids=tuple(membership[node_id]),
        )
        for node_id, coord in coords.items()
    ]
