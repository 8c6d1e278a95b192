"""OSRM map-matching client producing network node sequences."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Sequence

from polyline import decode as polyline_decode
import requests
from requests import Session

from ..config import OSRM_BASE_URL, OSRM_MAX_RETRIES, OSRM_PROFILE, REQUEST_TIMEOUT
from ..errors import NonRetryableServiceError, RetryableServiceError
from ..models import GpsPoint, LatLon, TraceMatch
from .response_handling import classify_response_status, error_for_exception
from .retry import RetryPolicy, call_with_failover
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

SERVICE = "osrm"

# Response codes that will not change on retry.
_FATAL_CODES = {"NoSegment", "NoMatch", "TooBig", "InvalidInput", "InvalidOptions"}

__all__ = ["OsrmClient", "decode_geometry", "parse_match_response"]


def decode_geometry(encoded: str) -> List[LatLon]:
    """Decode an OSRM polyline (precision 5) into (lat, lon) tuples."""

    if not encoded:
        return []
    try:
        decoded = polyline_decode(encoded)
    except (ValueError, TypeError, IndexError) as exc:
        raise ValueError("Unable to decode polyline") from exc
    return [(float(lat), float(lon)) for lat, lon in decoded]


def _append_nodes(target: List[int], nodes: Sequence[Any]) -> None:
    for node in nodes:
        node_id = int(node)
        if target and target[-1] == node_id:
            continue
        target.append(node_id)


def parse_match_response(payload: Dict[str, Any]) -> TraceMatch:
    """Flatten every matching in an OSRM ``match`` response into one result."""

    matchings = payload.get("matchings") or []
    if not matchings:
        return TraceMatch.empty()
    node_ids: List[int] = []
    geometry: List[LatLon] = []
    confidences: List[float] = []
    distance = 0.0
    duration = 0.0
    for matching in matchings:
        confidences.append(float(matching.get("confidence") or 0.0))
        distance += float(matching.get("distance") or 0.0)
        duration += float(matching.get("duration") or 0.0)
        geometry.extend(decode_geometry(matching.get("geometry") or ""))
        for leg in matching.get("legs") or []:
            annotation = leg.get("annotation") or {}
            _append_nodes(node_ids, annotation.get("nodes") or [])
    return TraceMatch(
        confidence=sum(confidences) / len(confidences),
        node_ids=node_ids,
        geometry=geometry,
        distance_m=distance,
        duration_s=duration,
    )


class OsrmClient:
    """Implements the way-matcher role against an OSRM ``match`` service."""

    def __init__(
        self,
        base_url: str = OSRM_BASE_URL,
        profile: str = OSRM_PROFILE,
        *,
        session: Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.session = session or get_default_session()
        self.timeout = timeout
        self.policy = policy or RetryPolicy(max_attempts=OSRM_MAX_RETRIES)
        self.sleep = sleep

    def match(self, points: Sequence[GpsPoint]) -> TraceMatch:
        if len(points) < 2:
            return TraceMatch.empty()
        coords = ";".join(f"{p.lng:.6f},{p.lat:.6f}" for p in points)
        params: Dict[str, str] = {
            "annotations": "nodes",
            "geometries": "polyline",
            "overview": "full",
        }
        if all(p.timestamp is not None for p in points):
            params["timestamps"] = ";".join(
                str(int(p.timestamp.timestamp())) for p in points  # type: ignore[union-attr]
            )

        def _request(base_url: str) -> TraceMatch:
            url = f"{base_url}/match/v1/{self.profile}/{coords}"
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                raise error_for_exception(exc, "OSRM match", service=SERVICE) from exc
            if resp.status_code == 414:
                raise NonRetryableServiceError(
                    f"OSRM match URI too long for {len(points)} coordinates",
                    service=SERVICE,
                    status_code=414,
                )
            _action, error = classify_response_status(
                resp, "OSRM match", service=SERVICE
            )
            if error is not None:
                raise error
            try:
                payload = resp.json()
            except ValueError as exc:
                raise RetryableServiceError(
                    "OSRM match returned invalid JSON", service=SERVICE
                ) from exc
            code = payload.get("code") if isinstance(payload, dict) else None
            if code != "Ok":
                message = f"OSRM match failed with code {code}"
                if isinstance(payload, dict) and payload.get("message"):
                    message = f"{message}: {payload['message']}"
                if code in _FATAL_CODES:
                    raise NonRetryableServiceError(message, service=SERVICE)
                raise RetryableServiceError(message, service=SERVICE)
            return parse_match_response(payload)

        result = call_with_failover(
            [self.base_url],
            _request,
            policy=self.policy,
            sleep=self.sleep,
            context="OSRM match",
        )
        LOGGER.debug(
            "OSRM matched %d points to %d nodes (confidence %.2f)",
            len(points),
            len(result.node_ids),
            result.confidence,
        )
        return result
