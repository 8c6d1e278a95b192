"""GPX parsing into ordered GPS point sequences."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET
import gpxpy
import gpxpy.gpx

from .config import GPX_MIN_POINTS
from .errors import GpxParseError
from .models import GpsPoint

LOGGER = logging.getLogger(__name__)

__all__ = ["ParsedGpx", "parse_gpx", "parse_gpx_file"]


@dataclass(slots=True)
class ParsedGpx:
    name: Optional[str]
    points: List[GpsPoint] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_document(text: str) -> None:
    # gpxpy parses with the plain ElementTree; entity declarations are
    # rejected up front.
    try:
        root = ET.fromstring(text)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise GpxParseError("Invalid GPX file: malformed XML") from exc
    if root.tag.rsplit("}", 1)[-1] != "gpx":
        raise GpxParseError("Invalid GPX file: root element is not <gpx>")


def _to_point(raw: gpxpy.gpx.GPXTrackPoint | gpxpy.gpx.GPXRoutePoint) -> GpsPoint:
    lat, lng = raw.latitude, raw.longitude
    if lat is None or lng is None:
        raise GpxParseError("GPX point is missing lat/lon attributes")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise GpxParseError(f"GPX point out of range: lat={lat} lon={lng}")
    return GpsPoint(
        lat=float(lat),
        lng=float(lng),
        elevation=raw.elevation,
        timestamp=_as_utc(raw.time),
    )


def _track_points(gpx: gpxpy.gpx.GPX) -> Iterable:
    for track in gpx.tracks:
        for segment in track.segments:
            yield from segment.points


def _route_points(gpx: gpxpy.gpx.GPX) -> Iterable:
    for route in gpx.routes:
        yield from route.points


def parse_gpx(data: bytes | str, *, min_points: int = GPX_MIN_POINTS) -> ParsedGpx:
    """Parse a GPX document into ordered points.

    Track points are preferred; route points are used when no track exists.
    Raises :class:`GpxParseError` for malformed XML or too few points.
    """

    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise GpxParseError("Invalid GPX file: not UTF-8 encoded") from exc
    else:
        text = data
    _check_document(text)
    try:
        gpx = gpxpy.parse(text)
    except gpxpy.gpx.GPXException as exc:
        raise GpxParseError(f"Invalid GPX file: {exc}") from exc

    raw_points = list(_track_points(gpx)) or list(_route_points(gpx))
    points = [_to_point(raw) for raw in raw_points]
    if len(points) < min_points:
        raise GpxParseError(
            f"GPX file must contain at least {min_points} track points"
        )

    name = next((t.name for t in gpx.tracks if t.name), None) or gpx.name
    times = [p.timestamp for p in points if p.timestamp is not None]
    return ParsedGpx(
        name=name,
        points=points,
        start_time=min(times) if times else None,
        end_time=max(times) if times else None,
    )


def parse_gpx_file(path: Path | str, *, min_points: int = GPX_MIN_POINTS) -> ParsedGpx:
    data = Path(path).read_bytes()
    parsed = parse_gpx(data, min_points=min_points)
    LOGGER.info("Parsed %d GPS points from %s", len(parsed.points), path)
    return parsed
