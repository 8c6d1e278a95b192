"""Command line entry point: analyze a GPX file against live road data."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Any, Dict, List, Optional, Sequence

from .clients import OsrmClient, OverpassClient
from .clients.overpass import nodes_from_ways
from .config import BBOX_BUFFER_M, OUTPUT_PRETTY_JSON
from .errors import StreetCoverageError
from .geo import buffer_bbox, trace_bbox
from .gpx import parse_gpx_file
from .graph import StrTreeNodeIndex
from .interfaces import ExternalServices, WayTotals
from .models import Area, GpsPoint
from .services import CoverageService, CoverageServiceConfig
from .utils import json_dumps_sorted, to_jsonable

LOGGER = logging.getLogger(__name__)

MODES = ("geometric", "edge", "node")


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _parse_area(raw: str) -> Area:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 5:
        raise argparse.ArgumentTypeError(
            "area must be id,name,lat,lng,radius_m"
        )
    area_id, name, lat, lng, radius = parts
    try:
        return Area(area_id, name, float(lat), float(lng), float(radius))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid area {raw!r}: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="street-coverage",
        description="Match GPS traces to streets and track cumulative coverage.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Match a GPX trace to streets")
    analyze.add_argument("gpx", type=Path, help="Path to a GPX file")
    analyze.add_argument("--mode", choices=MODES, default="geometric")
    analyze.add_argument("--user", default="local", help="User id for progress")
    analyze.add_argument(
        "--strict-names",
        action="store_true",
        help="Expand abbreviations when grouping street names",
    )
    analyze.add_argument("--output", type=Path, help="Write JSON here instead of stdout")

    overlap = sub.add_parser("overlap", help="List areas a GPX trace enters")
    overlap.add_argument("gpx", type=Path, help="Path to a GPX file")
    overlap.add_argument(
        "--area",
        type=_parse_area,
        action="append",
        required=True,
        help="Area as id,name,lat,lng,radius_m (repeatable)",
    )
    overlap.add_argument("--output", type=Path, help="Write JSON here instead of stdout")
    return parser


def _build_services(mode: str, points: Sequence[GpsPoint]) -> ExternalServices:
    overpass = OverpassClient()
    if mode == "geometric":
        return ExternalServices(road_graph=overpass)
    if mode == "edge":
        return ExternalServices(way_matcher=OsrmClient(), way_lookup=overpass)
    bbox = trace_bbox(points)
    if bbox is None:
        return ExternalServices()
    ways = overpass.ways_in_bbox(buffer_bbox(bbox, BBOX_BUFFER_M))
    LOGGER.info("Loaded %d ways for the node index", len(ways))
    return ExternalServices(
        node_index=StrTreeNodeIndex(nodes_from_ways(ways.values())),
        way_totals=WayTotals.from_ways(ways),
        way_metadata=ways,
    )


def _emit(payload: Dict[str, Any], output: Optional[Path]) -> None:
    text = json_dumps_sorted(payload, pretty=OUTPUT_PRETTY_JSON)
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output.write_text(text + "\n", encoding="utf-8")
    LOGGER.info("Wrote results to %s", output)


def _run_analyze(args: argparse.Namespace) -> Dict[str, Any]:
    parsed = parse_gpx_file(args.gpx)
    services = _build_services(args.mode, parsed.points)
    service = CoverageService(
        services, config=CoverageServiceConfig(strict_names=args.strict_names)
    )
    run_id = args.gpx.name
    run_date = parsed.start_time
    if args.mode == "geometric":
        result: Any = service.process_geometric(
            args.user, parsed.points, run_id=run_id, run_date=run_date
        )
    elif args.mode == "edge":
        result = service.process_edges(
            args.user, parsed.points, run_id=run_id, run_date=run_date
        )
    else:
        result = service.process_node_proximity(
            args.user, parsed.points, run_id=run_id, run_date=run_date
        )
    return {"activity": parsed.name, "mode": args.mode, "result": to_jsonable(result)}


def _run_overlap(args: argparse.Namespace) -> Dict[str, Any]:
    parsed = parse_gpx_file(args.gpx)
    service = CoverageService(ExternalServices())
    results = service.find_overlapping_areas(parsed.points, args.area)
    return {"activity": parsed.name, "overlaps": to_jsonable(results)}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    try:
        if args.command == "analyze":
            payload = _run_analyze(args)
        else:
            payload = _run_overlap(args)
    except StreetCoverageError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1
    except OSError as exc:
        LOGGER.error("Cannot read %s: %s", args.gpx, exc)
        return 1
    _emit(payload, args.output)
    return 0
