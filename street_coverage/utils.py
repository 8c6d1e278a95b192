"""General utility helpers shared across modules."""

from __future__ import annotations

import dataclasses
import json
import math
from datetime import datetime, date
from enum import Enum
from typing import Any

DISTANCE_DECIMALS = 2
RATIO_DECIMALS = 3


def round_distance(value: float) -> float:
    """Round a distance in meters for output (2 decimals)."""

    return round(float(value), DISTANCE_DECIMALS)


def round_ratio(value: float) -> float:
    """Round a ratio for output (3 decimals)."""

    return round(float(value), RATIO_DECIMALS)


def clamp_ratio(value: float, upper: float = 1.0) -> float:
    """Clamp ``value`` into ``[0, upper]``; NaN becomes 0."""

    if math.isnan(value):
        return 0.0
    return min(max(float(value), 0.0), upper)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator`` or 0 when the denominator is not positive."""

    if denominator <= 0:
        return 0.0
    return numerator / denominator


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _normalise_value(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(_normalise_value(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def to_jsonable(value: Any) -> Any:
    """Return a structure of plain dicts/lists for dataclass results."""

    return _normalise_value(value)


def json_dumps_sorted(value: Any, *, pretty: bool = False) -> str:
    """Return canonical JSON for output and comparisons."""

    normalised = _normalise_value(value)
    if pretty:
        return json.dumps(normalised, sort_keys=True, indent=2)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))
