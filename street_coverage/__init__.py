"""Street coverage: match GPS traces to streets and track cumulative progress."""

from .coverage import ProgressStore
from .errors import (
    EmptyTraceError,
    ExternalServiceError,
    GpxParseError,
    RoadGraphUnavailableError,
    StreetCoverageError,
    WayResolutionError,
)
from .interfaces import ExternalServices, WayTotals
from .main import main
from .models import (
    Area,
    CompletionStatus,
    CoverageSummary,
    GpsPoint,
    LogicalStreet,
    MatchedSegment,
    MatchStrategy,
    StreetProgress,
    StreetSegment,
    UnnamedBucket,
    ValidatedEdge,
)
from .services import CoverageService, CoverageServiceConfig

__all__ = [
    "main",
    "Area",
    "CompletionStatus",
    "CoverageService",
    "CoverageServiceConfig",
    "CoverageSummary",
    "EmptyTraceError",
    "ExternalServiceError",
    "ExternalServices",
    "GpsPoint",
    "GpxParseError",
    "LogicalStreet",
    "MatchedSegment",
    "MatchStrategy",
    "ProgressStore",
    "RoadGraphUnavailableError",
    "StreetCoverageError",
    "StreetProgress",
    "StreetSegment",
    "UnnamedBucket",
    "ValidatedEdge",
    "WayResolutionError",
    "WayTotals",
]
