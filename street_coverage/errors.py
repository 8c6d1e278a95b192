"""Central error types used across the application."""

from __future__ import annotations


class StreetCoverageError(RuntimeError):
    """Base error for the street coverage engine."""


class EmptyTraceError(StreetCoverageError):
    """Raised when a run is submitted without any GPS points."""


class GpxParseError(StreetCoverageError, ValueError):
    """Raised when a GPX document is malformed or has too few points."""


class ExternalServiceError(StreetCoverageError):
    """Base error for road-graph, map-matching and way-lookup failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class RetryableServiceError(ExternalServiceError):
    """Raised for timeouts, network failures and 502/503/504 responses."""

    retryable = True


class NonRetryableServiceError(ExternalServiceError):
    """Raised for 400/429 and other responses that must fail fast."""


class ServiceExhaustedError(ExternalServiceError):
    """Raised when every endpoint and attempt has failed."""


class WayResolutionError(StreetCoverageError):
    """Raised when a node-to-way lookup batch cannot be completed."""


class RoadGraphUnavailableError(StreetCoverageError):
    """Raised when a run cannot obtain any road-graph data at all."""


__all__ = [
    "StreetCoverageError",
    "EmptyTraceError",
    "GpxParseError",
    "ExternalServiceError",
    "RetryableServiceError",
    "NonRetryableServiceError",
    "ServiceExhaustedError",
    "WayResolutionError",
    "RoadGraphUnavailableError",
]
