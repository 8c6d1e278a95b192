from .coverage_service import (
    CoverageService,
    CoverageServiceConfig,
    EdgeRunResult,
    GeometricRunResult,
    NodeRunResult,
)

__all__ = [
    "CoverageService",
    "CoverageServiceConfig",
    "EdgeRunResult",
    "GeometricRunResult",
    "NodeRunResult",
]
