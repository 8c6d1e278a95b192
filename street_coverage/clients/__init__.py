"""HTTP clients for the external road-graph and map-matching services."""

from .osrm import OsrmClient
from .overpass import OverpassClient
from .retry import RetryDecision, RetryPolicy, RetryState, call_with_failover
from .session import create_default_session, get_default_session

__all__ = [
    "OsrmClient",
    "OverpassClient",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "call_with_failover",
    "create_default_session",
    "get_default_session",
]
