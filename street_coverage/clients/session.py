"""HTTP session factory for road-graph and map-matching calls."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    HTTP_CONNECT_RETRIES,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    USER_AGENT,
)

__all__ = ["create_default_session", "get_default_session"]


def _build_retry() -> Retry:
    # Status and read retries are driven by clients.retry so every attempt is
    # visible to the failover state machine.
    return Retry(
        total=HTTP_CONNECT_RETRIES,
        connect=HTTP_CONNECT_RETRIES,
        read=0,
        status=0,
        backoff_factor=0.5,
        allowed_methods=["GET", "POST"],
    )


def create_default_session() -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
    )
    return session


_DEFAULT_SESSION: Session | None = None


def get_default_session() -> Session:
    """Return the shared default session, creating it on first use."""

    global _DEFAULT_SESSION
    if _DEFAULT_SESSION is None:
        _DEFAULT_SESSION = create_default_session()
    return _DEFAULT_SESSION
