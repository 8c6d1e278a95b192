"""Shared HTTP response helpers for external road-graph services."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..errors import (
    ExternalServiceError,
    NonRetryableServiceError,
    RetryableServiceError,
)

LOGGER = logging.getLogger(__name__)

# Gateway/overload statuses worth retrying; everything else fails fast.
RETRYABLE_STATUSES = frozenset({502, 503, 504})

__all__ = [
    "RETRYABLE_STATUSES",
    "classify_response_status",
    "error_for_exception",
    "extract_error",
]


def classify_response_status(
    response: requests.Response,
    context: str,
    *,
    service: str,
) -> Tuple[str, Optional[ExternalServiceError]]:
    """Return action for a response status: ok, retry, or raise.

    Timeouts and 502/503/504 are retryable; 400, 429 and any other error
    status fail fast.
    """

    status = response.status_code
    if status < 400:
        return "ok", None

    detail = extract_error(response)

    def with_detail(message: str) -> str:
        return f"{message} | {detail}" if detail else message

    if status in RETRYABLE_STATUSES:
        message = with_detail(f"{context} server error {status}")
        LOGGER.warning(message)
        return "retry", RetryableServiceError(
            message, service=service, status_code=status
        )

    if status == 429:
        message = with_detail(f"{context} rate limited (429)")
        LOGGER.warning(message)
        return "raise", NonRetryableServiceError(
            message, service=service, status_code=status
        )

    if status == 400:
        message = with_detail(f"{context} rejected the request (400)")
        LOGGER.error(message)
        return "raise", NonRetryableServiceError(
            message, service=service, status_code=status
        )

    message = with_detail(f"{context} request failed (status {status})")
    LOGGER.error(message)
    return "raise", NonRetryableServiceError(
        message, service=service, status_code=status
    )


def error_for_exception(
    exc: requests.RequestException, context: str, *, service: str
) -> RetryableServiceError:
    """Wrap a transport-level failure (timeout, connection reset) as retryable."""

    if isinstance(exc, requests.Timeout):
        message = f"{context} timed out: {exc}"
    else:
        message = f"{context} network error: {exc}"
    LOGGER.warning(message)
    return RetryableServiceError(message, service=service)


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return a compact error string (JSON code/message or trimmed text)."""

    if resp is None:
        return None
    data = _safe_json(resp)
    if isinstance(data, dict):
        parts = _collect_error_parts(data)
        if parts:
            return " | ".join(parts)
    return _extract_error_text(resp)


def _safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    try:
        return resp.json()
    except ValueError as exc:
        LOGGER.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    """Best-effort plain-text extraction when JSON parsing fails."""

    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:297] + "...") if len(trimmed) > 300 else trimmed


def _collect_error_parts(data: Dict[str, Any]) -> List[str]:
    """Build error snippets from OSRM (code/message) or Overpass (remark) bodies."""

    parts: List[str] = []
    for key in ("code", "message", "remark"):
        value = data.get(key)
        if value:
            parts.append(str(value))
    return parts
