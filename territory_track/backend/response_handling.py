"""Shared HTTP response helpers for backend interactions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import BackendError, ErrorKind

LOGGER = logging.getLogger(__name__)

__all__ = [
    "classify_response_status",
    "extract_error",
]


def classify_response_status(
    response: requests.Response, context: str
) -> Optional[BackendError]:
    """Return a :class:`BackendError` for a non-success status, else ``None``."""

    status = response.status_code
    if status < 400:
        return None
    detail = extract_error(response)

    if status == 401:
        kind = ErrorKind.UNAUTHORIZED
        message = f"{context} unauthorized"
    elif status == 403:
        kind = ErrorKind.FORBIDDEN
        message = f"{context} forbidden"
    elif status in (404, 406):
        # PostgREST answers 406 when a single-object request matches no row.
        kind = ErrorKind.NOT_FOUND
        message = f"{context} not found"
    elif status == 409:
        kind = ErrorKind.CONFLICT
        message = f"{context} conflict"
    elif status >= 500:
        kind = ErrorKind.SERVER
        message = f"{context} server error {status}"
    else:
        kind = ErrorKind.INVALID_REQUEST
        message = f"{context} request failed (status {status})"

    if kind in (ErrorKind.SERVER, ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN):
        LOGGER.warning("%s%s", message, f" | {detail}" if detail else "")
    elif kind is ErrorKind.NOT_FOUND:
        LOGGER.info(message)
    else:
        LOGGER.error("%s%s", message, f" | {detail}" if detail else "")
    return BackendError(kind, message, status=status, detail=detail)


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return a compact error string from PostgREST or auth error bodies."""

    if resp is None:
        return None
    data = _safe_json(resp)
    if data is None:
        return _extract_error_text(resp)
    if not isinstance(data, dict):
        return None
    parts = _collect_error_parts(data)
    return " | ".join(parts) if parts else None


def _safe_json(resp: requests.Response) -> Optional[Any]:
    try:
        return resp.json()
    except ValueError as exc:
        LOGGER.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:297] + "...") if len(trimmed) > 300 else trimmed


def _collect_error_parts(data: Dict[str, Any]) -> List[str]:
    parts: List[str] = []
    # PostgREST: message/code/details/hint. Auth: error/error_description/msg.
    for key in ("message", "msg", "error_description", "error"):
        value = data.get(key)
        if value and str(value) not in parts:
            parts.append(str(value))
    code = data.get("code") or data.get("error_code")
    if code:
        parts.append(f"code:{code}")
    details = data.get("details")
    if details:
        parts.append(str(details))
    hint = data.get("hint")
    if hint:
        parts.append(f"hint:{hint}")
    return parts
