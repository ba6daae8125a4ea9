"""Pooled HTTP session for the hosted backend."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    BACKEND_BACKOFF_FACTOR,
    BACKEND_MAX_RETRIES,
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
)

__all__ = ["create_default_session", "get_default_session"]

# Reads only: a retried POST could store the same ride twice.
_RETRY_METHODS = frozenset({"GET", "HEAD"})
_RETRY_STATUSES = (429, 500, 502, 503, 504)


def _build_retry(max_retries: int, backoff_factor: float) -> Retry:
    return Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=_RETRY_STATUSES,
        allowed_methods=_RETRY_METHODS,
        respect_retry_after_header=True,
        raise_on_status=False,
    )


def create_default_session(
    *,
    max_retries: int = BACKEND_MAX_RETRIES,
    backoff_factor: float = BACKEND_BACKOFF_FACTOR,
) -> Session:
    """Build a session whose adapters pool connections and retry idempotent reads."""

    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(max_retries, backoff_factor),
    )
    session = requests.Session()
    for prefix in ("https://", "http://"):
        session.mount(prefix, adapter)
    session.headers["Accept"] = "application/json"
    session.headers["Accept-Encoding"] = "gzip, deflate"
    return session


_DEFAULT_SESSION = create_default_session()


def get_default_session() -> Session:
    """Return the process-wide backend session shared by clients."""

    return _DEFAULT_SESSION
