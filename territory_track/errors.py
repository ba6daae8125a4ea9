"""Central error types used across the application."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Categories of backend failure surfaced to callers."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_REQUEST = "invalid_request"
    SERVER = "server"
    NETWORK = "network"
    DECODE = "decode"
    NOT_CONFIGURED = "not_configured"


class TerritoryTrackError(RuntimeError):
    """Base error for the package."""


class ConfigurationError(TerritoryTrackError):
    """Raised when required settings (backend URL / key) are missing."""


class SessionStateError(TerritoryTrackError):
    """Raised when an activity session transition is not allowed."""


class NotSignedInError(TerritoryTrackError):
    """Raised when an operation needs a signed-in owner and there is none."""


class TrackFormatError(TerritoryTrackError):
    """Raised when a recorded track file cannot be parsed."""


class RouteLockedError(TerritoryTrackError):
    """Raised when tiles are claimed for a route that is not unlocked."""


class BackendError(TerritoryTrackError):
    """A failed backend call, carried inside ``Err`` results."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.detail = detail

    @property
    def transient(self) -> bool:
        return self.kind in (ErrorKind.NETWORK, ErrorKind.SERVER)

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} | {self.detail}" if self.detail else base


__all__ = [
    "BackendError",
    "ConfigurationError",
    "ErrorKind",
    "NotSignedInError",
    "RouteLockedError",
    "SessionStateError",
    "TerritoryTrackError",
    "TrackFormatError",
]
