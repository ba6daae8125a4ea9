"""Territory ride tracker package."""

from .main import main
from .models import LocationSample, Ride, RouteUnlock, Tile
from .session import ActivitySession, EndOutcome, EndStatus, SessionState
from .unlock import UnlockStatus, evaluate_unlock
from .errors import BackendError, SessionStateError, TerritoryTrackError

__all__ = [
    "main",
    "ActivitySession",
    "BackendError",
    "EndOutcome",
    "EndStatus",
    "LocationSample",
    "Ride",
    "RouteUnlock",
    "SessionState",
    "SessionStateError",
    "TerritoryTrackError",
    "Tile",
    "UnlockStatus",
    "evaluate_unlock",
]
