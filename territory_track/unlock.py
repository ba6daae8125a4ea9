"""Route unlock evaluation over an owner's ride history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .config import UNLOCK_THRESHOLD, UNLOCK_WINDOW_DAYS
from .models import Ride, RouteUnlock
from .utils import to_utc_aware

__all__ = ["UnlockStatus", "evaluate_unlock", "rides_in_window", "to_route_unlock"]


@dataclass(frozen=True, slots=True)
class UnlockStatus:
    route_fingerprint: str
    count: int
    threshold: int
    window_days: int
    last_ride_at: Optional[datetime] = None

    @property
    def unlocked(self) -> bool:
        return self.count >= self.threshold

    @property
    def remaining(self) -> int:
        return max(0, self.threshold - self.count)


def rides_in_window(
    route_fingerprint: str,
    rides: Iterable[Ride],
    owner_id: str,
    now: datetime,
    window_days: int = UNLOCK_WINDOW_DAYS,
) -> List[Ride]:
    """Return the owner's rides on this route started within the window.

    A ride counts while its start time is no older than ``window_days``
    before ``now``; each ride ages out individually.
    """

    cutoff = to_utc_aware(now) - timedelta(days=window_days)
    matched: List[Ride] = []
    for ride in rides:
        if ride.owner_id != owner_id or ride.route_fingerprint != route_fingerprint:
            continue
        reference = ride.reference_time
        if reference is None:
            continue
        if to_utc_aware(reference) >= cutoff:
            matched.append(ride)
    return matched


def evaluate_unlock(
    route_fingerprint: str,
    rides: Iterable[Ride],
    owner_id: str,
    now: datetime,
    *,
    window_days: int = UNLOCK_WINDOW_DAYS,
    threshold: int = UNLOCK_THRESHOLD,
) -> UnlockStatus:
    """Count same-route rides in the trailing window and compare to the threshold.

    ``rides`` must already include the ride just completed. The function is
    pure: claiming territory after an unlock is a separate operation.
    """

    matched = rides_in_window(route_fingerprint, rides, owner_id, now, window_days)
    last_ride_at = max(
        (to_utc_aware(r.reference_time) for r in matched if r.reference_time),
        default=None,
    )
    return UnlockStatus(
        route_fingerprint=route_fingerprint,
        count=len(matched),
        threshold=threshold,
        window_days=window_days,
        last_ride_at=last_ride_at,
    )


def to_route_unlock(
    status: UnlockStatus,
    owner_id: str,
    now: datetime,
    previous: Optional[RouteUnlock] = None,
) -> RouteUnlock:
    """Build the persisted unlock record.

    ``is_unlocked`` mirrors the current window; ``unlocked_at`` keeps the
    first time the route was ever unlocked.
    """

    unlocked_at = previous.unlocked_at if previous is not None else None
    if status.unlocked and unlocked_at is None:
        unlocked_at = now
    return RouteUnlock(
        owner_id=owner_id,
        route_fingerprint=status.route_fingerprint,
        ride_count=status.count,
        is_unlocked=status.unlocked,
        last_ride_at=status.last_ride_at,
        unlocked_at=unlocked_at,
    )
