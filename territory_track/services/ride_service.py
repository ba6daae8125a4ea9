"""Ride service.

Turns an ended :class:`~territory_track.session.ActivitySession` into a
persisted ride, then evaluates the route unlock over the owner's history and
records progress (unlock row, XP, streak, achievements). Only the ride
insert decides success: if it fails the session data is dropped and the
user is sent home, there is no local retry queue. Follow-up writes that fail
are logged and reported but do not undo the saved ride.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..app_state import AppState, LastRide, NoticeLevel, Page
from ..backend import BackendClient
from ..config import AUTO_CLAIM_ON_UNLOCK, UNLOCK_THRESHOLD, UNLOCK_WINDOW_DAYS
from ..errors import BackendError
from ..models import Ride
from ..progress import (
    earned_achievements,
    level_for_xp,
    new_achievements,
    ride_streak,
    ride_xp,
)
from ..session import ActivitySession, EndOutcome, EndStatus
from ..unlock import UnlockStatus, evaluate_unlock, to_route_unlock
from ..utils import utcnow
from .territory_service import TerritoryService


class SaveStatus(str, Enum):
    DISCARDED = "discarded"
    TOO_SHORT = "too_short"
    SAVED = "saved"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SaveOutcome:
    status: SaveStatus
    message: str
    ride: Optional[Ride] = None
    cells: Tuple[str, ...] = ()
    unlock: Optional[UnlockStatus] = None
    xp: int = 0
    error: Optional[BackendError] = None
    warnings: Tuple[str, ...] = ()


@dataclass(slots=True)
class RideServiceConfig:
    clock: Callable[[], datetime] = utcnow
    window_days: int = UNLOCK_WINDOW_DAYS
    threshold: int = UNLOCK_THRESHOLD
    auto_claim: bool = AUTO_CLAIM_ON_UNLOCK
    logger: logging.Logger | None = None


class RideService:
    def __init__(
        self,
        client: BackendClient,
        state: AppState,
        config: RideServiceConfig | None = None,
        territory: TerritoryService | None = None,
    ) -> None:
        self.config = config or RideServiceConfig()
        self._client = client
        self._state = state
        self._territory = territory
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def finish(self, session: ActivitySession, save: bool = True) -> SaveOutcome:
        """End ``session`` and persist it when it qualifies."""

        return self.handle_end(session.end(save))

    def handle_end(self, outcome: EndOutcome) -> SaveOutcome:
        if outcome.status is EndStatus.DISCARDED:
            self._state.notify("Ride discarded")
            self._state.navigate(Page.HOME)
            return SaveOutcome(SaveStatus.DISCARDED, "Ride discarded")
        if outcome.status is EndStatus.TOO_SHORT or outcome.ride is None:
            self._state.notify("Ride too short", NoticeLevel.WARNING)
            self._state.navigate(Page.HOME)
            return SaveOutcome(SaveStatus.TOO_SHORT, "Ride too short")
        return self._save(outcome.ride, outcome.cells)

    def _save(self, ride: Ride, cells: Tuple[str, ...]) -> SaveOutcome:
        inserted = self._client.insert_ride(ride)
        if not inserted.ok:
            self._log.error(
                "Failed to save ride owner=%s route=%s: %s",
                ride.owner_id,
                ride.route_fingerprint[:12],
                inserted.error,
            )
            self._state.notify("Failed to save", NoticeLevel.ERROR)
            self._state.navigate(Page.HOME)
            return SaveOutcome(
                SaveStatus.FAILED, "Failed to save", error=inserted.error
            )

        stored: Ride = inserted.unwrap()
        warnings: List[str] = []
        now = self.config.clock()
        history = self._history_with(stored, warnings)
        status = evaluate_unlock(
            stored.route_fingerprint,
            history,
            stored.owner_id,
            now,
            window_days=self.config.window_days,
            threshold=self.config.threshold,
        )
        self._log.info(
            "Route %s has %d/%d rides in %d days (unlocked=%s)",
            stored.route_fingerprint[:12],
            status.count,
            status.threshold,
            status.window_days,
            status.unlocked,
        )
        self._record_unlock(status, stored.owner_id, now, warnings)
        xp = ride_xp(stored.distance_meters, stored.duration_seconds, len(cells))
        self._award_xp(stored, xp, warnings)
        self._state.record_ride(LastRide(ride=stored, cells=cells, unlock=status, xp=xp))
        self._refresh_streak(stored.owner_id, now, warnings)
        self._award_achievements(stored.owner_id, warnings)

        self._state.notify("Ride saved!", NoticeLevel.SUCCESS)
        if status.unlocked:
            self._state.notify("Route unlocked! Tiles can be claimed.", NoticeLevel.SUCCESS)
            if self.config.auto_claim and self._territory is not None:
                claim = self._territory.claim_route(status, cells)
                if not claim.ok:
                    warnings.append(f"claim: {claim.error}")
        else:
            self._state.notify(
                f"{status.remaining} more ride(s) on this route to unlock"
            )
        self._state.navigate(Page.RIDE_SUMMARY)
        return SaveOutcome(
            SaveStatus.SAVED,
            "Ride saved!",
            ride=stored,
            cells=cells,
            unlock=status,
            xp=xp,
            warnings=tuple(warnings),
        )

    def _history_with(self, stored: Ride, warnings: List[str]) -> List[Ride]:
        fetched = self._client.get_user_rides(stored.owner_id, use_cache=False)
        if fetched.ok:
            history = list(fetched.unwrap())
        else:
            self._log.warning("Ride history unavailable, using local copy: %s", fetched.error)
            warnings.append(f"history: {fetched.error}")
            history = list(self._state.rides)
        if not any(self._same_ride(stored, ride) for ride in history):
            history.insert(0, stored)
        return history

    @staticmethod
    def _same_ride(a: Ride, b: Ride) -> bool:
        if a.id is not None and b.id is not None:
            return a.id == b.id
        return (
            a.owner_id == b.owner_id
            and a.started_at == b.started_at
            and a.route_fingerprint == b.route_fingerprint
        )

    def _record_unlock(
        self, status: UnlockStatus, owner_id: str, now: datetime, warnings: List[str]
    ) -> None:
        previous_result = self._client.get_route_unlock(owner_id, status.route_fingerprint)
        previous = previous_result.unwrap_or(None)
        record = to_route_unlock(status, owner_id, now, previous)
        upserted = self._client.upsert_route_unlock(record)
        if upserted.ok:
            self._state.set_route_unlock(upserted.unwrap())
        else:
            self._log.warning("Failed to record route unlock: %s", upserted.error)
            warnings.append(f"route_unlock: {upserted.error}")

    def _award_xp(self, ride: Ride, xp: int, warnings: List[str]) -> None:
        profile = self._state.profile
        if profile is None or xp <= 0:
            return
        old_level = level_for_xp(profile.xp)
        new_xp = profile.xp + xp
        updated = self._client.update_profile_xp(ride.owner_id, new_xp)
        if not updated.ok:
            self._log.warning("Failed to award %d XP: %s", xp, updated.error)
            warnings.append(f"xp: {updated.error}")
            return
        new_profile = updated.unwrap()
        if new_profile is None:
            profile.xp = new_xp
        else:
            self._state.set_profile(new_profile)
        self._state.notify(
            f"+{xp} XP - Ride: {ride.distance_meters / 1000:.1f}km", NoticeLevel.SUCCESS
        )
        new_level = level_for_xp(new_xp)
        if new_level > old_level:
            self._state.notify(
                f"Level Up! You're now level {new_level}!", NoticeLevel.LEVEL_UP
            )

    def _refresh_streak(self, owner_id: str, now: datetime, warnings: List[str]) -> None:
        starts = self._client.get_ride_start_dates(owner_id)
        if not starts.ok:
            warnings.append(f"streak: {starts.error}")
            return
        self._state.streak = ride_streak(starts.unwrap(), now.date())

    def _award_achievements(self, owner_id: str, warnings: List[str]) -> None:
        rides = self._state.rides
        earned = earned_achievements(
            rides,
            distinct_cells_touched=len(self._state.touched_cells),
            tiles_owned=len(self._state.tiles),
            streak=self._state.streak,
            unlocked_routes=sum(1 for u in self._state.route_unlocks if u.is_unlocked),
        )
        fresh = new_achievements(earned, self._state.achievements)
        if not fresh:
            return
        awarded = self._client.award_achievements(owner_id, fresh)
        if not awarded.ok:
            warnings.append(f"achievements: {awarded.error}")
            return
        self._state.achievements.extend(awarded.unwrap())
        for achievement_id in awarded.unwrap():
            self._state.notify(f"Achievement unlocked: {achievement_id}", NoticeLevel.SUCCESS)


__all__ = ["RideService", "RideServiceConfig", "SaveOutcome", "SaveStatus"]
