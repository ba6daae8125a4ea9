"""Explicit application state passed to services and the CLI.

Replaces a shared ambient context: every mutation goes through a method so
callers can see what changes and tests can build state directly.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set, Tuple

from .errors import BackendError
from .models import Profile, Ride, RouteThreat, RouteUnlock, Tile

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .backend import BackendClient
    from .unlock import UnlockStatus

LOGGER = logging.getLogger(__name__)


class Page(str, Enum):
    ONBOARDING = "onboarding"
    AUTH = "auth"
    PROFILE_SETUP = "profile_setup"
    HOME = "home"
    RIDE = "ride"
    RIDE_SUMMARY = "ride_summary"
    TERRITORY = "territory"


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    LEVEL_UP = "levelup"


@dataclass(frozen=True, slots=True)
class Notice:
    message: str
    level: NoticeLevel = NoticeLevel.INFO


@dataclass
class LastRide:
    ride: Ride
    cells: Tuple[str, ...]
    unlock: Optional["UnlockStatus"] = None
    xp: int = 0


@dataclass
class AppState:
    user_id: Optional[str] = None
    profile: Optional[Profile] = None
    rides: List[Ride] = field(default_factory=list)
    tiles: List[Tile] = field(default_factory=list)
    route_unlocks: List[RouteUnlock] = field(default_factory=list)
    threats: List[RouteThreat] = field(default_factory=list)
    achievements: List[str] = field(default_factory=list)
    touched_cells: Set[str] = field(default_factory=set)
    streak: int = 0
    last_ride: Optional[LastRide] = None
    notices: List[Notice] = field(default_factory=list)
    page: Page = Page.ONBOARDING

    def sign_in(self, user_id: str, profile: Optional[Profile]) -> Page:
        """Adopt a signed-in user and choose the landing page."""

        self.user_id = user_id
        self.profile = profile
        if profile is None or not profile.is_complete:
            self.page = Page.PROFILE_SETUP
        else:
            self.page = Page.HOME
        return self.page

    def sign_out(self) -> None:
        self.user_id = None
        self.profile = None
        self.rides = []
        self.tiles = []
        self.route_unlocks = []
        self.threats = []
        self.achievements = []
        self.touched_cells = set()
        self.streak = 0
        self.last_ride = None
        self.page = Page.ONBOARDING
        self.notify("Signed out")

    def navigate(self, page: Page) -> None:
        LOGGER.debug("Navigate %s -> %s", self.page.value, page.value)
        self.page = page

    def notify(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> None:
        self.notices.append(Notice(message, level))
        log_level = {
            NoticeLevel.WARNING: logging.WARNING,
            NoticeLevel.ERROR: logging.ERROR,
        }.get(level, logging.INFO)
        LOGGER.log(log_level, "%s", message)

    def drain_notices(self) -> List[Notice]:
        notices, self.notices = self.notices, []
        return notices

    def set_profile(self, profile: Profile) -> None:
        self.profile = profile

    def set_tiles(self, tiles: List[Tile]) -> None:
        self.tiles = list(tiles)
        self.touched_cells.update(tile.cell_id for tile in self.tiles)

    def merge_tiles(self, claimed: List[Tile]) -> None:
        by_cell: Dict[str, Tile] = {tile.cell_id: tile for tile in self.tiles}
        for tile in claimed:
            if tile.owner_id == self.user_id:
                by_cell[tile.cell_id] = tile
            else:
                by_cell.pop(tile.cell_id, None)
        self.tiles = list(by_cell.values())
        self.touched_cells.update(tile.cell_id for tile in self.tiles)

    def record_ride(self, last: LastRide) -> None:
        """Prepend a saved ride to history and make it the summary ride."""

        self.rides = [last.ride] + [r for r in self.rides if r.id is None or r.id != last.ride.id]
        self.touched_cells.update(last.cells)
        self.last_ride = last

    def set_route_unlock(self, unlock: RouteUnlock) -> None:
        others = [
            u for u in self.route_unlocks if u.route_fingerprint != unlock.route_fingerprint
        ]
        self.route_unlocks = others + [unlock] if unlock.is_unlocked else others

    @property
    def last_ride_at(self) -> Optional[datetime]:
        starts = [r.reference_time for r in self.rides if r.reference_time]
        return max(starts) if starts else None

    def load_user_data(self, client: "BackendClient") -> List[BackendError]:
        """Fetch rides, tiles, active threats and unlocked routes in parallel.

        Each collection is replaced only when its fetch succeeds; failures
        are returned so the caller can surface one generic message.
        """

        if self.user_id is None:
            return []
        owner = self.user_id
        fetchers: Dict[str, Callable[[], object]] = {
            "rides": lambda: client.get_user_rides(owner),
            "tiles": lambda: client.get_user_tiles(owner),
            "threats": lambda: client.get_active_threats(owner),
            "route_unlocks": lambda: client.get_user_route_unlocks(owner),
        }
        with ThreadPoolExecutor(max_workers=len(fetchers)) as executor:
            futures = {name: executor.submit(fn) for name, fn in fetchers.items()}
            results = {name: future.result() for name, future in futures.items()}

        errors: List[BackendError] = []
        for name, result in results.items():
            if result.ok:
                setattr(self, name, list(result.unwrap()))
            else:
                LOGGER.warning("Failed to load %s for user=%s: %s", name, owner, result.error)
                errors.append(result.error)
        self.touched_cells.update(tile.cell_id for tile in self.tiles)
        return errors


__all__ = ["AppState", "LastRide", "Notice", "NoticeLevel", "Page"]
