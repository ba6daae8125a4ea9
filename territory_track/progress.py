"""XP, levels, streaks, achievements and territory decay."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Sequence, Set

from .config import (
    LEVEL_XP,
    TERRITORY_DECAY_DAYS,
    XP_PER_100_METERS,
    XP_PER_CELL,
    XP_PER_MINUTE,
)
from .models import Ride
from .utils import to_utc_aware


@dataclass(frozen=True, slots=True)
class Achievement:
    id: str
    name: str
    description: str
    xp: int


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_ride", "First Pedal", "Complete your first ride", 50),
    Achievement("explorer_100", "Explorer", "Touch 100 different tiles", 100),
    Achievement("conqueror_50", "Conqueror", "Own 50 tiles", 200),
    Achievement("streak_7", "Week Warrior", "Ride 7 days in a row", 250),
    Achievement("streak_30", "Monthly Master", "Ride 30 days in a row", 500),
    Achievement("century", "Century Rider", "Ride 100km total", 300),
    Achievement("route_master", "Route Master", "Unlock 10 different routes", 350),
)


def ride_xp(distance_m: float, duration_s: float, cells: int) -> int:
    """XP earned for a ride: per 100 m, per minute and per cell touched."""

    return (
        math.floor(distance_m / 100) * XP_PER_100_METERS
        + math.floor(duration_s / 60) * XP_PER_MINUTE
        + cells * XP_PER_CELL
    )


def level_for_xp(xp: int, thresholds: Sequence[int] = LEVEL_XP) -> int:
    for index in range(len(thresholds) - 1, -1, -1):
        if xp >= thresholds[index]:
            return index + 1
    return 1


def xp_progress_percent(xp: int, thresholds: Sequence[int] = LEVEL_XP) -> float:
    """Percent of the way from the current level to the next, capped at 100."""

    level = level_for_xp(xp, thresholds)
    current = thresholds[level - 1]
    upcoming = thresholds[level] if level < len(thresholds) else thresholds[-1]
    if upcoming <= current:
        return 100.0
    return min((xp - current) / (upcoming - current) * 100.0, 100.0)


def ride_streak(
    ride_starts: Iterable[datetime],
    today: date,
    tz: Optional[tzinfo] = None,
) -> int:
    """Count consecutive calendar days with a ride, walking back from today.

    A ride yesterday keeps the streak alive even if there is none today yet.
    """

    days: Set[date] = set()
    for started in ride_starts:
        aware = to_utc_aware(started)
        days.add((aware.astimezone(tz) if tz else aware).date())
    streak = 0
    cursor = today
    for day in sorted(days, reverse=True):
        if day > cursor:
            continue
        if (cursor - day).days <= 1:
            streak += 1
            cursor = day
        else:
            break
    return streak


def decay_days_remaining(
    last_ride_at: Optional[datetime],
    now: datetime,
    decay_days: int = TERRITORY_DECAY_DAYS,
) -> Optional[int]:
    """Whole days left before owned tiles decay; ``None`` with no rides."""

    if last_ride_at is None:
        return None
    deadline = to_utc_aware(last_ride_at) + timedelta(days=decay_days)
    remaining = deadline - to_utc_aware(now)
    return max(0, math.ceil(remaining.total_seconds() / 86400))


def earned_achievements(
    rides: Sequence[Ride],
    *,
    distinct_cells_touched: int,
    tiles_owned: int,
    streak: int,
    unlocked_routes: int,
) -> List[str]:
    """Return ids of every achievement the stats qualify for."""

    total_km = sum(r.distance_meters for r in rides) / 1000.0
    checks = {
        "first_ride": len(rides) >= 1,
        "explorer_100": distinct_cells_touched >= 100,
        "conqueror_50": tiles_owned >= 50,
        "streak_7": streak >= 7,
        "streak_30": streak >= 30,
        "century": total_km >= 100.0,
        "route_master": unlocked_routes >= 10,
    }
    return [a.id for a in ACHIEVEMENTS if checks.get(a.id)]


def new_achievements(earned: Iterable[str], already: Iterable[str]) -> List[str]:
    owned = set(already)
    return [achievement_id for achievement_id in earned if achievement_id not in owned]


__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "decay_days_remaining",
    "earned_achievements",
    "level_for_xp",
    "new_achievements",
    "ride_streak",
    "ride_xp",
    "xp_progress_percent",
]
