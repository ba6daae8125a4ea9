from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .activity_types import ActivityKind, normalize_activity_kind
from .utils import isoformat_utc, parse_iso_datetime


class GpsSignal(str, Enum):
    WAITING = "waiting"
    GOOD = "good"
    FAIR = "fair"
    WEAK = "weak"


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single device location fix. Never persisted individually."""

    latitude: float
    longitude: float
    timestamp: datetime
    accuracy_m: float


@dataclass
class Ride:
    owner_id: str
    activity_kind: ActivityKind
    started_at: datetime
    ended_at: datetime
    duration_seconds: int
    distance_meters: int
    route_fingerprint: str
    distinct_cell_count: int
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def reference_time(self) -> Optional[datetime]:
        """Start time, falling back to the row creation time."""

        return self.started_at or self.created_at

    @property
    def average_speed_kmh(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.distance_meters / self.duration_seconds * 3.6

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.owner_id,
            "activity_type": self.activity_kind.value,
            "started_at": isoformat_utc(self.started_at),
            "ended_at": isoformat_utc(self.ended_at),
            "duration_sec": self.duration_seconds,
            "distance_m": self.distance_meters,
            "route_signature": self.route_fingerprint,
            "tiles_touched": self.distinct_cell_count,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Ride":
        created_at = parse_iso_datetime(row.get("created_at"))
        started_at = parse_iso_datetime(row.get("started_at")) or created_at
        ended_at = parse_iso_datetime(row.get("ended_at")) or started_at
        if started_at is None or ended_at is None:
            raise ValueError("Ride row has neither started_at nor created_at")
        ride_id = row.get("id")
        return cls(
            owner_id=str(row.get("user_id", "")),
            activity_kind=normalize_activity_kind(row.get("activity_type")),
            started_at=started_at,
            ended_at=ended_at,
            duration_seconds=int(row.get("duration_sec") or 0),
            distance_meters=int(row.get("distance_m") or 0),
            route_fingerprint=str(row.get("route_signature") or ""),
            distinct_cell_count=int(row.get("tiles_touched") or 0),
            id=str(ride_id) if ride_id is not None else None,
            created_at=created_at,
        )


@dataclass
class RouteUnlock:
    owner_id: str
    route_fingerprint: str
    ride_count: int
    is_unlocked: bool
    last_ride_at: Optional[datetime] = None
    unlocked_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "user_id": self.owner_id,
            "route_signature": self.route_fingerprint,
            "ride_count": self.ride_count,
            "is_unlocked": self.is_unlocked,
        }
        if self.last_ride_at is not None:
            row["last_ride_at"] = isoformat_utc(self.last_ride_at)
        if self.unlocked_at is not None:
            row["unlocked_at"] = isoformat_utc(self.unlocked_at)
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RouteUnlock":
        return cls(
            owner_id=str(row.get("user_id", "")),
            route_fingerprint=str(row.get("route_signature") or ""),
            ride_count=int(row.get("ride_count") or 0),
            is_unlocked=bool(row.get("is_unlocked")),
            last_ride_at=parse_iso_datetime(row.get("last_ride_at")),
            unlocked_at=parse_iso_datetime(row.get("unlocked_at")),
        )


@dataclass
class Tile:
    cell_id: str
    owner_id: Optional[str]
    last_claimed_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "h3_index": self.cell_id,
            "current_owner_user_id": self.owner_id,
        }
        if self.last_claimed_at is not None:
            row["last_claimed_at"] = isoformat_utc(self.last_claimed_at)
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Tile":
        owner = row.get("current_owner_user_id")
        return cls(
            cell_id=str(row.get("h3_index", "")),
            owner_id=str(owner) if owner is not None else None,
            last_claimed_at=parse_iso_datetime(row.get("last_claimed_at")),
        )


@dataclass
class Profile:
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    xp: int = 0
    clan_id: Optional[str] = None
    tutorial_completed: bool = False

    @property
    def is_complete(self) -> bool:
        return bool(self.first_name and self.last_name)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Profile":
        clan_id = row.get("clan_id")
        return cls(
            user_id=str(row.get("id", "")),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            xp=int(row.get("xp") or 0),
            clan_id=str(clan_id) if clan_id is not None else None,
            tutorial_completed=bool(row.get("tutorial_completed")),
        )


@dataclass
class RouteThreat:
    id: str
    defender_id: str
    route_fingerprint: Optional[str]
    tiles_at_risk_count: int
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RouteThreat":
        return cls(
            id=str(row.get("id", "")),
            defender_id=str(row.get("defender_user_id", "")),
            route_fingerprint=row.get("route_signature"),
            tiles_at_risk_count=int(row.get("tiles_at_risk_count") or 0),
            status=str(row.get("status") or ""),
            raw=dict(row),
        )


@dataclass
class LeaderboardEntry:
    user_id: str
    display_name: str
    tiles_owned: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LeaderboardEntry":
        name = row.get("display_name") or " ".join(
            part for part in (row.get("first_name"), row.get("last_name")) if part
        )
        tiles = row.get("tiles_owned")
        if tiles is None:
            tiles = row.get("total_tiles")
        return cls(
            user_id=str(row.get("user_id") or row.get("id") or ""),
            display_name=name or "Rider",
            tiles_owned=int(tiles or 0),
        )
