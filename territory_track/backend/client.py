"""Backend client for the hosted database and auth service.

Talks to a Supabase project: PostgREST tables under ``/rest/v1`` and the
auth API under ``/auth/v1``. Every public method returns a
:class:`~territory_track.result.Result`; remote failures come back as
``Err`` and are never raised.
"""

from __future__ import annotations

import logging
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

import requests
from cachetools import TTLCache

from ..config import (
    LEADERBOARD_LIMIT,
    REQUEST_TIMEOUT,
    RIDE_HISTORY_CACHE_SIZE,
    RIDE_HISTORY_CACHE_TTL_SECONDS,
    STREAK_LOOKBACK_RIDES,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
)
from ..errors import BackendError, ErrorKind
from ..models import LeaderboardEntry, Profile, Ride, RouteThreat, RouteUnlock, Tile
from ..result import Err, Ok, Result
from ..utils import parse_iso_datetime
from .response_handling import classify_response_status
from .session import get_default_session

T = TypeVar("T")
Row = Dict[str, Any]

LOGGER = logging.getLogger(__name__)

_RETURN_REPRESENTATION = {"Prefer": "return=representation"}
_UPSERT_PREFER = {"Prefer": "resolution=merge-duplicates,return=representation"}


class BackendClient:
    def __init__(
        self,
        url: str = SUPABASE_URL,
        anon_key: str = SUPABASE_ANON_KEY,
        *,
        session: requests.Session | None = None,
        timeout: int = REQUEST_TIMEOUT,
        access_token: str | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._session = session or get_default_session()
        self._timeout = timeout
        self._access_token = access_token
        self._ride_cache: TTLCache[str, List[Ride]] = TTLCache(
            maxsize=max(1, RIDE_HISTORY_CACHE_SIZE),
            ttl=max(1, RIDE_HISTORY_CACHE_TTL_SECONDS),
        )
        self._ride_cache_lock = RLock()

    @property
    def configured(self) -> bool:
        return bool(self._url and self._anon_key)

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token
        self.clear_cache()

    def clear_cache(self) -> None:
        with self._ride_cache_lock:
            self._ride_cache.clear()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {self._access_token or self._anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        context: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Result[Any]:
        if not self.configured:
            return Err(
                BackendError(
                    ErrorKind.NOT_CONFIGURED,
                    "Backend URL / anon key not configured (SUPABASE_URL / SUPABASE_ANON_KEY)",
                )
            )
        url = f"{self._url}{path}"
        LOGGER.debug("%s %s params=%s", method, url, params)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(headers),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            LOGGER.warning("%s network error: %s", context, exc.__class__.__name__)
            return Err(
                BackendError(ErrorKind.NETWORK, f"{context} network error", detail=str(exc))
            )

        error = classify_response_status(response, context)
        if error is not None:
            return Err(error)
        if response.status_code == 204 or not response.content:
            return Ok(None)
        try:
            return Ok(response.json())
        except ValueError as exc:
            LOGGER.error("%s returned non-JSON body: %s", context, exc)
            return Err(
                BackendError(
                    ErrorKind.DECODE,
                    f"{context} returned invalid JSON",
                    status=response.status_code,
                )
            )

    def _rest(
        self,
        method: str,
        table: str,
        context: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Result[Any]:
        return self._request(
            method,
            f"/rest/v1/{table}",
            context,
            params=params,
            json_body=json_body,
            headers=headers,
        )

    @staticmethod
    def _decode_rows(
        result: Result[Any], decoder: Callable[[Row], T], context: str
    ) -> Result[List[T]]:
        if not result.ok:
            return result
        payload = result.unwrap()
        if payload is None:
            return Ok([])
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            return Err(
                BackendError(
                    ErrorKind.DECODE,
                    f"{context} returned {type(payload).__name__}, expected rows",
                )
            )
        try:
            return Ok([decoder(row) for row in payload if isinstance(row, dict)])
        except (TypeError, ValueError) as exc:
            LOGGER.error("%s row decode failed: %s", context, exc)
            return Err(BackendError(ErrorKind.DECODE, f"{context} rows malformed", detail=str(exc)))

    @classmethod
    def _decode_first(
        cls, result: Result[Any], decoder: Callable[[Row], T], context: str
    ) -> Result[Optional[T]]:
        rows = cls._decode_rows(result, decoder, context)
        if not rows.ok:
            return rows
        items = rows.unwrap()
        return Ok(items[0] if items else None)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def sign_in_with_password(self, email: str, password: str) -> Result[Row]:
        return self._request(
            "POST",
            "/auth/v1/token",
            "Sign in",
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
        )

    def sign_up(self, email: str, password: str) -> Result[Row]:
        return self._request(
            "POST",
            "/auth/v1/signup",
            "Sign up",
            json_body={"email": email, "password": password},
        )

    def refresh_session(self, refresh_token: str) -> Result[Row]:
        return self._request(
            "POST",
            "/auth/v1/token",
            "Token refresh",
            params={"grant_type": "refresh_token"},
            json_body={"refresh_token": refresh_token},
        )

    def sign_out(self) -> Result[None]:
        return self._request("POST", "/auth/v1/logout", "Sign out")

    def get_user(self) -> Result[Row]:
        return self._request("GET", "/auth/v1/user", "Current user")

    # ------------------------------------------------------------------
    # Rides
    # ------------------------------------------------------------------
    def insert_ride(self, ride: Ride) -> Result[Ride]:
        result = self._rest(
            "POST",
            "rides",
            "Insert ride",
            json_body=ride.to_row(),
            headers=_RETURN_REPRESENTATION,
        )
        stored = self._decode_first(result, Ride.from_row, "Insert ride")
        if not stored.ok:
            return stored
        with self._ride_cache_lock:
            self._ride_cache.pop(ride.owner_id, None)
        return Ok(stored.unwrap() or ride)

    def get_user_rides(self, owner_id: str, *, use_cache: bool = True) -> Result[List[Ride]]:
        if use_cache:
            with self._ride_cache_lock:
                cached = self._ride_cache.get(owner_id)
            if cached is not None:
                return Ok(list(cached))
        result = self._rest(
            "GET",
            "rides",
            "Ride history",
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": "created_at.desc",
            },
        )
        rides = self._decode_rows(result, Ride.from_row, "Ride history")
        if rides.ok:
            with self._ride_cache_lock:
                self._ride_cache[owner_id] = list(rides.unwrap())
        return rides

    def get_ride_start_dates(
        self, owner_id: str, limit: int = STREAK_LOOKBACK_RIDES
    ) -> Result[List[datetime]]:
        result = self._rest(
            "GET",
            "rides",
            "Ride start dates",
            params={
                "select": "started_at",
                "user_id": f"eq.{owner_id}",
                "order": "started_at.desc",
                "limit": limit,
            },
        )
        rows = self._decode_rows(result, lambda row: row, "Ride start dates")
        if not rows.ok:
            return rows
        dates = [parse_iso_datetime(row.get("started_at")) for row in rows.unwrap()]
        return Ok([value for value in dates if value is not None])

    # ------------------------------------------------------------------
    # Route unlocks
    # ------------------------------------------------------------------
    def get_route_unlock(
        self, owner_id: str, route_fingerprint: str
    ) -> Result[Optional[RouteUnlock]]:
        result = self._rest(
            "GET",
            "route_unlocks",
            "Route unlock",
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "route_signature": f"eq.{route_fingerprint}",
                "limit": 1,
            },
        )
        return self._decode_first(result, RouteUnlock.from_row, "Route unlock")

    def upsert_route_unlock(self, unlock: RouteUnlock) -> Result[RouteUnlock]:
        result = self._rest(
            "POST",
            "route_unlocks",
            "Upsert route unlock",
            params={"on_conflict": "user_id,route_signature"},
            json_body=unlock.to_row(),
            headers=_UPSERT_PREFER,
        )
        stored = self._decode_first(result, RouteUnlock.from_row, "Upsert route unlock")
        if not stored.ok:
            return stored
        return Ok(stored.unwrap() or unlock)

    def get_user_route_unlocks(
        self, owner_id: str, *, unlocked_only: bool = True
    ) -> Result[List[RouteUnlock]]:
        params = {"select": "*", "user_id": f"eq.{owner_id}"}
        if unlocked_only:
            params["is_unlocked"] = "eq.true"
        result = self._rest("GET", "route_unlocks", "Route unlocks", params=params)
        return self._decode_rows(result, RouteUnlock.from_row, "Route unlocks")

    # ------------------------------------------------------------------
    # Tiles
    # ------------------------------------------------------------------
    def get_user_tiles(self, owner_id: str) -> Result[List[Tile]]:
        result = self._rest(
            "GET",
            "tiles",
            "Owned tiles",
            params={"select": "*", "current_owner_user_id": f"eq.{owner_id}"},
        )
        return self._decode_rows(result, Tile.from_row, "Owned tiles")

    def claim_tiles(self, tiles: Iterable[Tile]) -> Result[List[Tile]]:
        rows = [tile.to_row() for tile in tiles]
        if not rows:
            return Ok([])
        result = self._rest(
            "POST",
            "tiles",
            "Claim tiles",
            params={"on_conflict": "h3_index"},
            json_body=rows,
            headers=_UPSERT_PREFER,
        )
        return self._decode_rows(result, Tile.from_row, "Claim tiles")

    # ------------------------------------------------------------------
    # Profiles, leaderboard, threats, achievements
    # ------------------------------------------------------------------
    def get_profile(self, owner_id: str) -> Result[Optional[Profile]]:
        result = self._rest(
            "GET",
            "profiles",
            "Profile",
            params={"select": "*", "id": f"eq.{owner_id}", "limit": 1},
        )
        return self._decode_first(result, Profile.from_row, "Profile")

    def update_profile_xp(self, owner_id: str, xp: int) -> Result[Optional[Profile]]:
        result = self._rest(
            "PATCH",
            "profiles",
            "Update XP",
            params={"id": f"eq.{owner_id}"},
            json_body={"xp": xp},
            headers=_RETURN_REPRESENTATION,
        )
        return self._decode_first(result, Profile.from_row, "Update XP")

    def get_leaderboard(self, limit: int = LEADERBOARD_LIMIT) -> Result[List[LeaderboardEntry]]:
        result = self._rest(
            "GET",
            "leaderboard",
            "Leaderboard",
            params={"select": "*", "order": "tiles_owned.desc", "limit": limit},
        )
        return self._decode_rows(result, LeaderboardEntry.from_row, "Leaderboard")

    def get_active_threats(self, owner_id: str) -> Result[List[RouteThreat]]:
        result = self._rest(
            "GET",
            "route_threats",
            "Route threats",
            params={
                "select": "*",
                "defender_user_id": f"eq.{owner_id}",
                "status": "eq.active",
            },
        )
        return self._decode_rows(result, RouteThreat.from_row, "Route threats")

    def get_user_achievements(self, owner_id: str) -> Result[List[str]]:
        result = self._rest(
            "GET",
            "user_achievements",
            "Achievements",
            params={"select": "achievement_id", "user_id": f"eq.{owner_id}"},
        )
        rows = self._decode_rows(result, lambda row: str(row.get("achievement_id", "")), "Achievements")
        if not rows.ok:
            return rows
        return Ok([value for value in rows.unwrap() if value])

    def award_achievements(self, owner_id: str, achievement_ids: Iterable[str]) -> Result[List[str]]:
        rows = [{"user_id": owner_id, "achievement_id": a} for a in achievement_ids]
        if not rows:
            return Ok([])
        result = self._rest(
            "POST",
            "user_achievements",
            "Award achievements",
            json_body=rows,
            headers=_RETURN_REPRESENTATION,
        )
        if not result.ok:
            return result
        return Ok([row["achievement_id"] for row in rows])


__all__ = ["BackendClient"]
