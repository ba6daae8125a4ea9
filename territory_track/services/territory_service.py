"""Territory service: claiming tiles on unlocked routes and decay status."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..app_state import AppState, NoticeLevel
from ..backend import BackendClient
from ..config import TERRITORY_DECAY_DAYS, TERRITORY_DECAY_WARNING_DAYS
from ..errors import NotSignedInError, RouteLockedError
from ..models import Tile
from ..progress import decay_days_remaining
from ..result import Result
from ..unlock import UnlockStatus
from ..utils import utcnow


class TerritoryService:
    def __init__(
        self,
        client: BackendClient,
        state: AppState,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._state = state
        self._clock = clock
        self._log = logging.getLogger(self.__class__.__name__)

    def claim_route(self, status: UnlockStatus, cells: Iterable[str]) -> Result[List[Tile]]:
        """Claim every cell of an unlocked route for the signed-in user.

        Raises:
            RouteLockedError: If ``status`` is not unlocked.
            NotSignedInError: If no user is signed in.
        """

        if not status.unlocked:
            raise RouteLockedError(
                f"Route {status.route_fingerprint[:12]} needs {status.remaining} more ride(s)"
            )
        owner = self._state.user_id
        if owner is None:
            raise NotSignedInError("Claiming tiles requires a signed-in user")
        now = self._clock()
        tiles = [Tile(cell_id=cell, owner_id=owner, last_claimed_at=now) for cell in sorted(set(cells))]
        self._log.info(
            "Claiming %d tiles for user=%s route=%s",
            len(tiles),
            owner,
            status.route_fingerprint[:12],
        )
        result = self._client.claim_tiles(tiles)
        if result.ok:
            claimed = result.unwrap() or tiles
            self._state.merge_tiles(claimed)
            self._state.notify(f"Claimed {len(claimed)} tiles!", NoticeLevel.SUCCESS)
        else:
            self._state.notify("Failed to claim tiles", NoticeLevel.ERROR)
        return result

    def refresh_tiles(self) -> Result[List[Tile]]:
        owner = self._state.user_id
        if owner is None:
            raise NotSignedInError("Loading tiles requires a signed-in user")
        result = self._client.get_user_tiles(owner)
        if result.ok:
            self._state.set_tiles(result.unwrap())
        return result

    def decay_days_remaining(self) -> Optional[int]:
        if not self._state.tiles:
            return None
        return decay_days_remaining(
            self._state.last_ride_at, self._clock(), TERRITORY_DECAY_DAYS
        )

    def decay_warning(self) -> bool:
        """True when owned tiles will decay within the warning horizon."""

        remaining = self.decay_days_remaining()
        return remaining is not None and remaining <= TERRITORY_DECAY_WARNING_DAYS


__all__ = ["TerritoryService"]
