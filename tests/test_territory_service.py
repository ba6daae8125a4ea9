from datetime import timedelta

import pytest

from territory_track.app_state import AppState
from territory_track.errors import BackendError, ErrorKind, NotSignedInError, RouteLockedError
from territory_track.models import Tile
from territory_track.result import Err, Ok
from territory_track.services import TerritoryService
from territory_track.unlock import UnlockStatus

from conftest import T0, make_ride


class ClaimClient:
    def __init__(self, result=None, tiles=None):
        self.result = result
        self.tiles = tiles
        self.claimed = None

    def claim_tiles(self, tiles):
        self.claimed = list(tiles)
        return self.result if self.result is not None else Ok(self.claimed)

    def get_user_tiles(self, owner_id):
        return self.tiles


UNLOCKED = UnlockStatus("fp", count=3, threshold=3, window_days=7)
LOCKED = UnlockStatus("fp", count=2, threshold=3, window_days=7)


def _service(client, user="user-1", now=T0):
    state = AppState(user_id=user)
    return TerritoryService(client, state, clock=lambda: now), state


def test_claim_requires_unlocked_route() -> None:
    client = ClaimClient()
    service, _state = _service(client)
    with pytest.raises(RouteLockedError):
        service.claim_route(LOCKED, ["c1"])
    assert client.claimed is None


def test_claim_requires_signed_in_user() -> None:
    service, _state = _service(ClaimClient(), user=None)
    with pytest.raises(NotSignedInError):
        service.claim_route(UNLOCKED, ["c1"])


def test_claim_dedupes_and_merges_tiles() -> None:
    client = ClaimClient()
    service, state = _service(client)
    result = service.claim_route(UNLOCKED, ["c2", "c1", "c2"])
    assert result.ok
    assert [t.cell_id for t in client.claimed] == ["c1", "c2"]
    assert all(t.owner_id == "user-1" and t.last_claimed_at == T0 for t in client.claimed)
    assert sorted(t.cell_id for t in state.tiles) == ["c1", "c2"]
    assert state.notices[-1].message == "Claimed 2 tiles!"


def test_claim_failure_reports_error() -> None:
    client = ClaimClient(result=Err(BackendError(ErrorKind.FORBIDDEN, "rls")))
    service, state = _service(client)
    result = service.claim_route(UNLOCKED, ["c1"])
    assert not result.ok
    assert state.tiles == []
    assert state.notices[-1].message == "Failed to claim tiles"


def test_refresh_tiles_updates_state() -> None:
    service, state = _service(ClaimClient(tiles=Ok([Tile("c9", "user-1")])))
    assert service.refresh_tiles().ok
    assert [t.cell_id for t in state.tiles] == ["c9"]


def test_decay_warning() -> None:
    service, state = _service(ClaimClient(), now=T0 + timedelta(days=5))
    assert service.decay_days_remaining() is None
    state.tiles = [Tile("c1", "user-1")]
    state.rides = [make_ride(started=T0)]
    assert service.decay_days_remaining() == 2
    assert service.decay_warning()

    fresh, fresh_state = _service(ClaimClient(), now=T0 + timedelta(days=1))
    fresh_state.tiles = [Tile("c1", "user-1")]
    fresh_state.rides = [make_ride(started=T0)]
    assert not fresh.decay_warning()
