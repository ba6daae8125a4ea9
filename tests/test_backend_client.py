"""Tests for the backend client using a fake HTTP session."""

from __future__ import annotations

from datetime import timedelta

import pytest
import requests

from territory_track.backend import BackendClient, classify_response_status, extract_error
from territory_track.errors import BackendError, ErrorKind
from territory_track.models import Tile
from territory_track.result import Err, Ok

from conftest import T0, FakeResponse, FakeSession, make_ride


def _ride_row(ride_id="r1", fingerprint="fp", started=T0):
    return {
        "id": ride_id,
        "user_id": "user-1",
        "activity_type": "cycling",
        "started_at": started.isoformat().replace("+00:00", "Z"),
        "ended_at": (started + timedelta(minutes=10)).isoformat(),
        "duration_sec": 600,
        "distance_m": 3200,
        "route_signature": fingerprint,
        "tiles_touched": 12,
        "created_at": (started + timedelta(minutes=11)).isoformat(),
    }


def test_insert_ride_posts_row_with_headers(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(201, [_ride_row()]))
    result = backend.insert_ride(make_ride())
    assert result.ok
    stored = result.unwrap()
    assert stored.id == "r1"
    assert stored.distance_meters == 3200

    method, url, kwargs = fake_session.calls[0]
    assert method == "POST"
    assert url == "https://proj.supabase.co/rest/v1/rides"
    assert kwargs["headers"]["apikey"] == "anon-key"
    assert kwargs["headers"]["Authorization"] == "Bearer anon-key"
    assert kwargs["headers"]["Prefer"] == "return=representation"
    assert kwargs["json"]["route_signature"] == "fp"
    assert kwargs["json"]["user_id"] == "user-1"
    assert kwargs["timeout"] == 5


def test_access_token_used_as_bearer(backend, fake_session) -> None:
    backend.set_access_token("user-jwt")
    fake_session.queue(FakeResponse(200, []))
    backend.get_user_tiles("user-1")
    headers = fake_session.calls[0][2]["headers"]
    assert headers["Authorization"] == "Bearer user-jwt"
    assert headers["apikey"] == "anon-key"


def test_get_user_rides_filters_and_caches(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(200, [_ride_row("r1"), _ride_row("r2")]))
    first = backend.get_user_rides("user-1")
    second = backend.get_user_rides("user-1")
    assert [r.id for r in first.unwrap()] == ["r1", "r2"]
    assert [r.id for r in second.unwrap()] == ["r1", "r2"]
    assert len(fake_session.calls) == 1
    params = fake_session.calls[0][2]["params"]
    assert params["user_id"] == "eq.user-1"
    assert params["order"] == "created_at.desc"


def test_insert_ride_invalidates_history_cache(backend, fake_session) -> None:
    fake_session.queue(
        FakeResponse(200, [_ride_row("r1")]),
        FakeResponse(201, [_ride_row("r2")]),
        FakeResponse(200, [_ride_row("r2"), _ride_row("r1")]),
    )
    backend.get_user_rides("user-1")
    backend.insert_ride(make_ride())
    refreshed = backend.get_user_rides("user-1")
    assert [r.id for r in refreshed.unwrap()] == ["r2", "r1"]
    assert len(fake_session.calls) == 3


def test_use_cache_false_bypasses_cache(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(200, []), FakeResponse(200, [_ride_row()]))
    backend.get_user_rides("user-1")
    assert len(backend.get_user_rides("user-1", use_cache=False).unwrap()) == 1


@pytest.mark.parametrize(
    "status, kind",
    [
        (400, ErrorKind.INVALID_REQUEST),
        (401, ErrorKind.UNAUTHORIZED),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (409, ErrorKind.CONFLICT),
        (503, ErrorKind.SERVER),
    ],
)
def test_http_errors_become_err(backend, fake_session, status, kind) -> None:
    fake_session.queue(FakeResponse(status, {"message": "nope", "code": "XX"}))
    result = backend.insert_ride(make_ride())
    assert isinstance(result, Err)
    assert result.error.kind is kind
    assert result.error.status == status
    assert "nope" in str(result.error)


def test_network_error_becomes_err(backend, fake_session) -> None:
    fake_session.queue(requests.ConnectionError("offline"))
    result = backend.get_user_tiles("user-1")
    assert not result.ok
    assert result.error.kind is ErrorKind.NETWORK
    assert result.error.transient
    with pytest.raises(BackendError):
        result.unwrap()


def test_invalid_json_is_decode_error(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(200, text="<html>oops</html>"))
    result = backend.get_user_tiles("user-1")
    assert result.error.kind is ErrorKind.DECODE


def test_not_configured_never_sends() -> None:
    session = FakeSession()
    client = BackendClient("", "", session=session)
    result = client.get_user_tiles("user-1")
    assert result.error.kind is ErrorKind.NOT_CONFIGURED
    assert session.calls == []


def test_route_unlock_lookup_and_upsert(backend, fake_session) -> None:
    row = {
        "user_id": "user-1",
        "route_signature": "fp",
        "ride_count": 3,
        "is_unlocked": True,
        "unlocked_at": T0.isoformat(),
    }
    fake_session.queue(FakeResponse(200, []), FakeResponse(201, [row]))
    missing = backend.get_route_unlock("user-1", "fp")
    assert missing.ok and missing.unwrap() is None

    from territory_track.models import RouteUnlock

    unlock = RouteUnlock.from_row(row)
    stored = backend.upsert_route_unlock(unlock).unwrap()
    assert stored.is_unlocked
    assert stored.unlocked_at == T0
    _method, _url, kwargs = fake_session.calls[1]
    assert kwargs["params"] == {"on_conflict": "user_id,route_signature"}
    assert "resolution=merge-duplicates" in kwargs["headers"]["Prefer"]


def test_claim_tiles_upserts_on_h3_index(backend, fake_session) -> None:
    rows = [
        {"h3_index": "c1", "current_owner_user_id": "user-1", "last_claimed_at": T0.isoformat()},
        {"h3_index": "c2", "current_owner_user_id": "user-1", "last_claimed_at": T0.isoformat()},
    ]
    fake_session.queue(FakeResponse(201, rows))
    tiles = [Tile("c1", "user-1", T0), Tile("c2", "user-1", T0)]
    claimed = backend.claim_tiles(tiles).unwrap()
    assert [t.cell_id for t in claimed] == ["c1", "c2"]
    assert fake_session.calls[0][2]["params"] == {"on_conflict": "h3_index"}
    assert backend.claim_tiles([]) == Ok([])
    assert len(fake_session.calls) == 1


def test_ride_start_dates_skip_unparseable(backend, fake_session) -> None:
    fake_session.queue(
        FakeResponse(200, [{"started_at": "2025-06-01T08:00:00Z"}, {"started_at": "garbage"}])
    )
    dates = backend.get_ride_start_dates("user-1").unwrap()
    assert dates == [T0]


def test_update_profile_xp_patches(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(200, [{"id": "user-1", "xp": 320, "first_name": "A", "last_name": "B"}]))
    profile = backend.update_profile_xp("user-1", 320).unwrap()
    assert profile.xp == 320
    method, _url, kwargs = fake_session.calls[0]
    assert method == "PATCH"
    assert kwargs["params"] == {"id": "eq.user-1"}
    assert kwargs["json"] == {"xp": 320}


def test_award_achievements_returns_ids(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(201, text=""))
    assert backend.award_achievements("user-1", ["first_ride"]).unwrap() == ["first_ride"]
    assert fake_session.calls[0][2]["json"] == [{"user_id": "user-1", "achievement_id": "first_ride"}]


def test_sign_in_posts_password_grant(backend, fake_session) -> None:
    fake_session.queue(FakeResponse(200, {"access_token": "jwt", "user": {"id": "user-1"}}))
    payload = backend.sign_in_with_password("a@b.c", "pw").unwrap()
    assert payload["access_token"] == "jwt"
    _method, url, kwargs = fake_session.calls[0]
    assert url.endswith("/auth/v1/token")
    assert kwargs["params"] == {"grant_type": "password"}


def test_extract_error_combines_fields() -> None:
    resp = FakeResponse(400, {"message": "bad", "code": "23505", "details": "dup", "hint": "fix"})
    assert extract_error(resp) == "bad | code:23505 | dup | hint:fix"
    auth = FakeResponse(400, {"error": "invalid_grant", "error_description": "Invalid login"})
    assert extract_error(auth) == "Invalid login | invalid_grant"
    text = FakeResponse(502, text="Bad gateway")
    assert extract_error(text) == "Bad gateway"


def test_classify_success_is_none() -> None:
    assert classify_response_status(FakeResponse(200, []), "ctx") is None
    error = classify_response_status(FakeResponse(406, {}), "ctx")
    assert error.kind is ErrorKind.NOT_FOUND


def test_default_session_retries_reads_only() -> None:
    from territory_track.backend import create_default_session

    session = create_default_session(max_retries=2, backoff_factor=0.1)
    retry = session.get_adapter("https://proj.supabase.co").max_retries
    assert retry.total == 2
    assert "GET" in retry.allowed_methods
    assert "POST" not in retry.allowed_methods
    assert 503 in retry.status_forcelist


def test_read_only_views(backend, fake_session) -> None:
    fake_session.queue(
        FakeResponse(200, [{"user_id": "u1", "first_name": "Ada", "last_name": "L", "tiles_owned": 42}]),
        FakeResponse(200, [{"id": "t1", "defender_user_id": "user-1", "route_signature": "fp",
                            "tiles_at_risk_count": 4, "status": "active"}]),
        FakeResponse(200, []),
        FakeResponse(200, [{"achievement_id": "first_ride"}, {"achievement_id": ""}]),
    )
    board = backend.get_leaderboard(limit=10).unwrap()
    assert board[0].display_name == "Ada L"
    assert board[0].tiles_owned == 42
    assert fake_session.calls[0][2]["params"]["limit"] == 10

    threats = backend.get_active_threats("user-1").unwrap()
    assert threats[0].tiles_at_risk_count == 4
    assert fake_session.calls[1][2]["params"]["status"] == "eq.active"

    assert backend.get_profile("user-1").unwrap() is None
    assert backend.get_user_achievements("user-1").unwrap() == ["first_ride"]


def test_ride_history_accepts_trimmed_fractional_seconds(backend, fake_session) -> None:
    row = _ride_row()
    row["started_at"] = "2025-06-01T08:00:00.12345+00:00"
    row["created_at"] = "2025-06-01T08:11:00.1+00:00"
    fake_session.queue(FakeResponse(200, [row]))
    rides = backend.get_user_rides("user-1").unwrap()
    assert rides[0].started_at == T0 + timedelta(microseconds=123450)
