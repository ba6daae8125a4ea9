"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable factories for samples,
rides and a fake HTTP session so backend tests never touch the network.
"""
from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from territory_track.activity_types import ActivityKind
from territory_track.geo import offset_point
from territory_track.models import LocationSample, Ride

T0 = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)
ORIGIN = (51.5007, -0.1246)


# --- Factory helpers -------------------------------------------------
def make_sample(lat, lon, when, accuracy=5.0):
    return LocationSample(latitude=lat, longitude=lon, timestamp=when, accuracy_m=accuracy)


def straight_track(count, *, spacing_m=10.0, interval_s=2.0, accuracy=15.0, start=T0, origin=ORIGIN):
    """Samples heading north, ``spacing_m`` apart every ``interval_s`` seconds."""

    samples = []
    for idx in range(count):
        lat, lon = offset_point(origin[0], origin[1], north_m=idx * spacing_m, east_m=0.0)
        samples.append(make_sample(lat, lon, start + timedelta(seconds=idx * interval_s), accuracy))
    return samples


def make_ride(owner="user-1", fingerprint="fp", started=T0, ride_id=None, distance=1000, duration=600, cells=5):
    return Ride(
        owner_id=owner,
        activity_kind=ActivityKind.CYCLING,
        started_at=started,
        ended_at=started + timedelta(seconds=duration),
        duration_seconds=duration,
        distance_meters=distance,
        route_fingerprint=fingerprint,
        distinct_cell_count=cells,
        id=ride_id,
    )


class FakeResponse:
    def __init__(self, status_code=200, payload: Any = None, text: Optional[str] = None, url="https://test"):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")
        self.url = url
        self.headers: Dict[str, str] = {}

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, responses=None):
        self.responses: List[Any] = list(responses or [])
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def backend(fake_session):
    from territory_track.backend import BackendClient

    return BackendClient("https://proj.supabase.co", "anon-key", session=fake_session, timeout=5)
