"""Tests for the activity session state machine."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List

import pytest

from territory_track.activity_types import ActivityKind
from territory_track.cells import cell_at
from territory_track.errors import SessionStateError
from territory_track.fingerprint import route_fingerprint
from territory_track.models import GpsSignal
from territory_track.session import ActivitySession, EndStatus, SessionState
from territory_track.subscriptions import (
    CallbackSubscription,
    ManualClock,
    NullTicker,
    PushLocationSource,
)

from conftest import ORIGIN, T0, make_sample, straight_track


class RecordingTicker:
    """Ticker that remembers callbacks so tests can fire them by hand."""

    def __init__(self) -> None:
        self.subscriptions: List[CallbackSubscription] = []
        self.callbacks = []

    def every(self, interval_s, callback):
        subscription = CallbackSubscription()
        self.subscriptions.append(subscription)
        self.callbacks.append(callback)
        return subscription

    def fire(self) -> None:
        for subscription, callback in zip(self.subscriptions, self.callbacks):
            if subscription.active:
                callback()


def _session(kind=ActivityKind.CYCLING, ticker=None, **kwargs):
    clock = ManualClock(T0)
    source = PushLocationSource()
    session = ActivitySession(
        "user-1",
        kind,
        location_source=source,
        ticker=ticker or NullTicker(),
        clock=clock,
        **kwargs,
    )
    return session, source, clock


def _feed(session_source, clock, samples) -> None:
    for sample in samples:
        clock.set(sample.timestamp)
        session_source.push(sample)


def test_twelve_samples_produce_ride() -> None:
    session, source, clock = _session()
    session.start()
    samples = straight_track(12, spacing_m=10.0, interval_s=2.0, accuracy=15.0)
    _feed(source, clock, samples)

    stats = session.stats()
    assert stats.accepted_samples == 12
    assert stats.distance_m == pytest.approx(110.0, rel=1e-2)
    assert stats.gps_signal is GpsSignal.GOOD
    assert stats.speed_kmh == pytest.approx(18.0, rel=1e-2)

    outcome = session.end()
    assert outcome.status is EndStatus.READY
    ride = outcome.ride
    assert ride is not None
    assert ride.distance_meters == 109 or ride.distance_meters == 110
    assert ride.duration_seconds == 22
    assert ride.started_at == T0
    assert ride.ended_at == samples[-1].timestamp
    expected_cells = {cell_at(s.latitude, s.longitude) for s in samples}
    assert set(outcome.cells) == expected_cells
    assert ride.distinct_cell_count == len(expected_cells)
    assert ride.route_fingerprint == route_fingerprint(expected_cells)
    assert session.state is SessionState.ENDED


def test_too_short_session_yields_no_ride() -> None:
    session, source, clock = _session()
    session.start()
    _feed(source, clock, straight_track(9))
    outcome = session.end()
    assert outcome.status is EndStatus.TOO_SHORT
    assert outcome.accepted_samples == 9
    assert outcome.ride is None


def test_discard_yields_no_ride_even_when_long() -> None:
    session, source, clock = _session()
    session.start()
    _feed(source, clock, straight_track(20))
    outcome = session.end(save=False)
    assert outcome.status is EndStatus.DISCARDED
    assert outcome.ride is None


def test_rejected_samples_do_not_count() -> None:
    session, source, clock = _session()
    session.start()
    good = straight_track(3)
    _feed(source, clock, good)
    cells_before = set(session.visited_cells)
    # A 2 km jump in 2 seconds, then a plausible-speed fix that is too vague.
    jump = make_sample(ORIGIN[0] + 0.02, ORIGIN[1], good[-1].timestamp + timedelta(seconds=2))
    vague = make_sample(ORIGIN[0] + 0.05, ORIGIN[1], good[-1].timestamp + timedelta(seconds=4000), 120.0)
    assert cell_at(jump.latitude, jump.longitude) not in cells_before
    assert cell_at(vague.latitude, vague.longitude) not in cells_before
    assert session.on_sample(jump) is False
    assert session.on_sample(vague) is False
    assert session.visited_cells == cells_before
    stats = session.stats()
    assert stats.cell_count == len(cells_before)
    assert stats.accepted_samples == 3
    assert stats.rejected_samples == 2
    assert stats.gps_signal is GpsSignal.WEAK
    assert stats.distance_m == pytest.approx(20.0, rel=1e-2)


def test_pause_excludes_paused_interval_from_duration() -> None:
    session, source, clock = _session()
    session.start()
    _feed(source, clock, straight_track(6, interval_s=2.0))  # ends at t=10
    session.pause()
    clock.advance(30)  # t=40
    assert session.elapsed_seconds() == pytest.approx(10.0)
    session.resume()
    clock.advance(20)  # t=60
    assert session.elapsed_seconds() == pytest.approx(30.0)
    outcome = session.end(save=False)
    assert session.duration_s == pytest.approx(30.0)
    assert outcome.status is EndStatus.DISCARDED


def test_end_while_paused_excludes_open_pause() -> None:
    session, source, clock = _session(min_points=1)
    session.start()
    clock.advance(15)
    session.pause()
    clock.advance(100)
    outcome = session.end(save=False)
    assert outcome.status is EndStatus.DISCARDED
    assert session.duration_s == pytest.approx(15.0)


def test_pause_cancels_subscriptions_and_ignores_late_samples() -> None:
    ticker = RecordingTicker()
    session, source, clock = _session(ticker=ticker)
    session.start()
    assert source.subscriber_count == 1
    _feed(source, clock, straight_track(2))
    session.pause()
    assert source.subscriber_count == 0
    assert not ticker.subscriptions[0].active

    late = straight_track(4)[3]
    source.push(late)
    assert session.on_sample(late) is False
    assert session.stats().accepted_samples == 2

    session.resume()
    assert source.subscriber_count == 1
    assert len(ticker.subscriptions) == 2
    session.end(save=False)
    assert source.subscriber_count == 0
    assert not ticker.subscriptions[1].active


def test_tick_updates_duration_only_while_recording() -> None:
    ticker = RecordingTicker()
    session, _source, clock = _session(ticker=ticker)
    session.start()
    clock.advance(5)
    ticker.fire()
    assert session.duration_s == pytest.approx(5.0)
    session.pause()
    clock.advance(5)
    session.on_tick()
    assert session.duration_s == pytest.approx(5.0)


def test_late_callbacks_after_end_are_ignored() -> None:
    session, _source, clock = _session()
    session.start()
    session.end(save=False)
    sample = make_sample(*ORIGIN, clock())
    assert session.on_sample(sample) is False
    session.on_location_error(RuntimeError("gone"))
    session.on_tick()
    assert session.stats().accepted_samples == 0
    assert session.gps_signal is GpsSignal.WAITING


def test_location_error_marks_signal_weak(caplog: pytest.LogCaptureFixture) -> None:
    session, source, _clock = _session()
    session.start()
    with caplog.at_level(logging.WARNING, logger="ActivitySession"):
        source.fail(RuntimeError("permission revoked"))
    assert session.gps_signal is GpsSignal.WEAK
    assert "gps signal lost" in caplog.text.lower()


@pytest.mark.parametrize(
    "action, prepare",
    [
        ("pause", []),
        ("resume", []),
        ("resume", ["start"]),
        ("start", ["start"]),
        ("pause", ["start", "pause"]),
    ],
)
def test_invalid_transitions_raise(action, prepare) -> None:
    session, _source, _clock = _session()
    for step in prepare:
        getattr(session, step)()
    with pytest.raises(SessionStateError):
        getattr(session, action)()


def test_end_requires_active_session() -> None:
    session, _source, _clock = _session()
    with pytest.raises(SessionStateError):
        session.end()
    session.start()
    session.end(save=False)
    with pytest.raises(SessionStateError):
        session.end()


def test_elapsed_is_zero_before_start() -> None:
    session, _source, _clock = _session()
    assert session.elapsed_seconds() == 0.0
    assert session.last_sample is None
