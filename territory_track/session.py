"""Activity recording session: the idle/recording/paused/ended state machine.

The session owns two subscriptions while recording, one to a location
source and one to an interval ticker. Both are cancelled on every
transition out of ``recording``, and every callback re-checks the state
under the session lock, so a sample or tick that arrives late never mutates
a paused or ended session.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from .activity_types import ActivityKind
from .cells import cell_at
from .config import H3_RESOLUTION, MIN_RIDE_POINTS, TICK_INTERVAL_SECONDS
from .errors import SessionStateError
from .fingerprint import route_fingerprint
from .models import GpsSignal, LocationSample, Ride
from .sample_filter import SampleFilter, Verdict, classify_signal
from .subscriptions import LocationSource, Subscription, Ticker
from .utils import utcnow

Clock = Callable[[], datetime]

__all__ = [
    "ActivitySession",
    "EndOutcome",
    "EndStatus",
    "SessionState",
    "SessionStats",
]


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    ENDED = "ended"


class EndStatus(str, Enum):
    DISCARDED = "discarded"
    TOO_SHORT = "too_short"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class EndOutcome:
    status: EndStatus
    accepted_samples: int
    ride: Optional[Ride] = None
    cells: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SessionStats:
    state: SessionState
    distance_m: float
    duration_s: float
    cell_count: int
    speed_kmh: float
    gps_signal: GpsSignal
    accepted_samples: int
    rejected_samples: int


class ActivitySession:
    """Records one activity from ``start()`` to ``end()``."""

    def __init__(
        self,
        owner_id: str,
        kind: ActivityKind,
        *,
        location_source: LocationSource,
        ticker: Ticker,
        clock: Clock = utcnow,
        sample_filter: SampleFilter | None = None,
        min_points: int = MIN_RIDE_POINTS,
        tick_interval_s: float = TICK_INTERVAL_SECONDS,
        resolution: int = H3_RESOLUTION,
    ) -> None:
        self.owner_id = owner_id
        self.kind = kind
        self._source = location_source
        self._ticker = ticker
        self._clock = clock
        self._filter = sample_filter or SampleFilter(kind)
        self._min_points = min_points
        self._tick_interval_s = tick_interval_s
        self._resolution = resolution
        self._lock = threading.RLock()
        self._log = logging.getLogger(self.__class__.__name__)

        self._state = SessionState.IDLE
        self._location_sub: Optional[Subscription] = None
        self._tick_sub: Optional[Subscription] = None

        self.started_at: Optional[datetime] = None
        self._paused_at: Optional[datetime] = None
        self.paused_total = timedelta(0)
        self.samples: List[LocationSample] = []
        self.visited_cells: Set[str] = set()
        self.distance_m = 0.0
        self.current_speed_kmh = 0.0
        self.duration_s = 0.0
        self.gps_signal = GpsSignal.WAITING
        self.rejected_samples = 0

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            self._require(SessionState.IDLE, "start")
            self.started_at = self._clock()
            self.paused_total = timedelta(0)
            self._paused_at = None
            self.samples = []
            self.visited_cells = set()
            self.distance_m = 0.0
            self.current_speed_kmh = 0.0
            self.duration_s = 0.0
            self.rejected_samples = 0
            self._state = SessionState.RECORDING
            self._subscribe()
        self._log.info(
            "Started %s session owner=%s at %s",
            self.kind.value,
            self.owner_id,
            self.started_at.isoformat(),
        )

    def pause(self) -> None:
        with self._lock:
            self._require(SessionState.RECORDING, "pause")
            self._unsubscribe()
            self._paused_at = self._clock()
            self._state = SessionState.PAUSED
        self._log.info("Paused session owner=%s", self.owner_id)

    def resume(self) -> None:
        with self._lock:
            self._require(SessionState.PAUSED, "resume")
            self._close_pause(self._clock())
            self._state = SessionState.RECORDING
            self._subscribe()
        self._log.info(
            "Resumed session owner=%s paused_total=%.1fs",
            self.owner_id,
            self.paused_total.total_seconds(),
        )

    def end(self, save: bool = True) -> EndOutcome:
        """Stop recording and decide whether the session yields a ride.

        Returns an :class:`EndOutcome`; persisting the ride is the caller's
        job (see :class:`~territory_track.services.RideService`).
        """

        with self._lock:
            if self._state not in (SessionState.RECORDING, SessionState.PAUSED):
                raise SessionStateError(f"Cannot end a session that is {self._state.value}")
            self._unsubscribe()
            now = self._clock()
            if self._state is SessionState.PAUSED:
                self._close_pause(now)
            self.duration_s = self._elapsed_seconds(now)
            self._state = SessionState.ENDED
            accepted = len(self.samples)
            cells = tuple(sorted(self.visited_cells))

            if not save:
                self._log.info("Session discarded owner=%s", self.owner_id)
                return EndOutcome(EndStatus.DISCARDED, accepted)
            if accepted < self._min_points:
                self._log.warning(
                    "Session too short owner=%s accepted=%d min=%d",
                    self.owner_id,
                    accepted,
                    self._min_points,
                )
                return EndOutcome(EndStatus.TOO_SHORT, accepted)

            ride = Ride(
                owner_id=self.owner_id,
                activity_kind=self.kind,
                started_at=self.started_at or now,
                ended_at=now,
                duration_seconds=int(math.floor(self.duration_s)),
                distance_meters=int(math.floor(self.distance_m)),
                route_fingerprint=route_fingerprint(cells),
                distinct_cell_count=len(cells),
            )
        self._log.info(
            "Session ended owner=%s distance=%dm duration=%ds cells=%d",
            self.owner_id,
            ride.distance_meters,
            ride.duration_seconds,
            ride.distinct_cell_count,
        )
        return EndOutcome(EndStatus.READY, accepted, ride=ride, cells=cells)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------
    def on_sample(self, sample: LocationSample) -> bool:
        """Apply a location sample; returns ``True`` when it was accepted."""

        with self._lock:
            if self._state is not SessionState.RECORDING:
                self._log.debug("Ignoring late sample in state=%s", self._state.value)
                return False
            self.gps_signal = classify_signal(sample.accuracy_m)
            previous = self.samples[-1] if self.samples else None
            decision = self._filter.evaluate(sample, previous)
            if not decision.accepted:
                self.rejected_samples += 1
                if decision.verdict is Verdict.REJECT_SPEED:
                    self._log.debug(
                        "Rejected GPS jump speed=%.1fm/s distance=%.1fm",
                        decision.speed_ms,
                        decision.distance_m,
                    )
                else:
                    self._log.debug("Rejected low-accuracy fix %.1fm", sample.accuracy_m)
                return False
            self.samples.append(sample)
            if previous is not None:
                self.distance_m += decision.distance_m
                self.current_speed_kmh = decision.speed_ms * 3.6
            self.visited_cells.add(
                cell_at(sample.latitude, sample.longitude, self._resolution)
            )
            return True

    def on_location_error(self, exc: Exception) -> None:
        with self._lock:
            if self._state is not SessionState.RECORDING:
                return
            self.gps_signal = GpsSignal.WEAK
        self._log.warning("GPS signal lost: %s", exc)

    def on_tick(self) -> None:
        with self._lock:
            if self._state is not SessionState.RECORDING:
                return
            self.duration_s = self._elapsed_seconds(self._clock())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def elapsed_seconds(self) -> float:
        """Recorded time so far, excluding every paused interval."""

        with self._lock:
            if self._state is SessionState.IDLE:
                return 0.0
            if self._state is SessionState.ENDED:
                return self.duration_s
            now = self._clock()
            pending = timedelta(0)
            if self._state is SessionState.PAUSED and self._paused_at is not None:
                pending = now - self._paused_at
            return max(0.0, self._elapsed_seconds(now) - pending.total_seconds())

    def stats(self) -> SessionStats:
        with self._lock:
            return SessionStats(
                state=self._state,
                distance_m=self.distance_m,
                duration_s=self.duration_s,
                cell_count=len(self.visited_cells),
                speed_kmh=self.current_speed_kmh,
                gps_signal=self.gps_signal,
                accepted_samples=len(self.samples),
                rejected_samples=self.rejected_samples,
            )

    @property
    def last_sample(self) -> Optional[LocationSample]:
        with self._lock:
            return self.samples[-1] if self.samples else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, expected: SessionState, action: str) -> None:
        if self._state is not expected:
            raise SessionStateError(
                f"Cannot {action} a session that is {self._state.value}"
            )

    def _subscribe(self) -> None:
        self._location_sub = self._source.subscribe(
            self.on_sample, self.on_location_error
        )
        self._tick_sub = self._ticker.every(self._tick_interval_s, self.on_tick)

    def _unsubscribe(self) -> None:
        for sub in (self._location_sub, self._tick_sub):
            if sub is not None:
                sub.cancel()
        self._location_sub = None
        self._tick_sub = None

    def _close_pause(self, now: datetime) -> None:
        if self._paused_at is not None:
            self.paused_total += max(now - self._paused_at, timedelta(0))
        self._paused_at = None

    def _elapsed_seconds(self, now: datetime) -> float:
        if self.started_at is None:
            return 0.0
        elapsed = now - self.started_at - self.paused_total
        return max(0.0, elapsed.total_seconds())
