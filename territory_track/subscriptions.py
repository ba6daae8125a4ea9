"""Cancellable location and timer subscriptions owned by activity sessions."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from .models import LocationSample
from .utils import utcnow

SampleCallback = Callable[[LocationSample], None]
ErrorCallback = Callable[[Exception], None]
TickCallback = Callable[[], None]

LOGGER = logging.getLogger(__name__)


class Subscription(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class LocationSource(Protocol):
    def subscribe(
        self, on_sample: SampleCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription: ...


class Ticker(Protocol):
    def every(self, interval_s: float, callback: TickCallback) -> Subscription: ...


class CallbackSubscription:
    """Subscription that runs ``on_cancel`` once, on the first ``cancel()``."""

    def __init__(self, on_cancel: Callable[[], None] | None = None) -> None:
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            callback, self._on_cancel = self._on_cancel, None
        if callback is not None:
            callback()


class IntervalTicker:
    """Runs a callback every ``interval_s`` seconds on a daemon thread."""

    def every(self, interval_s: float, callback: TickCallback) -> Subscription:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        stop = threading.Event()

        def _run() -> None:
            while not stop.wait(interval_s):
                try:
                    callback()
                except Exception:  # pragma: no cover - logged, loop keeps ticking
                    LOGGER.exception("Tick callback failed")

        thread = threading.Thread(target=_run, name="territory-ticker", daemon=True)
        thread.start()
        return CallbackSubscription(stop.set)


class NullTicker:
    """Ticker that never fires; used when duration is read from the clock."""

    def every(self, interval_s: float, callback: TickCallback) -> Subscription:
        return CallbackSubscription()


_Subscriber = Tuple[CallbackSubscription, SampleCallback, Optional[ErrorCallback]]


class PushLocationSource:
    """Location source fed by the caller via :meth:`push` / :meth:`fail`.

    Device integrations and track replays push samples here. Only
    subscribers that are still active receive them, so a cancelled session
    stops hearing from the source immediately.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: List[_Subscriber] = []

    def subscribe(
        self, on_sample: SampleCallback, on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        holder: dict[str, CallbackSubscription] = {}

        def _remove() -> None:
            with self._lock:
                self._subscribers = [
                    entry for entry in self._subscribers if entry[0] is not holder["sub"]
                ]

        subscription = CallbackSubscription(_remove)
        holder["sub"] = subscription
        with self._lock:
            self._subscribers.append((subscription, on_sample, on_error))
        return subscription

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def push(self, sample: LocationSample) -> None:
        with self._lock:
            targets = list(self._subscribers)
        for subscription, on_sample, _ in targets:
            if subscription.active:
                on_sample(sample)

    def fail(self, exc: Exception) -> None:
        with self._lock:
            targets = list(self._subscribers)
        for subscription, _, on_error in targets:
            if subscription.active and on_error is not None:
                on_error(exc)


class ManualClock:
    """Settable clock for replays and tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or utcnow()

    def __call__(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, seconds: float) -> datetime:
        self._now = self._now + timedelta(seconds=seconds)
        return self._now


__all__ = [
    "CallbackSubscription",
    "IntervalTicker",
    "LocationSource",
    "ManualClock",
    "NullTicker",
    "PushLocationSource",
    "Subscription",
    "Ticker",
]
