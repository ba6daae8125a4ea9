"""Accept/reject decisions for incoming location samples."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .activity_types import ActivityKind, max_speed_ms
from .config import GPS_GOOD_ACCURACY_METERS, MAX_ACCURACY_METERS
from .geo import haversine_m
from .models import GpsSignal, LocationSample

__all__ = ["FilterDecision", "SampleFilter", "Verdict", "classify_signal"]


class Verdict(str, Enum):
    ACCEPT = "accept"
    REJECT_ACCURACY = "reject_accuracy"
    REJECT_SPEED = "reject_speed"


@dataclass(frozen=True, slots=True)
class FilterDecision:
    verdict: Verdict
    # Distance and implied speed relative to the previous accepted sample.
    distance_m: float = 0.0
    speed_ms: float = 0.0

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPT


class SampleFilter:
    """Quality gate applied to each raw sample before it reaches a session.

    A sample is rejected when its horizontal accuracy is worse than
    ``max_accuracy_m`` or when the speed implied by the hop from the previous
    accepted sample exceeds the ceiling for the activity kind. The speed
    check is a GPS-jump guard; it is not meant to police how fast people
    actually move.
    """

    def __init__(
        self,
        kind: ActivityKind,
        *,
        max_accuracy_m: float = MAX_ACCURACY_METERS,
        max_speed: float | None = None,
    ) -> None:
        self.kind = kind
        self.max_accuracy_m = max_accuracy_m
        self.max_speed = max_speed if max_speed is not None else max_speed_ms(kind)

    def evaluate(
        self, sample: LocationSample, previous: Optional[LocationSample]
    ) -> FilterDecision:
        if sample.accuracy_m > self.max_accuracy_m:
            return FilterDecision(Verdict.REJECT_ACCURACY)
        if previous is None:
            return FilterDecision(Verdict.ACCEPT)
        distance = haversine_m(
            previous.latitude, previous.longitude, sample.latitude, sample.longitude
        )
        elapsed = (sample.timestamp - previous.timestamp).total_seconds()
        speed = distance / elapsed if elapsed > 0 else 0.0
        if speed > self.max_speed:
            return FilterDecision(Verdict.REJECT_SPEED, distance, speed)
        return FilterDecision(Verdict.ACCEPT, distance, speed)


def classify_signal(accuracy_m: float | None) -> GpsSignal:
    """Map the latest fix accuracy to a qualitative signal indicator."""

    if accuracy_m is None:
        return GpsSignal.WAITING
    if accuracy_m <= GPS_GOOD_ACCURACY_METERS:
        return GpsSignal.GOOD
    if accuracy_m <= MAX_ACCURACY_METERS:
        return GpsSignal.FAIR
    return GpsSignal.WEAK
