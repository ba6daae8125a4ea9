"""Activity kinds and the speed ceilings used by the sample filter."""

from __future__ import annotations

from enum import Enum
from typing import Any

from .config import MAX_SPEED_CYCLING_MS, MAX_SPEED_HIKING_MS, MAX_SPEED_RUNNING_MS

__all__ = ["ActivityKind", "normalize_activity_kind", "max_speed_ms"]


class ActivityKind(str, Enum):
    CYCLING = "cycling"
    RUNNING = "running"
    HIKING = "hiking"


_ALIASES = {
    "ride": ActivityKind.CYCLING,
    "bike": ActivityKind.CYCLING,
    "cycle": ActivityKind.CYCLING,
    "run": ActivityKind.RUNNING,
    "jog": ActivityKind.RUNNING,
    "hike": ActivityKind.HIKING,
    "walk": ActivityKind.HIKING,
}

_SPEED_CEILINGS = {
    ActivityKind.CYCLING: MAX_SPEED_CYCLING_MS,
    ActivityKind.RUNNING: MAX_SPEED_RUNNING_MS,
    ActivityKind.HIKING: MAX_SPEED_HIKING_MS,
}


def normalize_activity_kind(value: Any) -> ActivityKind:
    """Return the :class:`ActivityKind` for ``value``.

    Accepts enum members, canonical names (``"cycling"``) and the common
    short forms stored by older clients (``"ride"``, ``"run"``, ``"hike"``),
    in any casing. Missing values default to cycling, which is what rides
    recorded before activity kinds existed were.

    Raises:
        ValueError: If ``value`` names an unknown activity.
    """

    if isinstance(value, ActivityKind):
        return value
    if value is None:
        return ActivityKind.CYCLING
    normalized = str(value).strip().lower()
    if not normalized:
        return ActivityKind.CYCLING
    try:
        return ActivityKind(normalized)
    except ValueError:
        pass
    kind = _ALIASES.get(normalized)
    if kind is None:
        raise ValueError(f"Unknown activity kind: {value!r}")
    return kind


def max_speed_ms(kind: ActivityKind) -> float:
    """Implied-speed ceiling (m/s) above which a sample is a GPS jump."""

    return _SPEED_CEILINGS[kind]
