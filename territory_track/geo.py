"""Great-circle distance helpers."""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

LatLon = Tuple[float, float]

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the haversine distance in metres between two lat/lon points."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    return EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))


def path_length_m(points: Sequence[LatLon]) -> float:
    """Return the summed haversine length of a polyline in metres."""

    if len(points) < 2:
        return 0.0
    coords = np.radians(np.asarray(points, dtype=float))
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise ValueError("Expected a sequence of (lat, lon) pairs")
    lat = coords[:, 0]
    lon = coords[:, 1]
    d_phi = np.diff(lat)
    d_lambda = np.diff(lon)
    a = (
        np.sin(d_phi / 2.0) ** 2
        + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(d_lambda / 2.0) ** 2
    )
    segments = EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))
    return float(segments.sum())


def offset_point(lat: float, lon: float, north_m: float, east_m: float) -> LatLon:
    """Shift a point by small north/east offsets (equirectangular approximation)."""

    d_lat = north_m / EARTH_RADIUS_M
    d_lon = east_m / (EARTH_RADIUS_M * math.cos(math.radians(lat)))
    return lat + math.degrees(d_lat), lon + math.degrees(d_lon)


__all__ = ["EARTH_RADIUS_M", "LatLon", "haversine_m", "offset_point", "path_length_m"]
