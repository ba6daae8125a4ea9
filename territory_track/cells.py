"""Hexagonal cell indexing on top of the ``h3`` library."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import h3

from .config import H3_RESOLUTION
from .geo import LatLon


def cell_at(lat: float, lon: float, resolution: int = H3_RESOLUTION) -> str:
    """Return the H3 cell id containing ``(lat, lon)``."""

    return h3.latlng_to_cell(lat, lon, resolution)


def cell_boundary(cell: str) -> List[LatLon]:
    """Return the cell's polygon vertices as ``(lat, lon)`` pairs."""

    return [(float(lat), float(lon)) for lat, lon in h3.cell_to_boundary(cell)]


def cell_center(cell: str) -> LatLon:
    lat, lon = h3.cell_to_latlng(cell)
    return float(lat), float(lon)


def is_valid_cell(cell: str) -> bool:
    try:
        return bool(h3.is_valid_cell(cell))
    except (TypeError, ValueError):
        return False


def cell_feature(
    cell: str, properties: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Return a GeoJSON polygon feature for ``cell`` (closed, lon/lat order)."""

    ring = [[lon, lat] for lat, lon in cell_boundary(cell)]
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    props = {"h3_index": cell}
    if properties:
        props.update(properties)
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": props,
    }


def cells_feature_collection(cells: Iterable[str]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [cell_feature(cell) for cell in cells],
    }


__all__ = [
    "cell_at",
    "cell_boundary",
    "cell_center",
    "cell_feature",
    "cells_feature_collection",
    "is_valid_cell",
]
