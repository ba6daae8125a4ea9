"""Render owned territory and ride tracks on an interactive map."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import folium  # Using folium to build an interactive Leaflet map.
import numpy as np

from .cells import cell_boundary, cell_center
from .config import MAP_DEFAULT_ZOOM, MAP_TILE_COLOR, MAP_TRACK_COLOR
from .geo import LatLon
from .models import LocationSample, Tile

PathLike = Union[str, Path]
CellLike = Union[str, Tile]

# Fallback centre when there is nothing to draw.
_DEFAULT_CENTER: LatLon = (0.0, 0.0)


def _cell_ids(cells: Iterable[CellLike]) -> List[str]:
    ids = {cell.cell_id if isinstance(cell, Tile) else str(cell) for cell in cells}
    return sorted(ids)


def _track_points(track: Optional[Sequence[Union[LocationSample, LatLon]]]) -> List[LatLon]:
    if not track:
        return []
    points: List[LatLon] = []
    for item in track:
        if isinstance(item, LocationSample):
            points.append((item.latitude, item.longitude))
        else:
            points.append((float(item[0]), float(item[1])))
    return points


def _map_center(cell_ids: Sequence[str], points: Sequence[LatLon]) -> LatLon:
    """Mean of the track points, else of the cell centres."""

    coords = points or [cell_center(cell) for cell in cell_ids]
    if not coords:
        return _DEFAULT_CENTER
    mean = np.asarray(coords, dtype=float).mean(axis=0)
    return float(mean[0]), float(mean[1])


def create_territory_map(
    tiles: Iterable[CellLike],
    track: Optional[Sequence[Union[LocationSample, LatLon]]] = None,
    *,
    output_html_path: Optional[PathLike] = None,
    zoom_start: int = MAP_DEFAULT_ZOOM,
) -> folium.Map:
    """Create a map with one polygon per cell and an optional track line.

    Args:
        tiles: Owned :class:`~territory_track.models.Tile` rows or bare cell ids.
        track: Optional ride samples (or ``(lat, lon)`` pairs) drawn as a polyline.
        output_html_path: Optional path to persist the map as an HTML file.
        zoom_start: Initial zoom level.

    Returns:
        The :class:`folium.Map` instance.
    """

    cell_ids = _cell_ids(tiles)
    points = _track_points(track)

    folium_map = folium.Map(
        location=_map_center(cell_ids, points), zoom_start=zoom_start, control_scale=True
    )
    for cell in cell_ids:
        folium.Polygon(
            locations=cell_boundary(cell),
            color=MAP_TILE_COLOR,
            weight=1,
            fill=True,
            fill_color=MAP_TILE_COLOR,
            fill_opacity=0.35,
            tooltip=cell,
        ).add_to(folium_map)

    if len(points) >= 2:
        folium.PolyLine(
            points,
            color=MAP_TRACK_COLOR,
            weight=4,
            opacity=0.8,
            tooltip="Ride track",
        ).add_to(folium_map)
    if points:
        folium.CircleMarker(
            location=points[0],
            radius=6,
            color=MAP_TRACK_COLOR,
            fill=True,
            fill_color=MAP_TRACK_COLOR,
            tooltip="Start",
        ).add_to(folium_map)

    if output_html_path is not None:
        output_path = Path(output_html_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        folium_map.save(str(output_path))

    return folium_map


__all__ = ["create_territory_map"]
