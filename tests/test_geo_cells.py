"""Tests for distance helpers and hex cell indexing."""

from __future__ import annotations

import pytest

from territory_track.cells import (
    cell_at,
    cell_boundary,
    cell_center,
    cell_feature,
    cells_feature_collection,
    is_valid_cell,
)
from territory_track.config import H3_RESOLUTION
from territory_track.geo import haversine_m, offset_point, path_length_m

import h3


def test_haversine_one_degree_latitude() -> None:
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


def test_haversine_zero_for_same_point() -> None:
    assert haversine_m(51.5, -0.12, 51.5, -0.12) == 0.0


def test_offset_point_moves_requested_distance() -> None:
    lat, lon = offset_point(51.5, -0.12, north_m=100.0, east_m=0.0)
    assert haversine_m(51.5, -0.12, lat, lon) == pytest.approx(100.0, rel=1e-3)
    lat, lon = offset_point(51.5, -0.12, north_m=0.0, east_m=50.0)
    assert haversine_m(51.5, -0.12, lat, lon) == pytest.approx(50.0, rel=1e-3)


def test_path_length_matches_pairwise_sum() -> None:
    points = [(51.5, -0.12), (51.501, -0.12), (51.501, -0.118)]
    expected = haversine_m(*points[0], *points[1]) + haversine_m(*points[1], *points[2])
    assert path_length_m(points) == pytest.approx(expected)
    assert path_length_m(points[:1]) == 0.0


def test_path_length_rejects_bad_shape() -> None:
    with pytest.raises(ValueError):
        path_length_m([(1.0, 2.0, 3.0), (1.0, 2.0, 3.0)])


def test_cell_at_uses_configured_resolution() -> None:
    cell = cell_at(51.5007, -0.1246)
    assert is_valid_cell(cell)
    assert h3.get_resolution(cell) == H3_RESOLUTION
    assert cell_at(51.5007, -0.1246) == cell


def test_cell_center_lies_in_same_cell() -> None:
    cell = cell_at(40.7128, -74.0060)
    lat, lon = cell_center(cell)
    assert cell_at(lat, lon) == cell


def test_is_valid_cell_rejects_garbage() -> None:
    assert not is_valid_cell("not-a-cell")
    assert not is_valid_cell("")


def test_cell_feature_ring_is_closed_lon_lat() -> None:
    cell = cell_at(51.5007, -0.1246)
    feature = cell_feature(cell, {"owner": "u1"})
    ring = feature["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert len(ring) == len(cell_boundary(cell)) + 1
    lon, lat = ring[0]
    assert lat == pytest.approx(51.5007, abs=0.01)
    assert lon == pytest.approx(-0.1246, abs=0.01)
    assert feature["properties"] == {"h3_index": cell, "owner": "u1"}


def test_feature_collection_has_one_feature_per_cell() -> None:
    cells = [cell_at(51.5, -0.12), cell_at(51.51, -0.12)]
    collection = cells_feature_collection(cells)
    assert collection["type"] == "FeatureCollection"
    assert [f["properties"]["h3_index"] for f in collection["features"]] == cells
