"""Unit tests for signalfusion.analysis.spatial_index.

Covers:
- radius queries are exact (haversine), inclusive
- antimeridian wrap-around and polar queries
- invalid coordinates raise ValueError
- insert of an existing id moves it
"""

from __future__ import annotations

import math

import pytest

from signalfusion.analysis.spatial_index import SpatialIndex
from signalfusion.utils.geo_utils import haversine_km


@pytest.fixture
def index():
    idx = SpatialIndex.for_radius(50.0)
    idx.insert_many([
        ("tokyo", 35.68, 139.69),
        ("yokohama", 35.44, 139.64),
        ("osaka", 34.69, 135.50),
    ])
    return idx


class TestQuery:
    def test_finds_points_within_radius(self, index):
        assert index.query(35.68, 139.69, 50.0) == {"tokyo", "yokohama"}

    def test_zero_radius_matches_exact_point(self, index):
        assert index.query(35.68, 139.69, 0.0) == {"tokyo"}

    def test_matches_brute_force(self):
        idx = SpatialIndex(cell_size_deg=2.0)
        points = [(f"p{i}", -60 + i * 3.7, -170 + i * 11.3) for i in range(30)]
        idx.insert_many(points)
        for _, lat, lon in points[::5]:
            expected = {pid for pid, p_lat, p_lon in points if haversine_km(lat, lon, p_lat, p_lon) <= 800}
            assert idx.query(lat, lon, 800) == expected

    def test_negative_radius_rejected(self, index):
        with pytest.raises(ValueError):
            index.query(0.0, 0.0, -1.0)


class TestWrapAround:
    def test_antimeridian(self):
        idx = SpatialIndex.for_radius(50.0)
        idx.insert("east", 0.0, 179.9)
        idx.insert("west", 0.0, -179.9)
        assert idx.query(0.0, 179.95, 50.0) == {"east", "west"}
        assert idx.query(0.0, -179.95, 50.0) == {"east", "west"}

    def test_pole(self):
        idx = SpatialIndex.for_radius(100.0)
        idx.insert("a", 89.8, 0.0)
        idx.insert("b", 89.8, 180.0)
        idx.insert("far", 80.0, 0.0)
        assert idx.query(90.0, 0.0, 100.0) == {"a", "b"}


class TestInsert:
    @pytest.mark.parametrize("lat,lon", [
        (91.0, 0.0),
        (0.0, 181.0),
        (math.nan, 0.0),
        (0.0, math.inf),
    ])
    def test_invalid_coordinates_raise(self, lat, lon):
        with pytest.raises(ValueError):
            SpatialIndex().insert("x", lat, lon)

    def test_reinsert_moves_item(self, index):
        index.insert("tokyo", 34.69, 135.50)
        assert "tokyo" not in index.query(35.68, 139.69, 10.0)
        assert "tokyo" in index.query(34.69, 135.50, 10.0)
        assert len(index) == 3

    def test_clear(self, index):
        index.clear()
        assert len(index) == 0
        assert "tokyo" not in index

    def test_for_radius_rejects_non_positive(self):
        with pytest.raises(ValueError):
            SpatialIndex.for_radius(0)
