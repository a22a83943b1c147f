"""Uniform lat/lon grid index for radius queries.

Candidate cells are chosen from the query's bounding box (with longitude
wrap-around at the antimeridian and full-row scans near the poles); the
candidates are then filtered by exact haversine distance. Rebuilt per cycle.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, Iterable, Set, Tuple

from signalfusion.utils.geo_utils import KM_PER_DEG_LAT, haversine_km, normalize_longitude

Cell = Tuple[int, int]

_MIN_CELL_DEG = 0.01
_MAX_CELL_DEG = 30.0


def _validate(lat: float, lon: float) -> None:
    if not (isinstance(lat, (int, float)) and isinstance(lon, (int, float))):
        raise ValueError(f"Coordinates must be numbers, got ({lat!r}, {lon!r})")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError(f"Non-finite coordinate ({lat}, {lon})")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"Longitude out of range: {lon}")


class SpatialIndex:
    """Grid of ``cell_size_deg`` × ``cell_size_deg`` cells keyed by (row, col).

    Args:
        cell_size_deg: Cell edge in degrees of latitude/longitude.
    """

    def __init__(self, cell_size_deg: float = 1.0) -> None:
        if not (math.isfinite(cell_size_deg) and cell_size_deg > 0):
            raise ValueError("cell_size_deg must be a positive finite number")
        self.cell_size_deg = float(cell_size_deg)
        self.n_rows = int(math.ceil(180.0 / self.cell_size_deg))
        self.n_cols = int(math.ceil(360.0 / self.cell_size_deg))
        self._cells: Dict[Cell, Set[str]] = defaultdict(set)
        self._positions: Dict[str, Tuple[float, float]] = {}

    @classmethod
    def for_radius(cls, radius_km: float) -> "SpatialIndex":
        """Index whose cells are about one query radius tall."""
        if not (math.isfinite(radius_km) and radius_km > 0):
            raise ValueError("radius_km must be a positive finite number")
        cell = min(_MAX_CELL_DEG, max(_MIN_CELL_DEG, radius_km / KM_PER_DEG_LAT))
        return cls(cell_size_deg=cell)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._positions

    def _row(self, lat: float) -> int:
        return min(self.n_rows - 1, max(0, int((lat + 90.0) // self.cell_size_deg)))

    def _col(self, lon: float) -> int:
        return int((normalize_longitude(lon) + 180.0) // self.cell_size_deg) % self.n_cols

    def insert(self, item_id: str, lat: float, lon: float) -> None:
        """Add or move ``item_id`` to (lat, lon).

        Raises:
            ValueError: non-finite or out-of-range coordinates.
        """
        _validate(lat, lon)
        if item_id in self._positions:
            old_lat, old_lon = self._positions[item_id]
            self._cells[(self._row(old_lat), self._col(old_lon))].discard(item_id)
        self._positions[item_id] = (float(lat), float(lon))
        self._cells[(self._row(lat), self._col(lon))].add(item_id)

    def insert_many(self, items: Iterable[Tuple[str, float, float]]) -> None:
        for item_id, lat, lon in items:
            self.insert(item_id, lat, lon)

    def query(self, lat: float, lon: float, radius_km: float) -> Set[str]:
        """Ids within ``radius_km`` (great-circle) of (lat, lon), inclusive.

        Raises:
            ValueError: invalid coordinates or negative radius.
        """
        _validate(lat, lon)
        if not (math.isfinite(radius_km) and radius_km >= 0):
            raise ValueError(f"radius_km must be finite and >= 0, got {radius_km}")

        result: Set[str] = set()
        for cell in self._candidate_cells(lat, lon, radius_km):
            for item_id in self._cells.get(cell, ()):
                p_lat, p_lon = self._positions[item_id]
                if haversine_km(lat, lon, p_lat, p_lon) <= radius_km:
                    result.add(item_id)
        return result

    def _candidate_cells(self, lat: float, lon: float, radius_km: float) -> Set[Cell]:
        d_lat = radius_km / KM_PER_DEG_LAT
        lat_min, lat_max = lat - d_lat, lat + d_lat
        rows = range(self._row(max(-90.0, lat_min)), self._row(min(90.0, lat_max)) + 1)

        # The circle covers a pole: every longitude in the polar rows is reachable
        if lat_min <= -90.0 or lat_max >= 90.0:
            return {(r, c) for r in rows for c in range(self.n_cols)}

        widest = max(abs(lat_min), abs(lat_max))
        cos_lat = math.cos(math.radians(widest))
        d_lon = d_lat / cos_lat if cos_lat > 1e-12 else 180.0
        if d_lon >= 180.0:
            cols = range(self.n_cols)
            return {(r, c) for r in rows for c in cols}

        start = self._col(lon - d_lon)
        span = int(math.ceil(2.0 * d_lon / self.cell_size_deg)) + 1
        if span >= self.n_cols:
            cols_set = set(range(self.n_cols))
        else:
            cols_set = {(start + k) % self.n_cols for k in range(span + 1)}
        return {(r, c) for r in rows for c in cols_set}

    def clear(self) -> None:
        self._cells.clear()
        self._positions.clear()
