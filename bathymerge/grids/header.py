"""
Grid header and cell geometry.

A header describes where a grid sits on the globe and how big its cells are.
Row 0 is the southern row and column 0 the western column; cell positions are
reported at the cell center.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np


def nint(value: float) -> int:
    """Round to the nearest integer, halves away from zero"""
    if value >= 0.0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


@dataclass(frozen=True)
class GridBounds:
    """Geographic bounding box in degrees"""
    wlon: float
    elon: float
    slat: float
    nlat: float

    @property
    def lon_span(self) -> float:
        return self.elon - self.wlon

    @property
    def lat_span(self) -> float:
        return self.nlat - self.slat

    def expand(self, lon_margin: float, lat_margin: float) -> 'GridBounds':
        """Return a copy grown outward by the given margins on every side."""
        return GridBounds(
            wlon=self.wlon - lon_margin,
            elon=self.elon + lon_margin,
            slat=self.slat - lat_margin,
            nlat=self.nlat + lat_margin,
        )


@dataclass
class GridHeader:
    """
    Header for a CHRTR2-style grid.

    Attributes:
        bounds: Geographic bounding box
        lon_grid_size_degrees: Cell width in degrees
        lat_grid_size_degrees: Cell height in degrees
        width: Number of columns
        height: Number of rows
        min_observed_z: Smallest value written to the grid
        max_observed_z: Largest value written to the grid
    """
    bounds: GridBounds
    lon_grid_size_degrees: float
    lat_grid_size_degrees: float
    width: int
    height: int
    min_observed_z: float = 0.0
    max_observed_z: float = 0.0

    def validate(self) -> Optional[str]:
        """Return a description of the first problem with this header, or None."""
        if not (self.lon_grid_size_degrees > 0.0 and self.lat_grid_size_degrees > 0.0):
            return (
                f"grid spacing must be positive "
                f"({self.lon_grid_size_degrees}, {self.lat_grid_size_degrees})"
            )
        if self.width <= 0 or self.height <= 0:
            return f"grid dimensions must be positive ({self.width} x {self.height})"
        if not all(math.isfinite(v) for v in (
            self.bounds.wlon, self.bounds.elon, self.bounds.slat, self.bounds.nlat
        )):
            return "bounding box contains non-finite values"
        return None

    def copy(self, **changes) -> 'GridHeader':
        return replace(self, **changes)

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width)"""
        return (self.height, self.width)

    def lat_lon(self, row: int, col: int) -> Tuple[float, float]:
        """Center of a cell as (lat, lon)."""
        lat = self.bounds.slat + (row + 0.5) * self.lat_grid_size_degrees
        lon = self.bounds.wlon + (col + 0.5) * self.lon_grid_size_degrees
        return lat, lon

    def row_lats(self) -> np.ndarray:
        """Latitude of every row center, south to north"""
        return self.bounds.slat + (np.arange(self.height) + 0.5) * self.lat_grid_size_degrees

    def col_lons(self) -> np.ndarray:
        """Longitude of every column center, west to east"""
        return self.bounds.wlon + (np.arange(self.width) + 0.5) * self.lon_grid_size_degrees

    def coord(self, lat: float, lon: float) -> Optional[Tuple[int, int]]:
        """
        Cell containing a geographic position.

        Returns:
            (row, col), or None if the position is outside the grid
        """
        row = math.floor((lat - self.bounds.slat) / self.lat_grid_size_degrees)
        col = math.floor((lon - self.bounds.wlon) / self.lon_grid_size_degrees)
        if row < 0 or row >= self.height or col < 0 or col >= self.width:
            return None
        return row, col

    def coords(self, lats: np.ndarray, lons: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized version of coord().

        Returns:
            (rows, cols, valid) where valid marks positions inside the grid
        """
        lats, lons = np.broadcast_arrays(
            np.asarray(lats, dtype=np.float64), np.asarray(lons, dtype=np.float64)
        )
        rows = np.floor((lats - self.bounds.slat) / self.lat_grid_size_degrees)
        cols = np.floor((lons - self.bounds.wlon) / self.lon_grid_size_degrees)
        valid = (rows >= 0) & (rows < self.height) & (cols >= 0) & (cols < self.width)
        return rows.astype(np.int64), cols.astype(np.int64), valid
