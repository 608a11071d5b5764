"""
CHRTR2-style Grid File

A regular lat/lon grid of elevation/depth values with a status bitmask per
cell, stored as netCDF:
    - z (lat, lon): float32 elevation/depth
    - status (lat, lon): uint16 CellStatus bits
    - global attributes: bounding box, spacing, dimensions, observed min/max z

Read handles load the whole grid into memory on open. Write handles buffer
in memory and only reach disk on close(), through a temporary sibling file
that is renamed into place, so a failed run never leaves a valid-looking
output behind.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
import xarray as xr

from ..config import get_merge_config
from ..exceptions import GridFileError, OutputCreateError
from .header import GridBounds, GridHeader
from .status import STATUS_DTYPE, CellRecord

logger = logging.getLogger(__name__)

HEADER_ATTRS = (
    'wlon', 'elon', 'slat', 'nlat',
    'lon_grid_size_degrees', 'lat_grid_size_degrees',
    'width', 'height',
    'min_observed_z', 'max_observed_z',
)


def _header_from_attrs(attrs: Dict, path: Path) -> GridHeader:
    missing = [key for key in HEADER_ATTRS if key not in attrs]
    if missing:
        raise GridFileError(f"{path} is missing header fields: {', '.join(missing)}")

    try:
        header = GridHeader(
            bounds=GridBounds(
                wlon=float(attrs['wlon']),
                elon=float(attrs['elon']),
                slat=float(attrs['slat']),
                nlat=float(attrs['nlat']),
            ),
            lon_grid_size_degrees=float(attrs['lon_grid_size_degrees']),
            lat_grid_size_degrees=float(attrs['lat_grid_size_degrees']),
            width=int(attrs['width']),
            height=int(attrs['height']),
            min_observed_z=float(attrs['min_observed_z']),
            max_observed_z=float(attrs['max_observed_z']),
        )
    except (TypeError, ValueError) as e:
        raise GridFileError(f"{path} has an unreadable header: {e}") from e

    problem = header.validate()
    if problem:
        raise GridFileError(f"{path} has an invalid header: {problem}")
    return header


def _header_to_attrs(header: GridHeader) -> Dict:
    return {
        'wlon': header.bounds.wlon,
        'elon': header.bounds.elon,
        'slat': header.bounds.slat,
        'nlat': header.bounds.nlat,
        'lon_grid_size_degrees': header.lon_grid_size_degrees,
        'lat_grid_size_degrees': header.lat_grid_size_degrees,
        'width': header.width,
        'height': header.height,
        'min_observed_z': header.min_observed_z,
        'max_observed_z': header.max_observed_z,
    }


class GridFile:
    """
    Handle on a CHRTR2-style grid file.

    Use GridFile.open() to read an existing grid and GridFile.create() to
    start a new one. Cells are addressed by integer (row, col) with row 0 at
    the southern edge.
    """

    def __init__(
        self,
        path: Path,
        header: GridHeader,
        z: np.ndarray,
        status: np.ndarray,
        writable: bool,
        engine: str,
    ):
        self.path = path
        self.header = header
        self._z = z
        self._status = status
        self._writable = writable
        self._engine = engine
        self._closed = False

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + '.partial')

    @property
    def writable(self) -> bool:
        return self._writable

    @property
    def closed(self) -> bool:
        return self._closed

    @classmethod
    def open(cls, path: Union[str, Path], engine: Optional[str] = None) -> 'GridFile':
        """
        Open an existing grid read-only.

        Raises:
            GridFileError: If the file is missing or is not a valid grid
        """
        path = Path(path)
        engine = engine or get_merge_config().netcdf_engine

        if not path.exists():
            raise GridFileError(f"Grid file not found: {path}")

        try:
            with xr.open_dataset(path, engine=engine, mask_and_scale=False) as ds:
                if 'z' not in ds or 'status' not in ds:
                    raise GridFileError(f"{path} is not a CHRTR2 grid (no z/status variables)")
                z = np.asarray(ds['z'].values, dtype=np.float32)
                status = np.asarray(ds['status'].values).astype(STATUS_DTYPE)
                attrs = dict(ds.attrs)
        except (OSError, ValueError, KeyError, RuntimeError) as e:
            raise GridFileError(
                f"The file {path} is not a CHRTR2 grid or there was an error reading it: {e}"
            ) from e

        header = _header_from_attrs(attrs, path)
        if z.shape != header.shape or status.shape != header.shape:
            raise GridFileError(
                f"{path}: data shape {z.shape} does not match header {header.shape}"
            )

        logger.debug(f"Opened {path}: {header.width} x {header.height} cells")
        return cls(path, header, z, status, writable=False, engine=engine)

    @classmethod
    def create(
        cls,
        path: Union[str, Path],
        header: GridHeader,
        engine: Optional[str] = None,
    ) -> 'GridFile':
        """
        Create a new, empty grid.

        Nothing is written to `path` until close(); a placeholder is written
        next to it to make sure the location is writable.

        Raises:
            OutputCreateError: If the header is invalid or the location is not writable
        """
        path = Path(path)
        engine = engine or get_merge_config().netcdf_engine

        problem = header.validate()
        if problem:
            raise OutputCreateError(f"Cannot create {path}: {problem}")

        try:
            z = np.zeros(header.shape, dtype=np.float32)
            status = np.zeros(header.shape, dtype=STATUS_DTYPE)
        except MemoryError as e:
            raise OutputCreateError(
                f"Cannot create {path}: {header.width} x {header.height} grid does not fit in memory"
            ) from e

        handle = cls(path, header.copy(), z, status, writable=True, engine=engine)
        try:
            with open(handle.tmp_path, 'wb'):
                pass
        except OSError as e:
            raise OutputCreateError(f"Cannot create {path}: {e}") from e

        return handle

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def _check_open(self):
        if self._closed:
            raise ValueError(f"{self.path} is closed")

    def _check_writable(self):
        self._check_open()
        if not self._writable:
            raise ValueError(f"{self.path} was opened read-only")

    def read_record(self, row: int, col: int) -> CellRecord:
        self._check_open()
        return CellRecord(z=float(self._z[row, col]), status=int(self._status[row, col]))

    def read_row(self, row: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return copies of one row's (z, status) arrays."""
        self._check_open()
        return self._z[row].copy(), self._status[row].copy()

    def write_record(self, row: int, col: int, record: CellRecord):
        self._check_writable()
        self._z[row, col] = record.z
        self._status[row, col] = record.status

    def write_row(self, row: int, z: np.ndarray, status: np.ndarray, col_start: int = 0):
        """Write a run of cells in one row, starting at col_start."""
        self._check_writable()
        col_end = col_start + len(z)
        self._z[row, col_start:col_end] = z
        self._status[row, col_start:col_end] = status

    def lat_lon(self, row: int, col: int) -> Tuple[float, float]:
        return self.header.lat_lon(row, col)

    def coord(self, lat: float, lon: float) -> Optional[Tuple[int, int]]:
        return self.header.coord(lat, lon)

    # ------------------------------------------------------------------
    # Header and lifetime
    # ------------------------------------------------------------------

    def update_header(self, header: GridHeader):
        """Replace the header (dimensions must not change)."""
        self._check_writable()
        if header.shape != self.header.shape:
            raise ValueError(
                f"Header dimensions {header.shape} do not match grid {self.header.shape}"
            )
        self.header = header.copy()

    def to_dataset(self) -> xr.Dataset:
        """Build the on-disk representation of this grid."""
        ds = xr.Dataset(
            data_vars={
                'z': (['lat', 'lon'], self._z),
                'status': (['lat', 'lon'], self._status),
            },
            coords={
                'lat': self.header.row_lats(),
                'lon': self.header.col_lons(),
            },
            attrs=_header_to_attrs(self.header),
        )
        ds['z'].attrs = {
            'long_name': 'Elevation/Bathymetry',
            'units': 'm',
        }
        ds['status'].attrs = {
            'long_name': 'CHRTR2 cell status bits',
            'flag_masks': [1, 2, 4, 8, 16, 32, 64, 128, 256],
            'flag_meanings': (
                'real digitized_contour interpolated checked land_mask '
                'user_01 user_02 user_03 user_04'
            ),
        }
        return ds

    def close(self):
        """
        Close the handle. For a writable grid this persists it to disk.

        Safe to call more than once; only the first call does anything.
        """
        if self._closed:
            return

        if self._writable:
            ds = self.to_dataset()
            encoding = {
                'z': {'_FillValue': None},
                'status': {'_FillValue': None},
            }
            try:
                ds.to_netcdf(self.tmp_path, engine=self._engine, encoding=encoding)
                os.replace(self.tmp_path, self.path)
            except (OSError, ValueError, RuntimeError) as e:
                raise OutputCreateError(f"Failed writing {self.path}: {e}") from e
            logger.debug(f"Wrote {self.path}")

        self._closed = True
        self._z = None
        self._status = None

    def discard(self):
        """Drop a grid without persisting it, removing any partial file."""
        if self._writable and self.tmp_path.exists():
            self.tmp_path.unlink()
        self._closed = True
        self._z = None
        self._status = None

    def __enter__(self) -> 'GridFile':
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None and self._writable:
            self.discard()
        else:
            self.close()
        return False

    def __repr__(self) -> str:
        mode = 'w' if self._writable else 'r'
        return (
            f"GridFile('{self.path.name}', mode='{mode}', "
            f"shape={self.header.shape})"
        )
