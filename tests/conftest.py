"""Shared fixtures: small CHRTR2-style grids written to tmp_path."""

from pathlib import Path
from typing import Optional

import numpy as np
import pytest

from bathymerge.config import MergeConfig, set_merge_config
from bathymerge.grids import CellStatus, GridBounds, GridFile, GridHeader

SPACING = 0.25


def make_header(wlon, slat, width, height, spacing=SPACING) -> GridHeader:
    return GridHeader(
        bounds=GridBounds(
            wlon=wlon,
            elon=wlon + (width - 1) * spacing,
            slat=slat,
            nlat=slat + (height - 1) * spacing,
        ),
        lon_grid_size_degrees=spacing,
        lat_grid_size_degrees=spacing,
        width=width,
        height=height,
    )


def write_grid(
    path: Path,
    header: GridHeader,
    z: np.ndarray,
    status: Optional[np.ndarray] = None,
) -> Path:
    """Write a grid with the given (height, width) arrays."""
    z = np.asarray(z, dtype=np.float32)
    if status is None:
        status = np.full(z.shape, int(CellStatus.REAL), dtype=np.uint16)
    status = np.asarray(status, dtype=np.uint16)
    assert z.shape == header.shape

    handle = GridFile.create(path, header)
    for row in range(header.height):
        handle.write_row(row, z[row], status[row])
    handle.update_header(header.copy(
        min_observed_z=float(z.min()),
        max_observed_z=float(z.max()),
    ))
    handle.close()
    return path


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the stock configuration."""
    set_merge_config(MergeConfig())
    yield
    set_merge_config(None)


@pytest.fixture
def grid_factory(tmp_path):
    """Build grid files: grid_factory(name, wlon, slat, z, status=None)."""
    def _make(name, wlon, slat, z, status=None, spacing=SPACING):
        z = np.asarray(z, dtype=np.float32)
        header = make_header(wlon, slat, z.shape[1], z.shape[0], spacing=spacing)
        return write_grid(tmp_path / name, header, z, status)
    return _make


def read_all(path: Path):
    """Return (z, status, header) of a grid file as 2-D arrays."""
    handle = GridFile.open(path)
    rows = [handle.read_row(r) for r in range(handle.header.height)]
    header = handle.header
    handle.close()
    return (
        np.vstack([r[0] for r in rows]),
        np.vstack([r[1] for r in rows]),
        header,
    )
