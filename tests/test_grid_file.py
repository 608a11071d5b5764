"""Tests for grid headers, status flags and the netCDF grid file."""

import numpy as np
import pytest

from bathymerge.exceptions import GridFileError, OutputCreateError
from bathymerge.grids import (
    AUTHORITATIVE,
    CellRecord,
    CellStatus,
    GridFile,
    is_authoritative,
    nint,
)

from conftest import make_header, read_all


def test_nint_rounds_half_away_from_zero():
    assert nint(2.5) == 3
    assert nint(3.5) == 4
    assert nint(-2.5) == -3
    assert nint(2.4999) == 2
    assert nint(0.0) == 0


def test_authoritative_flags():
    assert AUTHORITATIVE == CellStatus.REAL | CellStatus.DIGITIZED_CONTOUR | CellStatus.LAND_MASK
    status = np.array([0, 1, 2, 4, 8, 16, 4 | 1, 32], dtype=np.uint16)
    expected = [False, True, True, False, False, True, True, False]
    assert is_authoritative(status).tolist() == expected


def test_header_cell_geometry():
    header = make_header(wlon=10.0, slat=-5.0, width=4, height=3)

    lat, lon = header.lat_lon(0, 0)
    assert lat == pytest.approx(-5.0 + 0.125)
    assert lon == pytest.approx(10.0 + 0.125)

    assert header.coord(lat, lon) == (0, 0)
    assert header.coord(*header.lat_lon(2, 3)) == (2, 3)
    assert header.coord(-5.1, 10.1) is None
    assert header.coord(-4.9, 11.01) is None  # past the last column


def test_header_vectorized_coords():
    header = make_header(wlon=0.0, slat=0.0, width=4, height=3)
    rows, cols, valid = header.coords(0.3, np.array([-0.1, 0.1, 0.6, 0.99, 1.1]))
    assert valid.tolist() == [False, True, True, True, False]
    assert cols[valid].tolist() == [0, 2, 3]
    assert set(rows[valid].tolist()) == {1}


def test_header_validate():
    header = make_header(wlon=0.0, slat=0.0, width=4, height=3)
    assert header.validate() is None
    assert "spacing" in header.copy(lon_grid_size_degrees=0.0).validate()
    assert "dimensions" in header.copy(width=0).validate()


def test_round_trip(tmp_path):
    header = make_header(wlon=-120.0, slat=33.0, width=3, height=2)
    path = tmp_path / "roundtrip.ch2"

    handle = GridFile.create(path, header)
    handle.write_record(0, 0, CellRecord(-12.5, int(CellStatus.REAL)))
    handle.write_row(1, np.array([1.0, 2.0], dtype=np.float32),
                     np.array([2, 16], dtype=np.uint16), col_start=1)
    assert not path.exists()
    handle.close()
    assert path.exists()

    z, status, read_header = read_all(path)
    assert read_header == header
    assert z[0, 0] == pytest.approx(-12.5)
    assert status.tolist() == [[1, 0, 0], [0, 2, 16]]
    assert z[1, 1:].tolist() == [1.0, 2.0]


def test_close_is_idempotent(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    handle = GridFile.create(tmp_path / "twice.ch2", header)
    handle.close()
    handle.close()
    assert handle.closed
    assert not handle.tmp_path.exists()


def test_update_header_is_persisted(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    path = tmp_path / "header.ch2"
    handle = GridFile.create(path, header)
    handle.update_header(header.copy(min_observed_z=-4.0, max_observed_z=7.5))
    handle.close()

    reopened = GridFile.open(path)
    assert reopened.header.min_observed_z == -4.0
    assert reopened.header.max_observed_z == 7.5
    reopened.close()


def test_update_header_rejects_resize(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    handle = GridFile.create(tmp_path / "resize.ch2", header)
    with pytest.raises(ValueError):
        handle.update_header(header.copy(width=3))
    handle.discard()


def test_discard_leaves_nothing(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    path = tmp_path / "discard.ch2"
    handle = GridFile.create(path, header)
    assert handle.tmp_path.exists()
    handle.discard()
    assert not handle.tmp_path.exists()
    assert not path.exists()


def test_read_only_handle_rejects_writes(grid_factory):
    path = grid_factory("ro.ch2", 0.0, 0.0, np.zeros((2, 2)))
    handle = GridFile.open(path)
    with pytest.raises(ValueError):
        handle.write_record(0, 0, CellRecord(1.0, 1))
    handle.close()


def test_open_missing_file(tmp_path):
    with pytest.raises(GridFileError):
        GridFile.open(tmp_path / "nope.ch2")


def test_open_garbage_file(tmp_path):
    path = tmp_path / "garbage.ch2"
    path.write_bytes(b"this is not a grid file at all")
    with pytest.raises(GridFileError):
        GridFile.open(path)


def test_create_in_missing_directory(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    with pytest.raises(OutputCreateError):
        GridFile.create(tmp_path / "missing" / "out.ch2", header)


def test_create_with_bad_header(tmp_path):
    header = make_header(wlon=0.0, slat=0.0, width=2, height=2).copy(height=0)
    with pytest.raises(OutputCreateError):
        GridFile.create(tmp_path / "bad.ch2", header)


@pytest.mark.parametrize("error", [ValueError, RuntimeError, OSError])
def test_close_wraps_backend_write_errors(tmp_path, monkeypatch, error):
    import xarray as xr

    def fail(self, *args, **kwargs):
        raise error("backend cannot store this grid")

    header = make_header(wlon=0.0, slat=0.0, width=2, height=2)
    path = tmp_path / "fails.ch2"
    handle = GridFile.create(path, header)
    monkeypatch.setattr(xr.Dataset, "to_netcdf", fail)

    with pytest.raises(OutputCreateError):
        handle.close()
    assert not path.exists()
    handle.discard()
    assert not handle.tmp_path.exists()
