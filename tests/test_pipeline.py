"""End-to-end merge runs through merge_grids."""

import numpy as np
import pytest

from bathymerge import GridFileError, merge_grids
from bathymerge.config import MergeConfig
from bathymerge.grids import CellStatus, is_authoritative

from conftest import read_all

REAL = int(CellStatus.REAL)
INTERP = int(CellStatus.INTERPOLATED)


def test_insert_without_regrid(grid_factory, tmp_path):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((3, 3), -1.0))
    b = grid_factory("b.ch2", 0.25, 0.0, np.full((3, 3), -2.0))

    result = merge_grids([a, b], tmp_path / "ab.ch2", regrid_output=False)

    assert result.output_path == tmp_path / "ab.ch2"
    assert not result.regridded
    assert result.policy.name == "insert"
    z, status, header = read_all(result.output_path)
    assert (header.width, header.height) == (4, 3)
    assert (z[:, :3] == -1.0).all()
    assert (z[:, 3] == -2.0).all()
    assert (status == REAL).all()
    assert header.min_observed_z == -2.0
    assert header.max_observed_z == -1.0
    assert result.header == header


def test_default_output_name(grid_factory, tmp_path):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((2, 2), -1.0))
    b = grid_factory("b.ch2", 0.0, 0.0, np.full((2, 2), -2.0))

    result = merge_grids([a, b], regrid_output=False)

    assert result.output_path == tmp_path / "a__merged.ch2"
    assert result.output_path.exists()


def test_extension_appended(grid_factory, tmp_path):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((2, 2), -1.0))
    b = grid_factory("b.ch2", 0.0, 0.0, np.full((2, 2), -2.0))

    result = merge_grids([a, b], tmp_path / "combined", regrid_output=False)

    assert result.output_path == tmp_path / "combined.ch2"
    assert result.output_path.exists()


def test_regrid_fills_hole_within_range(grid_factory, tmp_path):
    rng = np.random.default_rng(5)
    z = rng.uniform(-30.0, -10.0, (5, 5)).astype(np.float32)
    status = np.full((5, 5), REAL, dtype=np.uint16)
    status[2, 2] = 0
    a = grid_factory("a.ch2", 0.0, 0.0, z, status)
    b = grid_factory("b.ch2", 0.0, 0.0, z, status)

    result = merge_grids([a, b], tmp_path / "filled.ch2")

    assert result.regridded
    assert result.loaded_points == 24
    assert result.interpolated_cells == 1

    out_z, out_status, header = read_all(result.output_path)
    known = status != 0
    assert np.array_equal(out_z[known], z[known])
    assert np.array_equal(out_status[known], status[known])
    assert out_status[2, 2] == INTERP
    assert z[known].min() <= out_z[2, 2] <= z[known].max()
    assert header.min_observed_z == pytest.approx(float(z[known].min()))
    assert header.max_observed_z == pytest.approx(float(z[known].max()))


def test_exclude_run(grid_factory, tmp_path):
    a_status = np.zeros((1, 9), dtype=np.uint16)
    a_status[0, 0] = REAL
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((1, 9), -1.0), a_status)
    b = grid_factory("b.ch2", 0.0, 0.0, np.full((1, 9), -50.0))

    result = merge_grids([a, b], tmp_path / "ex.ch2", buffer_size=2, regrid_output=False)

    assert result.policy.exclude and result.policy.buffer_size == 2
    assert result.ingest.committed[2] == 6
    _, status, _ = read_all(result.output_path)
    assert status[0].tolist() == [REAL, 0, 0, REAL, REAL, REAL, REAL, REAL, REAL]
    assert is_authoritative(status).sum() == 7


def test_bad_input_leaves_no_output(grid_factory, tmp_path):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((2, 2), -1.0))
    bad = tmp_path / "bad.ch2"
    bad.write_bytes(b"not a grid")
    out = tmp_path / "out.ch2"

    with pytest.raises(GridFileError):
        merge_grids([a, bad], out)

    assert not out.exists()
    assert not (tmp_path / "out.ch2.partial").exists()


def test_engine_failure_discards_output(grid_factory, tmp_path):
    from bathymerge.exceptions import EngineExhaustedError
    from bathymerge.regrid import ScipySurfaceEngine
    from bathymerge.regrid.base import SurfaceSession

    class ShortSession(SurfaceSession):
        def __init__(self, session):
            self.session = session

        def load(self, point):
            self.session.load(point)

        def process(self):
            self.session.process()

        def retrieve(self):
            return None

    class ShortEngine(ScipySurfaceEngine):
        def init(self, config, bounds):
            return ShortSession(super().init(config, bounds))

    a = grid_factory("a.ch2", 0.0, 0.0, np.full((3, 3), -1.0))
    b = grid_factory("b.ch2", 0.0, 0.0, np.full((3, 3), -2.0))
    out = tmp_path / "short.ch2"

    with pytest.raises(EngineExhaustedError):
        merge_grids([a, b], out, engine=ShortEngine())

    assert not out.exists()
    assert not (tmp_path / "short.ch2.partial").exists()


@pytest.mark.parametrize("count", [1, 17])
def test_input_count_is_checked(grid_factory, tmp_path, count):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((2, 2), -1.0))
    with pytest.raises(ValueError):
        merge_grids([a] * count, tmp_path / "out.ch2")


def test_progress_stages(grid_factory, tmp_path):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((3, 3), -1.0))
    b = grid_factory("b.ch2", 0.0, 0.0, np.full((3, 3), -2.0))
    seen = []

    merge_grids([a, b], tmp_path / "p.ch2", progress=lambda stage, pct: seen.append((stage, pct)))

    stages = list(dict.fromkeys(stage for stage, _ in seen))
    assert stages == [
        "Reading grid file 1 of 2",
        "Reading grid file 2 of 2",
        "Loading data for re-grid",
        "Retrieving data for output file",
    ]


def test_config_border_is_used(grid_factory, tmp_path):
    z = np.full((4, 4), -3.0)
    status = np.full((4, 4), REAL, dtype=np.uint16)
    status[1, 1] = 0
    a = grid_factory("a.ch2", 0.0, 0.0, z, status)
    b = grid_factory("b.ch2", 0.0, 0.0, z, status)

    result = merge_grids([a, b], tmp_path / "b2.ch2", config=MergeConfig(filter_border=2))

    out_z, out_status, _ = read_all(result.output_path)
    assert out_status[1, 1] == INTERP
    assert out_z[1, 1] == pytest.approx(-3.0)
