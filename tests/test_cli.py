"""Tests for the command line entry point."""

import numpy as np
import pytest

from bathymerge.cli import build_parser, main
from bathymerge.grids import CellStatus

from conftest import read_all


@pytest.fixture
def two_grids(grid_factory):
    a = grid_factory("a.ch2", 0.0, 0.0, np.full((3, 3), -1.0))
    b = grid_factory("b.ch2", 0.25, 0.0, np.full((3, 3), -2.0))
    return str(a), str(b)


def test_parser_defaults():
    args = build_parser().parse_args(["a.ch2", "b.ch2"])
    assert args.inputs == ["a.ch2", "b.ch2"]
    assert not args.exclude
    assert args.buffer is None
    assert not args.no_regrid
    assert args.output is None


def test_merge_without_regrid(two_grids, tmp_path):
    out = tmp_path / "merged"

    assert main([*two_grids, "-n", "-o", str(out)]) == 0

    z, status, header = read_all(tmp_path / "merged.ch2")
    assert (header.width, header.height) == (4, 3)
    assert (z[:, 3] == -2.0).all()
    assert (status == int(CellStatus.REAL)).all()


def test_default_output_name(two_grids, tmp_path):
    assert main([*two_grids, "-n"]) == 0
    assert (tmp_path / "a__merged.ch2").exists()


def test_buffer_option(two_grids, tmp_path):
    out = tmp_path / "buffered.ch2"
    assert main(["-b", "2", *two_grids, "-o", str(out)]) == 0
    assert out.exists()


def test_too_few_inputs(two_grids):
    with pytest.raises(SystemExit) as exc:
        main([two_grids[0]])
    assert exc.value.code == 2


def test_negative_buffer(two_grids):
    with pytest.raises(SystemExit) as exc:
        main(["-b", "-1", *two_grids])
    assert exc.value.code == 2


def test_missing_input_returns_error(two_grids, tmp_path):
    missing = str(tmp_path / "missing.ch2")
    assert main([two_grids[0], missing, "-n"]) == 1
    assert not (tmp_path / "a__merged.ch2").exists()


def test_preview(two_grids, tmp_path):
    png = tmp_path / "plots" / "merged.png"
    assert main([*two_grids, "-o", str(tmp_path / "p.ch2"), "--preview", str(png)]) == 0
    assert png.exists() and png.stat().st_size > 0


def test_preview_failure_returns_error(two_grids, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    out = tmp_path / "p.ch2"

    assert main([*two_grids, "-n", "-o", str(out), "--preview", str(blocker / "merged.png")]) == 1
    assert out.exists()
