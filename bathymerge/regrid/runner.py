"""
Regrid orchestration.

Feeds every populated cell of the merge grid to a surface engine, then
writes the fitted surface back over the cells that hold no authoritative
data. The working area is padded by a filter border on every side so the
fit has no edge effects inside the real grid; the border is dropped again
when the rows come back.

Cell centers are handed to the engine as their raw fractional position in
the padded frame, without the half bin shift. The engine assigns a sample to
the lower left corner of its bin, so this puts each cell on its own node.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import MergeConfig, get_merge_config
from ..exceptions import EngineExhaustedError
from ..grids.chrtr import GridFile
from ..grids.header import GridBounds, GridHeader, nint
from ..grids.status import CellRecord, CellStatus, is_authoritative
from ..merge.grid import MergeGrid
from ..output.writer import ZRange
from ..progress import ProgressCallback, ProgressTracker
from .base import SurfaceEngine, XYBounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegridFrame:
    """Padded working area and the inner region that maps back to the grid"""
    bounds: GridBounds
    border: int
    grid_rows: int
    grid_cols: int

    @property
    def row_filter(self) -> int:
        return self.grid_rows - self.border

    @property
    def col_filter(self) -> int:
        return self.grid_cols - self.border

    @property
    def local_bounds(self) -> XYBounds:
        return XYBounds(min_x=0.0, min_y=0.0, max_x=float(self.grid_cols), max_y=float(self.grid_rows))


@dataclass
class RegridResult:
    """Summary of a regrid pass"""
    loaded_points: int
    interpolated_cells: int
    zrange: ZRange


def regrid_frame(header: GridHeader, border: int) -> RegridFrame:
    """Pad the output MBR by `border` cells on every side."""
    lon_size = header.lon_grid_size_degrees
    lat_size = header.lat_grid_size_degrees
    bounds = header.bounds.expand(border * lon_size, border * lat_size)
    return RegridFrame(
        bounds=bounds,
        border=border,
        grid_rows=nint(bounds.lat_span / lat_size),
        grid_cols=nint(bounds.lon_span / lon_size),
    )


def _write_outside_inner(
    grid: MergeGrid,
    output: GridFile,
    inner_rows: int,
    inner_cols: int,
    zrange: ZRange,
) -> int:
    """Write populated cells the fitted surface does not reach, unchanged."""
    outside = np.ones(grid.shape, dtype=bool)
    outside[:inner_rows, :inner_cols] = False
    rows, cols = np.nonzero(outside & (grid.status2d != 0))
    for row, col in zip(rows, cols):
        output.write_record(
            int(row), int(col),
            CellRecord(float(grid.z2d[row, col]), int(grid.status2d[row, col])),
        )
    zrange.update(grid.z2d[rows, cols])
    return len(rows)


def regrid(
    grid: MergeGrid,
    output: GridFile,
    engine: SurfaceEngine,
    config: Optional[MergeConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> RegridResult:
    """
    Interpolate the merged surface and stream the result to the output.

    Args:
        grid: Merge grid (mutated in place)
        output: Writable output grid, sized like `grid`
        engine: Surface engine to fit with
        config: Merge configuration (filter border, surface settings)
        progress: Optional observer called as (stage, percent)

    Returns:
        RegridResult with load count, fill count and the written value range

    Raises:
        EngineExhaustedError: If the engine runs out of rows early, or returns
            a row too short to cover the grid
    """
    config = config or get_merge_config()
    header = output.header
    frame = regrid_frame(header, config.filter_border)
    border = frame.border
    null_value = np.float32(config.surface.null_value)

    session = engine.init(config.surface, frame.local_bounds)

    # Cell centers in the padded local frame
    xs = (header.col_lons() - frame.bounds.wlon) / header.lon_grid_size_degrees
    ys = (header.row_lats() - frame.bounds.slat) / header.lat_grid_size_degrees

    tracker = ProgressTracker(progress, "Loading data for re-grid")
    z2d, status2d = grid.z2d, grid.status2d
    loaded = 0
    for row in range(grid.height):
        cols = np.nonzero(status2d[row])[0]
        if len(cols):
            session.load_many(xs[cols], np.full(len(cols), ys[row]), z2d[row, cols])
            loaded += len(cols)
        tracker.update(row, grid.height)
    tracker.finish()
    logger.info(f"Data load complete, {loaded:,} points loaded")

    logger.info(f"Processing grid ({engine.name}, {frame.grid_cols} x {frame.grid_rows} nodes)")
    session.process()
    logger.info("Processing grid complete")

    zrange = ZRange()
    interpolated = 0
    tracker = ProgressTracker(progress, "Retrieving data for output file")

    for i in range(frame.grid_rows):
        values = session.retrieve()
        if values is None:
            if i < frame.row_filter:
                raise EngineExhaustedError(
                    f"{engine.name} engine stopped after {i} of {frame.grid_rows} rows"
                )
            break

        out_row = i - border
        if border <= i < frame.row_filter and 0 <= out_row < grid.height:
            # Inner columns that land inside the grid
            col_end = min(frame.col_filter, border + grid.width)
            if len(values) < col_end:
                raise EngineExhaustedError(
                    f"{engine.name} engine returned {len(values)} values for row {i}, "
                    f"{col_end} needed"
                )
            if col_end > border:
                fitted = np.asarray(values[border:col_end], dtype=np.float32)
                z_cells = z2d[out_row, :col_end - border]
                status_cells = status2d[out_row, :col_end - border]

                fill = ~is_authoritative(status_cells) & (fitted != null_value)
                z_cells[fill] = fitted[fill]
                status_cells[fill] |= int(CellStatus.INTERPOLATED)
                interpolated += int(fill.sum())

                zrange.update(z_cells[status_cells != 0])
                output.write_row(out_row, z_cells, status_cells)

        tracker.update(i, frame.grid_rows)

    tracker.finish()
    logger.info(f"Final grid retrieval complete, {interpolated:,} cells interpolated")

    # The inner region stops one cell short of the north and east edges
    inner_rows = max(0, min(frame.row_filter - border, grid.height))
    inner_cols = max(0, min(frame.col_filter - border, grid.width))
    kept = _write_outside_inner(grid, output, inner_rows, inner_cols, zrange)
    if kept:
        logger.debug(f"{kept} populated edge cells written without interpolation")

    return RegridResult(loaded_points=loaded, interpolated_cells=interpolated, zrange=zrange)
