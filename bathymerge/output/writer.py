"""
Output writer and header finalizer.

Writes the merged grid when no regrid is requested, tracks the observed
value range, and stamps it into the output header as the final step.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..grids.chrtr import GridFile
from ..grids.header import GridHeader
from ..grids.status import CellRecord
from ..merge.grid import MergeGrid
from ..progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class ZRange:
    """Running min/max of written values"""
    min_z: float = 9999999999.0
    max_z: float = -9999999999.0
    count: int = 0

    def update(self, values: np.ndarray):
        values = np.asarray(values)
        if values.size == 0:
            return
        self.min_z = min(self.min_z, float(values.min()))
        self.max_z = max(self.max_z, float(values.max()))
        self.count += int(values.size)

    @property
    def empty(self) -> bool:
        return self.count == 0


def write_populated(
    grid: MergeGrid,
    output: GridFile,
    progress: Optional[ProgressCallback] = None,
) -> ZRange:
    """
    Write every populated cell of the merge grid, row by row.

    Returns:
        ZRange over the written values
    """
    zrange = ZRange()
    tracker = ProgressTracker(progress, "Writing grid data")

    z2d, status2d = grid.z2d, grid.status2d
    for row in range(grid.height):
        cols = np.nonzero(status2d[row])[0]
        for col in cols:
            record = CellRecord(float(z2d[row, col]), int(status2d[row, col]))
            output.write_record(row, int(col), record)
        zrange.update(z2d[row, cols])
        tracker.update(row, grid.height)

    tracker.finish()
    logger.info(f"File writing complete, {zrange.count:,} cells written")
    return zrange


def finalize_output(output: GridFile, header: GridHeader, zrange: ZRange) -> GridHeader:
    """
    Record the observed value range in the header, persist it, and close.

    Returns:
        The header as written
    """
    final = header.copy(min_observed_z=zrange.min_z, max_observed_z=zrange.max_z)
    output.update_header(final)
    output.close()
    if zrange.empty:
        logger.warning(f"{output.path} contains no data")
    else:
        logger.info(f"Observed z range: {zrange.min_z:.3f} to {zrange.max_z:.3f}")
    return final
