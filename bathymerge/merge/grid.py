"""
In-memory merge grid.

Holds the merged surface for the whole run as three flat buffers (value,
status, source rank) addressed by row * width + col.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..exceptions import GridAllocationError
from ..grids.header import GridHeader, nint
from ..grids.status import STATUS_DTYPE, AUTHORITATIVE
from .mbr import UnifiedBounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCell:
    """A merged cell and the 1-based input index that supplied it (0 = empty)"""
    z: float
    status: int
    rank: int

    @property
    def empty(self) -> bool:
        return self.status == 0

    @property
    def authoritative(self) -> bool:
        return bool(self.status & AUTHORITATIVE)


class MergeGrid:
    """
    Merged surface covering the unified area.

    Attributes:
        width: Number of columns
        height: Number of rows
        z: Flat float32 values
        status: Flat uint16 status bits
        rank: Flat int32 source ranks
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive ({width} x {height})")
        self.width = width
        self.height = height
        size = width * height
        self.z = np.zeros(size, dtype=np.float32)
        self.status = np.zeros(size, dtype=STATUS_DTYPE)
        self.rank = np.zeros(size, dtype=np.int32)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    def index(self, row: int, col: int) -> int:
        """Flat index of (row, col), bounds checked."""
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise IndexError(f"Cell ({row}, {col}) outside {self.height} x {self.width} grid")
        return row * self.width + col

    def cell(self, row: int, col: int) -> RankedCell:
        i = self.index(row, col)
        return RankedCell(z=float(self.z[i]), status=int(self.status[i]), rank=int(self.rank[i]))

    def commit(self, row: int, col: int, z: float, status: int, rank: int):
        i = self.index(row, col)
        self.z[i] = z
        self.status[i] = status
        self.rank[i] = rank

    # 2-D views share memory with the flat buffers
    @property
    def z2d(self) -> np.ndarray:
        return self.z.reshape(self.shape)

    @property
    def status2d(self) -> np.ndarray:
        return self.status.reshape(self.shape)

    @property
    def rank2d(self) -> np.ndarray:
        return self.rank.reshape(self.shape)

    def populated_count(self) -> int:
        return int(np.count_nonzero(self.status))

    def release(self):
        """Drop the buffers once the grid has been written."""
        self.z = self.status = self.rank = None


def build_output_header(first: GridHeader, unified: UnifiedBounds) -> GridHeader:
    """
    Synthesize the output header: the first input's spacing over the union MBR.

    Width and height count the cells needed to span the box at that spacing,
    plus one.
    """
    bounds = unified.bounds
    width = nint(bounds.lon_span / first.lon_grid_size_degrees) + 1
    height = nint(bounds.lat_span / first.lat_grid_size_degrees) + 1
    return first.copy(
        bounds=bounds,
        width=width,
        height=height,
        min_observed_z=0.0,
        max_observed_z=0.0,
    )


def allocate_output_grid(header: GridHeader) -> MergeGrid:
    """
    Allocate the merge grid for an output header.

    Raises:
        GridAllocationError: If the grid does not fit in memory
    """
    try:
        grid = MergeGrid(header.width, header.height)
    except MemoryError as e:
        raise GridAllocationError(
            f"Allocating {header.width} x {header.height} merge grid failed"
        ) from e
    logger.debug(f"Allocated {header.width} x {header.height} merge grid")
    return grid
