"""
Ingestion and merge policy.

Streams every cell of every input grid into the merge grid. Inputs are
visited in precedence order; the first input is copied in as-is and later
inputs are filtered by the active policy:

    Insert (default): a cell is only filled if it is still empty. The first
        writer of a cell keeps it, which makes this an "insert where missing"
        rather than a full merge.
    Exclude: only authoritative (real, digitized contour, land mask) cells
        are taken, and only if no authoritative cell from another input lies
        within `buffer_size` cells of the target.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from scipy import ndimage

from ..config import MergeConfig, get_merge_config
from ..exceptions import GridAllocationError, GridFileError
from ..grids.chrtr import GridFile
from ..grids.header import GridHeader
from ..grids.status import is_authoritative
from ..progress import ProgressCallback, ProgressTracker
from .grid import MergeGrid
from .mbr import normalize_lons

logger = logging.getLogger(__name__)


@dataclass
class MergePolicy:
    """How inputs after the first are merged into the grid"""
    exclude: bool = False
    buffer_size: int = 4

    @classmethod
    def from_options(
        cls,
        exclude: bool = False,
        buffer_size: Optional[int] = None,
        config: Optional[MergeConfig] = None,
    ) -> 'MergePolicy':
        """Build a policy from CLI style options; a buffer size implies exclude."""
        config = config or get_merge_config()
        if buffer_size is not None:
            if buffer_size < 0:
                raise ValueError(f"Buffer size must be >= 0, got {buffer_size}")
            return cls(exclude=True, buffer_size=buffer_size)
        return cls(exclude=exclude, buffer_size=config.buffer_size)

    @property
    def name(self) -> str:
        return f"exclude (buffer {self.buffer_size})" if self.exclude else "insert"


@dataclass
class InputGrid:
    """An opened input grid and its precedence (rank 1 = highest)"""
    path: Path
    handle: GridFile
    rank: int

    @property
    def header(self) -> GridHeader:
        return self.handle.header


@dataclass
class IngestStats:
    """Cells committed per input rank"""
    committed: Dict[int, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.committed.values())


def open_inputs(
    paths: Sequence[Union[str, Path]],
    engine: Optional[str] = None,
) -> List[InputGrid]:
    """
    Open every input grid, in precedence order.

    Raises:
        GridFileError: If any input cannot be opened; inputs already opened are closed
    """
    inputs: List[InputGrid] = []
    try:
        for i, path in enumerate(paths):
            logger.info(f"Input file {i + 1}  : {path}")
            handle = GridFile.open(path, engine=engine)
            inputs.append(InputGrid(path=Path(path), handle=handle, rank=i + 1))
    except GridFileError:
        close_inputs(inputs)
        raise
    return inputs


def close_inputs(inputs: Sequence[InputGrid]):
    for item in inputs:
        item.handle.close()


def _unique_targets(targets: np.ndarray, keep_last: bool) -> np.ndarray:
    """Positions of the first (or last) occurrence of each target index."""
    if keep_last:
        _, first = np.unique(targets[::-1], return_index=True)
        return len(targets) - 1 - first
    _, first = np.unique(targets, return_index=True)
    return first


def exclusion_mask(grid: MergeGrid, rank: int, buffer_size: int) -> np.ndarray:
    """
    Flat mask of cells that have an authoritative cell from another input
    within `buffer_size` cells (square window, clipped at the grid edges).
    """
    foreign = is_authoritative(grid.status2d) & (grid.rank2d != rank)
    size = 2 * buffer_size + 1
    try:
        blocked = ndimage.maximum_filter(
            foreign.astype(np.uint8), size=size, mode='constant', cval=0
        )
    except MemoryError as e:
        raise GridAllocationError("Allocating exclusion buffer failed") from e
    return blocked.ravel().astype(bool)


def ingest_inputs(
    inputs: Sequence[InputGrid],
    grid: MergeGrid,
    header: GridHeader,
    policy: MergePolicy,
    dateline: bool = False,
    epsilon: float = 1e-10,
    progress: Optional[ProgressCallback] = None,
) -> IngestStats:
    """
    Load all inputs into the merge grid.

    Args:
        inputs: Opened inputs in precedence order
        grid: Merge grid to fill (mutated in place)
        header: Output grid header the merge grid was sized from
        policy: Insert or exclude policy for inputs after the first
        dateline: Whether longitudes use the 0..360+ frame
        epsilon: Offset added to cell centers before mapping
        progress: Optional observer called as (stage, percent)

    Returns:
        IngestStats with the number of cells each input committed
    """
    stats = IngestStats()
    width = grid.width

    for i, item in enumerate(inputs):
        rank = item.rank
        in_header = item.header
        tracker = ProgressTracker(progress, f"Reading grid file {i + 1} of {len(inputs)}")

        # Authoritative cells owned by other inputs do not change while this
        # input loads: a commit only lands where none were in range.
        blocked = None
        if i and policy.exclude:
            blocked = exclusion_mask(grid, rank, policy.buffer_size)

        lons = normalize_lons(in_header.col_lons() + epsilon, header.bounds, dateline)
        lats = in_header.row_lats() + epsilon
        committed = 0

        for row in range(in_header.height):
            z_row, status_row = item.handle.read_row(row)

            out_rows, out_cols, valid = header.coords(lats[row], lons)
            src = np.nonzero(valid)[0]
            targets = out_rows[src] * width + out_cols[src]

            if not i:
                keep = _unique_targets(targets, keep_last=True)
            elif policy.exclude:
                ok = is_authoritative(status_row[src]) & ~blocked[targets]
                src, targets = src[ok], targets[ok]
                keep = _unique_targets(targets, keep_last=True)
            else:
                ok = (status_row[src] != 0) & (grid.status[targets] == 0)
                src, targets = src[ok], targets[ok]
                keep = _unique_targets(targets, keep_last=False)

            src, targets = src[keep], targets[keep]
            grid.z[targets] = z_row[src]
            grid.status[targets] = status_row[src]
            grid.rank[targets] = rank
            committed += len(targets)

            tracker.update(row, in_header.height)

        tracker.finish()
        stats.committed[rank] = committed
        logger.info(f"  {item.path.name}: {committed:,} cells committed ({policy.name})")

    return stats
