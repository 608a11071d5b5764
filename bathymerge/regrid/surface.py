"""
scipy based surface engine.

Fits a surface on the node lattice in three passes:
    1. Bin samples onto nodes (corner posts) and average per node.
    2. Fill empty nodes by inverse distance weighting of known nodes within
       the search radius, falling back to the nearest known node.
    3. Relax the filled nodes toward the mean of their four neighbors until
       the largest change drops below `delta` or `iterations` passes ran.

Known nodes keep their binned value throughout. Every fill is a convex
combination of known values, so the surface never leaves their range.
"""

import logging
from typing import Optional

import numpy as np
from scipy import ndimage
from scipy.spatial import cKDTree

from ..config import SurfaceConfig
from ..exceptions import GridAllocationError
from ..grids.header import nint
from .base import SurfaceEngine, SurfacePoint, SurfaceSession, XYBounds

logger = logging.getLogger(__name__)

# Neighbors used for inverse distance weighting
IDW_NEIGHBORS = 8

# Point buffer growth step
POINT_CHUNK = 65536

RELAX_KERNEL = np.array([
    [0.0, 1.0, 0.0],
    [1.0, 0.0, 1.0],
    [0.0, 1.0, 0.0],
]) / 4.0


class ScipySurfaceSession(SurfaceSession):
    """One fit over a fixed lattice"""

    def __init__(self, config: SurfaceConfig, bounds: XYBounds):
        self.config = config
        self.bounds = bounds
        self.n_cols = nint((bounds.max_x - bounds.min_x) / config.x_spacing) + 1
        self.n_rows = nint((bounds.max_y - bounds.min_y) / config.y_spacing) + 1

        # (x, y, z) rows; only the first _count are valid
        self._points = np.empty((0, 3), dtype=np.float64)
        self._count = 0
        self._surface: Optional[np.ndarray] = None
        self._next_row = 0

    @property
    def point_count(self) -> int:
        return self._count

    def _reserve(self, extra: int):
        needed = self._count + extra
        if needed <= len(self._points):
            return
        capacity = max(needed, 2 * len(self._points), POINT_CHUNK)
        try:
            grown = np.empty((capacity, 3), dtype=np.float64)
        except MemoryError as e:
            raise GridAllocationError(f"Allocating buffer for {capacity:,} points failed") from e
        grown[:self._count] = self._points[:self._count]
        self._points = grown

    def load(self, point: SurfacePoint):
        self._reserve(1)
        self._points[self._count] = (point.x, point.y, point.z)
        self._count += 1

    def load_many(self, xs: np.ndarray, ys: np.ndarray, zs: np.ndarray):
        """Load a batch of points given as parallel arrays."""
        xs, ys, zs = np.broadcast_arrays(
            np.asarray(xs, dtype=np.float64),
            np.asarray(ys, dtype=np.float64),
            np.asarray(zs, dtype=np.float64),
        )
        n = xs.size
        self._reserve(n)
        block = self._points[self._count:self._count + n]
        block[:, 0] = xs.ravel()
        block[:, 1] = ys.ravel()
        block[:, 2] = zs.ravel()
        self._count += n

    def process(self):
        try:
            surface = np.full((self.n_rows, self.n_cols), self.config.null_value, dtype=np.float64)
            sums = np.zeros_like(surface)
            counts = np.zeros(surface.shape, dtype=np.int64)
        except MemoryError as e:
            raise GridAllocationError(
                f"Allocating {self.n_cols} x {self.n_rows} surface lattice failed"
            ) from e

        self._next_row = 0
        if not self._count:
            logger.warning("No points loaded, surface is entirely null")
            self._surface = surface
            return

        points = self._points[:self._count]
        xs, ys, zs = points[:, 0], points[:, 1], points[:, 2]

        # Corner posts: a sample belongs to the node at its bin's lower left
        ix = np.floor((xs - self.bounds.min_x) / self.config.x_spacing).astype(np.int64)
        iy = np.floor((ys - self.bounds.min_y) / self.config.y_spacing).astype(np.int64)
        inside = (ix >= 0) & (ix < self.n_cols) & (iy >= 0) & (iy < self.n_rows)
        if not inside.all():
            logger.debug(f"{int((~inside).sum())} points fell outside the lattice")
        ix, iy, zs = ix[inside], iy[inside], zs[inside]

        np.add.at(sums, (iy, ix), zs)
        np.add.at(counts, (iy, ix), 1)

        known = counts > 0
        surface[known] = sums[known] / counts[known]

        if known.any() and not known.all():
            self._fill(surface, known)
            self._relax(surface, known)

        self._surface = surface

    def _fill(self, surface: np.ndarray, known: np.ndarray):
        ky, kx = np.nonzero(known)
        uy, ux = np.nonzero(~known)
        values = surface[ky, kx]

        dx, dy = self.config.x_spacing, self.config.y_spacing
        tree = cKDTree(np.column_stack([kx * dx, ky * dy]))
        targets = np.column_stack([ux * dx, uy * dy])

        k = min(IDW_NEIGHBORS, len(values))
        dist, idx = tree.query(targets, k=k, distance_upper_bound=self.config.search_radius)
        if k == 1:
            dist, idx = dist[:, None], idx[:, None]

        # Missing neighbors come back as inf distance and an out of range index
        in_range = np.isfinite(dist)
        safe_idx = np.where(in_range, idx, 0)
        weights = np.where(
            in_range,
            1.0 / np.maximum(dist, 1e-12) ** self.config.power,
            0.0,
        )
        weight_sum = weights.sum(axis=1)
        filled = (weights * values[safe_idx]).sum(axis=1) / np.where(weight_sum > 0, weight_sum, 1.0)

        far = weight_sum == 0
        if far.any():
            _, nearest = tree.query(targets[far], k=1)
            filled[far] = values[nearest]

        surface[uy, ux] = filled

    def _relax(self, surface: np.ndarray, known: np.ndarray):
        weight = min(max(self.config.smoothing_weight, 0.0), 1.0)
        for iteration in range(self.config.iterations):
            neighbor_mean = ndimage.convolve(surface, RELAX_KERNEL, mode='nearest')
            change = weight * (neighbor_mean - surface)
            change[known] = 0.0
            surface += change
            if np.abs(change).max() < self.config.delta:
                logger.debug(f"Surface converged after {iteration + 1} passes")
                break

    def retrieve(self) -> Optional[np.ndarray]:
        if self._surface is None:
            raise RuntimeError("retrieve() called before process()")
        if self._next_row >= self.n_rows:
            return None
        row = self._surface[self._next_row].astype(np.float32)
        self._next_row += 1
        return row


class ScipySurfaceEngine(SurfaceEngine):
    """Default engine: inverse distance fill plus neighbor relaxation"""

    @property
    def name(self) -> str:
        return 'scipy'

    def init(self, config: SurfaceConfig, bounds: XYBounds) -> ScipySurfaceSession:
        session = ScipySurfaceSession(config, bounds)
        logger.debug(f"Surface session: {session.n_cols} x {session.n_rows} nodes")
        return session
