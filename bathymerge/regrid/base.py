"""
Base classes for pluggable surface engines.

An engine fits a continuous surface to scattered points on a regular node
lattice. The regrid orchestrator only talks to it through a session:

    session = engine.init(config, bounds)
    session.load(point)        # once per sample
    session.process()          # single blocking fit
    row = session.retrieve()   # one lattice row per call, None when exhausted

Coordinates are in a local frame measured in nodes, not degrees. Engines
use the corner-post convention: a sample belongs to the node at the lower
left corner of the bin it falls in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np

from ..config import SurfaceConfig


class SurfacePoint(NamedTuple):
    """One sample in the engine's local frame"""
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class XYBounds:
    """Working area in the engine's local frame"""
    min_x: float
    min_y: float
    max_x: float
    max_y: float


class SurfaceSession(ABC):
    """
    A single fit: load samples, process once, then retrieve rows.

    Rows are returned south to north (lowest y first).
    """

    @abstractmethod
    def load(self, point: SurfacePoint):
        """Accumulate one sample."""
        pass

    def load_many(self, xs: np.ndarray, ys: np.ndarray, zs: np.ndarray):
        """Accumulate a batch of samples given as parallel arrays."""
        for x, y, z in zip(xs, ys, zs):
            self.load(SurfacePoint(float(x), float(y), float(z)))

    @abstractmethod
    def process(self):
        """Fit the surface to every loaded sample."""
        pass

    @abstractmethod
    def retrieve(self) -> Optional[np.ndarray]:
        """Return the next row of the fitted surface, or None once exhausted."""
        pass


class SurfaceEngine(ABC):
    """Factory for surface fitting sessions"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in log messages"""
        pass

    @abstractmethod
    def init(self, config: SurfaceConfig, bounds: XYBounds) -> SurfaceSession:
        """Start a new session over `bounds`."""
        pass
