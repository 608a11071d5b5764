"""
bathymerge - precedence merging of CHRTR2-style bathymetry grids.

Merges two or more elevation/bathymetry grids into one, honoring input order
as precedence, optionally excluding lower-priority data near higher-priority
real data, and optionally regridding the merged surface to fill gaps.
"""

__version__ = "2.2.0"

VERSION_BANNER = f"bathymerge V{__version__}"

from .exceptions import (
    GridMergeError,
    GridFileError,
    OutputCreateError,
    GridAllocationError,
    EngineExhaustedError,
)
from .pipeline import MergeResult, merge_grids

__all__ = [
    '__version__',
    'VERSION_BANNER',
    # Errors
    'GridMergeError',
    'GridFileError',
    'OutputCreateError',
    'GridAllocationError',
    'EngineExhaustedError',
    # Pipeline
    'MergeResult',
    'merge_grids',
]
