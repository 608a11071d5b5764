"""
Merge engine: MBR unification, output grid allocation, and ingestion of
input grids under the insert or exclude policy.
"""

from .mbr import UnifiedBounds, normalize_lons, unify_bounds
from .grid import MergeGrid, RankedCell, allocate_output_grid, build_output_header
from .ingest import (
    IngestStats,
    InputGrid,
    MergePolicy,
    close_inputs,
    exclusion_mask,
    ingest_inputs,
    open_inputs,
)

__all__ = [
    'UnifiedBounds',
    'normalize_lons',
    'unify_bounds',
    'MergeGrid',
    'RankedCell',
    'allocate_output_grid',
    'build_output_header',
    'IngestStats',
    'InputGrid',
    'MergePolicy',
    'close_inputs',
    'exclusion_mask',
    'ingest_inputs',
    'open_inputs',
]
