"""CHRTR2-style grid files: header geometry, status flags and netCDF I/O."""

from .status import AUTHORITATIVE, CellRecord, CellStatus, is_authoritative
from .header import GridBounds, GridHeader, nint
from .chrtr import GridFile

__all__ = [
    'AUTHORITATIVE',
    'CellRecord',
    'CellStatus',
    'is_authoritative',
    'GridBounds',
    'GridHeader',
    'nint',
    'GridFile',
]
