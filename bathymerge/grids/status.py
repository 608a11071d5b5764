"""
Cell status flags.

Values match the CHRTR2 status bits so files written by other CHRTR2 tools
keep their meaning.
"""

from enum import IntFlag
from typing import NamedTuple

import numpy as np


class CellStatus(IntFlag):
    """Status bitmask carried by every grid cell (0 = empty)"""
    NULL = 0
    REAL = 1
    DIGITIZED_CONTOUR = 2
    INTERPOLATED = 4
    CHECKED = 8
    LAND_MASK = 16
    USER_01 = 32
    USER_02 = 64
    USER_03 = 128
    USER_04 = 256


# Ground truth data; never overwritten once committed
AUTHORITATIVE = CellStatus.REAL | CellStatus.DIGITIZED_CONTOUR | CellStatus.LAND_MASK

STATUS_DTYPE = np.uint16


class CellRecord(NamedTuple):
    """A single cell: elevation/depth value plus status bitmask"""
    z: float
    status: int


def is_authoritative(status) -> np.ndarray:
    """Vectorized check for REAL, DIGITIZED_CONTOUR or LAND_MASK"""
    return (np.asarray(status) & int(AUTHORITATIVE)) != 0
