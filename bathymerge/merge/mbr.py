"""
Union bounding box of the input grids, with dateline detection.

Longitudes past 360 degrees mean at least one input straddles the 0/360
seam. In that case everything is expressed in a 0..360+ frame: input boxes
and cell longitudes west of the seam are shifted east by 360 degrees.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..grids.header import GridBounds, GridHeader

logger = logging.getLogger(__name__)

DATELINE_LON = 360.0


@dataclass(frozen=True)
class UnifiedBounds:
    """Union MBR of all inputs and whether the dateline frame is in use"""
    bounds: GridBounds
    dateline: bool


def _shift_west(bounds: GridBounds) -> GridBounds:
    if bounds.wlon >= 0.0:
        return bounds
    return GridBounds(
        wlon=bounds.wlon + DATELINE_LON,
        elon=bounds.elon + DATELINE_LON,
        slat=bounds.slat,
        nlat=bounds.nlat,
    )


def unify_bounds(headers: Sequence[GridHeader]) -> UnifiedBounds:
    """
    Compute the union bounding box of all input grids.

    Args:
        headers: Input grid headers in precedence order

    Returns:
        UnifiedBounds with the union box and the dateline flag
    """
    if not headers:
        raise ValueError("At least one grid header is required")

    dateline = any(h.bounds.elon > DATELINE_LON for h in headers)

    boxes = [h.bounds for h in headers]
    if dateline:
        boxes = [_shift_west(b) for b in boxes]

    wlon = min(b.wlon for b in boxes)
    slat = min(b.slat for b in boxes)
    elon = max(b.elon for b in boxes)
    nlat = max(b.nlat for b in boxes)

    if dateline and elon < wlon:
        elon += DATELINE_LON

    bounds = GridBounds(wlon=wlon, elon=elon, slat=slat, nlat=nlat)
    if dateline:
        logger.info(f"Inputs cross the dateline, using {wlon:.6f} to {elon:.6f} longitude")

    return UnifiedBounds(bounds=bounds, dateline=dateline)


def normalize_lons(lons, bounds: GridBounds, dateline: bool) -> np.ndarray:
    """
    Move longitudes into the unified frame.

    Negative longitudes gain 360 degrees in dateline mode; anything still west
    of the unified box gains another 360.
    """
    lons = np.asarray(lons, dtype=np.float64)
    if not dateline:
        return lons
    lons = np.where(lons < 0.0, lons + DATELINE_LON, lons)
    return np.where(lons < bounds.wlon, lons + DATELINE_LON, lons)
