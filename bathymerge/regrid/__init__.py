"""
Regridding: the surface engine contract, the default scipy engine, and the
orchestrator that reconciles the fitted surface with authoritative data.
"""

from .base import SurfaceEngine, SurfacePoint, SurfaceSession, XYBounds
from .surface import ScipySurfaceEngine, ScipySurfaceSession
from .runner import RegridFrame, RegridResult, regrid, regrid_frame

__all__ = [
    'SurfaceEngine',
    'SurfacePoint',
    'SurfaceSession',
    'XYBounds',
    'ScipySurfaceEngine',
    'ScipySurfaceSession',
    'RegridFrame',
    'RegridResult',
    'regrid',
    'regrid_frame',
]
