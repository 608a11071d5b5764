"""
Merge Configuration

Defines the fixed merge and surface-fitting parameters, output naming rules,
and environment overrides.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union


@dataclass
class SurfaceConfig:
    """Fixed configuration handed to the surface engine when a session starts"""

    # Node spacing in the local (zero based, bin sized) frame
    x_spacing: float = 1.0
    y_spacing: float = 1.0

    # Stop relaxing once the largest node change drops below this
    delta: float = 0.05
    search_radius: float = 20.0  # In nodes
    iterations: int = 20
    power: float = 2.0  # Inverse distance exponent
    smoothing_weight: float = 1.0  # 0..1, fraction of the neighbor mean applied per pass

    # Returned for nodes the engine could not fit
    null_value: float = 999999.0


@dataclass
class MergeConfig:
    """Configuration for a merge run"""

    # Exclude buffer radius in grid cells
    buffer_size: int = 4

    # Padding (in cells) added around the working area before regridding
    filter_border: int = 9

    # Nudge applied to cell centers so they never land on a cell boundary
    epsilon: float = 1e-10

    min_inputs: int = 2
    max_inputs: int = 16

    # Output naming
    output_suffix: str = '__merged'
    extension: str = '.ch2'

    # xarray backend for reading and writing grid files
    netcdf_engine: str = 'netcdf4'

    surface: SurfaceConfig = field(default_factory=SurfaceConfig)

    def __post_init__(self):
        """Reject values the merge cannot work with"""
        if self.buffer_size < 0:
            raise ValueError(f"buffer_size must be >= 0, got {self.buffer_size}")
        if self.filter_border < 0:
            raise ValueError(f"filter_border must be >= 0, got {self.filter_border}")
        if self.min_inputs > self.max_inputs:
            raise ValueError("min_inputs cannot exceed max_inputs")


def default_output_path(first_input: Union[str, Path], config: Optional[MergeConfig] = None) -> Path:
    """
    Build the default output path from the first (highest priority) input.

    file1.ch2 -> file1__merged.ch2
    """
    config = config or get_merge_config()
    first_input = Path(first_input)
    return first_input.with_name(f"{first_input.stem}{config.output_suffix}{config.extension}")


def ensure_extension(path: Union[str, Path], config: Optional[MergeConfig] = None) -> Path:
    """Append the grid extension to a user supplied output path if it is missing"""
    config = config or get_merge_config()
    path = Path(path)
    if path.name.endswith(config.extension):
        return path
    return path.with_name(path.name + config.extension)


# Global config instance (can be overridden)
_config: Optional[MergeConfig] = None


def get_merge_config() -> MergeConfig:
    """Get the current merge configuration"""
    global _config
    if _config is None:
        _config = MergeConfig()
        # Check for environment variable overrides
        if os.environ.get('BATHYMERGE_BUFFER_SIZE'):
            _config.buffer_size = int(os.environ['BATHYMERGE_BUFFER_SIZE'])
        if os.environ.get('BATHYMERGE_FILTER_BORDER'):
            _config.filter_border = int(os.environ['BATHYMERGE_FILTER_BORDER'])
        if os.environ.get('BATHYMERGE_NETCDF_ENGINE'):
            _config.netcdf_engine = os.environ['BATHYMERGE_NETCDF_ENGINE']
    return _config


def set_merge_config(config: Optional[MergeConfig]):
    """Set a custom merge configuration (None restores the defaults on next access)"""
    global _config
    _config = config
