"""
End-to-end grid merge.

    inputs -> unified MBR -> merge grid -> (optional) regrid -> output file

Any failure aborts the whole run: inputs are closed, the partial output is
discarded, and the error propagates.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from .config import MergeConfig, default_output_path, ensure_extension, get_merge_config
from .grids.chrtr import GridFile
from .grids.header import GridHeader
from .merge.grid import allocate_output_grid, build_output_header
from .merge.ingest import IngestStats, MergePolicy, close_inputs, ingest_inputs, open_inputs
from .merge.mbr import unify_bounds
from .output.writer import finalize_output, write_populated
from .progress import ProgressCallback
from .regrid.base import SurfaceEngine
from .regrid.runner import regrid
from .regrid.surface import ScipySurfaceEngine

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """What a merge run produced"""
    output_path: Path
    header: GridHeader
    policy: MergePolicy
    dateline: bool
    ingest: IngestStats
    regridded: bool
    loaded_points: int = 0
    interpolated_cells: int = 0


def merge_grids(
    input_paths: Sequence[Union[str, Path]],
    output_path: Optional[Union[str, Path]] = None,
    exclude: bool = False,
    buffer_size: Optional[int] = None,
    regrid_output: bool = True,
    engine: Optional[SurfaceEngine] = None,
    config: Optional[MergeConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> MergeResult:
    """
    Merge grid files in precedence order into a single grid file.

    Args:
        input_paths: Input grids, highest priority first
        output_path: Output grid. None = first input's name with the merged suffix
        exclude: Use the exclude policy instead of insert
        buffer_size: Exclude buffer in cells (implies exclude)
        regrid_output: Interpolate the merged surface to fill gaps
        engine: Surface engine for regridding (default: ScipySurfaceEngine)
        config: Merge configuration (default: global config)
        progress: Optional observer called as (stage, percent)

    Returns:
        MergeResult summary

    Raises:
        ValueError: If the number of inputs is out of range
        GridMergeError: On any fatal merge failure
    """
    config = config or get_merge_config()
    if not config.min_inputs <= len(input_paths) <= config.max_inputs:
        raise ValueError(
            f"Between {config.min_inputs} and {config.max_inputs} input grids are required, "
            f"got {len(input_paths)}"
        )

    policy = MergePolicy.from_options(exclude=exclude, buffer_size=buffer_size, config=config)

    if output_path is None:
        output_path = default_output_path(input_paths[0], config)
    else:
        output_path = ensure_extension(output_path, config)

    inputs = open_inputs(input_paths, engine=config.netcdf_engine)
    output = None
    try:
        unified = unify_bounds([item.header for item in inputs])
        header = build_output_header(inputs[0].header, unified)

        output = GridFile.create(output_path, header, engine=config.netcdf_engine)
        logger.info(f"Output file : {output_path}")
        logger.info(
            f"  {header.width} x {header.height} cells, "
            f"lon {header.bounds.wlon:.6f} to {header.bounds.elon:.6f}, "
            f"lat {header.bounds.slat:.6f} to {header.bounds.nlat:.6f}"
        )

        grid = allocate_output_grid(header)

        stats = ingest_inputs(
            inputs, grid, header, policy,
            dateline=unified.dateline,
            epsilon=config.epsilon,
            progress=progress,
        )
        logger.info("Data read complete")
        close_inputs(inputs)

        result = MergeResult(
            output_path=Path(output_path),
            header=header,
            policy=policy,
            dateline=unified.dateline,
            ingest=stats,
            regridded=regrid_output,
        )

        if regrid_output:
            engine = engine or ScipySurfaceEngine()
            regridded = regrid(grid, output, engine, config=config, progress=progress)
            zrange = regridded.zrange
            result.loaded_points = regridded.loaded_points
            result.interpolated_cells = regridded.interpolated_cells
        else:
            zrange = write_populated(grid, output, progress=progress)

        grid.release()
        result.header = finalize_output(output, header, zrange)
    except BaseException:
        close_inputs(inputs)
        if output is not None:
            output.discard()
        raise

    # Second close is a no-op
    output.close()
    return result
