"""
Quick-look plots of merged grids.

Shows the merged elevation next to the status of every cell, so it is easy
to see which areas are real data and which were interpolated.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap

from .exceptions import OutputCreateError
from .grids.chrtr import GridFile
from .grids.status import AUTHORITATIVE, CellStatus

logger = logging.getLogger(__name__)

STATUS_LABELS = ['empty', 'authoritative', 'interpolated', 'other']
STATUS_COLORS = ['white', 'tab:blue', 'tab:orange', 'tab:gray']


def status_classes(status: np.ndarray) -> np.ndarray:
    """Collapse status bits into the classes shown in the plot (index into STATUS_LABELS)."""
    classes = np.full(status.shape, 3, dtype=np.int8)
    classes[status == 0] = 0
    classes[(status & int(CellStatus.INTERPOLATED)) != 0] = 2
    classes[(status & int(AUTHORITATIVE)) != 0] = 1
    return classes


def plot_merged_grid(
    path: Union[str, Path],
    save_path: Union[str, Path],
    figsize: Tuple[int, int] = (14, 6),
    title: Optional[str] = None,
) -> Path:
    """
    Render a merged grid to a PNG.

    Args:
        path: Grid file to plot
        save_path: Where to write the figure
        figsize: Figure size (width, height) in inches
        title: Figure title. None = file name

    Returns:
        Path of the written figure

    Raises:
        GridFileError: If the grid cannot be read
        OutputCreateError: If the figure cannot be written
    """
    grid = GridFile.open(path)
    header = grid.header
    rows = [grid.read_row(r) for r in range(header.height)]
    grid.close()

    z = np.vstack([r[0] for r in rows]).astype(np.float64)
    status = np.vstack([r[1] for r in rows])
    z[status == 0] = np.nan

    b = header.bounds
    extent = [b.wlon, b.wlon + header.width * header.lon_grid_size_degrees,
              b.slat, b.slat + header.height * header.lat_grid_size_degrees]

    fig, (ax_z, ax_s) = plt.subplots(1, 2, figsize=figsize)

    im = ax_z.imshow(z, origin='lower', extent=extent, cmap='viridis', aspect='auto')
    ax_z.set_title('Elevation / depth')
    ax_z.set_xlabel('Longitude')
    ax_z.set_ylabel('Latitude')
    cbar = plt.colorbar(im, ax=ax_z, shrink=0.8)
    cbar.set_label('z (m)')

    cmap = ListedColormap(STATUS_COLORS)
    ax_s.imshow(status_classes(status), origin='lower', extent=extent,
                cmap=cmap, vmin=-0.5, vmax=3.5, aspect='auto', interpolation='nearest')
    ax_s.set_title('Cell status')
    ax_s.set_xlabel('Longitude')
    handles = [plt.Rectangle((0, 0), 1, 1, color=c) for c in STATUS_COLORS]
    ax_s.legend(handles, STATUS_LABELS, loc='upper right', fontsize=8)

    fig.suptitle(title or Path(path).name)
    plt.tight_layout()

    save_path = Path(save_path)
    try:
        save_path.parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
    except OSError as e:
        raise OutputCreateError(f"Cannot write preview {save_path}: {e}") from e
    finally:
        plt.close(fig)

    logger.info(f"Saved preview: {save_path}")
    return save_path
