"""
Command line entry point.

Usage:
    bathymerge [-e] [-b SIZE] [-n] FILE1 FILE2 [FILE3...] [-o OUTPUT_FILE]
    python -m bathymerge -n file1.ch2 file2.ch2 -o file1_file2_merged.ch2
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import VERSION_BANNER
from .config import get_merge_config
from .exceptions import GridMergeError
from .pipeline import merge_grids
from .progress import LoggingProgress

logger = logging.getLogger(__name__)

EPILOG = """\
The first file name on the command line takes precedence over the second,
which takes precedence over the third, and so on.

Examples:

  bathymerge file1.ch2 file2.ch2
      Inserts file1.ch2 into file1__merged.ch2, then inserts file2.ch2 only
      where there is no data from file1.ch2.

  bathymerge -n file1.ch2 file2.ch2 -o file1_file2_merged.ch2
      Same, without regridding, written to file1_file2_merged.ch2.

  bathymerge -e file1.ch2 file2.ch2
      Output covers both files at file1.ch2's spacing. Real data from
      file2.ch2 is inserted wherever there is no real data from file1.ch2
      within four grid cells.

  bathymerge -b 10 file1.ch2 file2.ch2 file3.ch2
      Same as above with a ten cell buffer.
"""


def build_parser() -> argparse.ArgumentParser:
    config = get_merge_config()
    parser = argparse.ArgumentParser(
        prog='bathymerge',
        description=(
            f"Merge {config.min_inputs} to {config.max_inputs} CHRTR2 grids into a single grid file."
        ),
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        'inputs', nargs='+', metavar='CHRTR2_FILE',
        help='Input grids, highest priority first',
    )
    parser.add_argument(
        '-e', '--exclude', action='store_true',
        help='Only insert real data away from higher priority real data',
    )
    parser.add_argument(
        '-b', '--buffer', type=int, default=None, metavar='SIZE',
        help=f'Exclude buffer zone in grid cells (implies -e, default {config.buffer_size})',
    )
    parser.add_argument(
        '-n', '--no-regrid', action='store_true',
        help='Do not regrid the output file',
    )
    parser.add_argument(
        '-o', '--output', default=None, metavar='OUTPUT_FILE',
        help=f'Output file name (default FILE1{config.output_suffix}{config.extension})',
    )
    parser.add_argument(
        '--preview', default=None, metavar='PNG',
        help='Also write a quick-look plot of the merged grid',
    )
    parser.add_argument(
        '--log-level', default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity (default INFO)',
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_merge_config()
    if not config.min_inputs <= len(args.inputs) <= config.max_inputs:
        parser.error(
            f"between {config.min_inputs} and {config.max_inputs} input files are required"
        )
    if args.buffer is not None and args.buffer < 0:
        parser.error("buffer SIZE must be zero or more")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    logger.info(VERSION_BANNER)

    try:
        result = merge_grids(
            args.inputs,
            output_path=args.output,
            exclude=args.exclude,
            buffer_size=args.buffer,
            regrid_output=not args.no_regrid,
            config=config,
            progress=LoggingProgress(),
        )
        if args.preview:
            from .viz import plot_merged_grid
            plot_merged_grid(result.output_path, args.preview)
    except GridMergeError as e:
        logger.error(str(e))
        return 1

    logger.info(f"{parser.prog} complete: {result.output_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
