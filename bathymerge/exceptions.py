"""
Exceptions raised by the grid merge pipeline.

Every fatal condition maps to one of these. Nothing is retried: the pipeline
cleans up and re-raises, and the CLI turns them into a non-zero exit status.
"""


class GridMergeError(Exception):
    """Base class for all fatal merge errors"""


class GridFileError(GridMergeError):
    """An input grid is missing, unreadable, or not a valid grid file"""


class OutputCreateError(GridMergeError):
    """The output grid file could not be created"""


class GridAllocationError(GridMergeError):
    """The in-memory merge grid or a working buffer could not be allocated"""


class EngineExhaustedError(GridMergeError):
    """The surface engine stopped returning rows before the inner region was filled"""
