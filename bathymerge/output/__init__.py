"""Output writing and header finalization."""

from .writer import ZRange, finalize_output, write_populated

__all__ = ['ZRange', 'finalize_output', 'write_populated']
