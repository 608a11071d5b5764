"""
Progress reporting for long running stages.

Stages report through an optional observer, `callback(stage, percent)`. The
merge and regrid code never prints; the CLI plugs in LoggingProgress.
"""

import logging
from typing import Callable, Optional

from .grids.header import nint

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class ProgressTracker:
    """Turns (done, total) counts into percent updates, skipping repeats"""

    def __init__(self, callback: Optional[ProgressCallback], stage: str):
        self.callback = callback
        self.stage = stage
        self._last = -1

    def update(self, done: int, total: int):
        if self.callback is None or total <= 0:
            return
        percent = nint(done / total * 100.0)
        if percent != self._last:
            self._last = percent
            self.callback(self.stage, percent)

    def finish(self):
        if self.callback is not None and self._last != 100:
            self._last = 100
            self.callback(self.stage, 100)


class LoggingProgress:
    """Observer that logs each stage every `step` percent"""

    def __init__(self, step: int = 10, level: int = logging.INFO):
        self.step = max(1, step)
        self.level = level
        self._reported = {}

    def __call__(self, stage: str, percent: int):
        bucket = percent // self.step
        if self._reported.get(stage) == bucket:
            return
        self._reported[stage] = bucket
        logger.log(self.level, f"{stage} - {percent:03d}% complete")
