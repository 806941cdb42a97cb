"""Progress reporting from a running job back to the controller."""

from __future__ import annotations

from typing import Callable, Optional

ProgressCallback = Callable[[int], None]

PROCESSING_START = 50
PROCESSING_SPAN = 50
# 100 is reserved for the Completed state.
PROCESSING_CEILING = 99


class ProgressReporter:
    """
    Map algorithm-internal progress (0-100) onto the job's Processing range.

    `p` becomes `50 + 0.5 * p`. Values that would move progress backwards are
    dropped so the sink only ever sees a non-decreasing sequence.
    """

    def __init__(
        self,
        sink: ProgressCallback,
        start: int = PROCESSING_START,
        span: int = PROCESSING_SPAN,
        ceiling: int = PROCESSING_CEILING,
    ):
        self._sink = sink
        self._start = start
        self._span = span
        self._ceiling = ceiling
        self._last: Optional[int] = None

    @property
    def last(self) -> Optional[int]:
        return self._last

    def scale(self, percent: float) -> int:
        percent = min(max(float(percent), 0.0), 100.0)
        return min(int(self._start + self._span * percent / 100.0), self._ceiling)

    def __call__(self, percent: float) -> None:
        value = self.scale(percent)
        if self._last is not None and value < self._last:
            return
        self._last = value
        self._sink(value)
