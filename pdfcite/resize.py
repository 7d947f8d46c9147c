"""Container resize monitoring with debounce."""

import asyncio
from datetime import timedelta
from typing import Optional, Tuple

from pdfcite.logging import get_logger

logger = get_logger(__name__)


class ResizeMonitor:
    """
    Debounce container size changes and re-enter the pipeline when the
    settled size differs from the last committed one by more than
    `threshold` pixels on either axis.

    `observe` must be called from the event loop thread. The first settled
    size only establishes the baseline.
    """

    def __init__(
        self,
        pipeline,
        debounce: timedelta = timedelta(milliseconds=300),
        threshold: float = 10.0,
    ):
        self.pipeline = pipeline
        self.debounce = debounce
        self.threshold = threshold
        self.last_size: Optional[Tuple[float, float]] = None
        self.last_task: Optional[asyncio.Task] = None
        self._latest: Optional[Tuple[float, float]] = None
        self._pending: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def reset(self, width: float, height: float) -> None:
        """Set the baseline size and drop any pending resize."""
        self.cancel()
        self.last_size = (width, height)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def observe(self, width: float, height: float) -> None:
        self._latest = (width, height)
        self.cancel()
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.debounce.total_seconds(), self._settle)

    def _settle(self) -> None:
        self._pending = None
        size = self._latest
        if size is None:
            return
        if self.last_size is None:
            self.last_size = size
            return

        dw = abs(size[0] - self.last_size[0])
        dh = abs(size[1] - self.last_size[1])
        if max(dw, dh) <= self.threshold:
            logger.debug("resize_below_threshold", dw=dw, dh=dh)
            return

        self.last_size = size
        task = self.pipeline.on_container_resized(*size)
        if task is not None:
            self.last_task = task
