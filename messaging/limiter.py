"""
Segment Pacer for outbound reply segments.

Runs an ordered list of send tasks through a leaky bucket (aiolimiter) so
that consecutive sends start a fixed interval apart. A failing task is
recorded and the remaining tasks still run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from aiolimiter import AsyncLimiter

logger = logging.getLogger(__name__)

SendTask = Callable[[], Awaitable[Any]]


@dataclass
class SegmentOutcome:
    """Result of one paced task."""

    index: int
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SegmentPacer:
    """
    Executes send tasks one at a time with an inter-task interval.

    A fresh limiter is used for every run, so the first task of a run is
    never delayed.
    """

    def __init__(self, interval: float = 1.0):
        self.interval = interval

    def _new_limiter(self) -> Optional[AsyncLimiter]:
        if self.interval <= 0:
            return None
        return AsyncLimiter(1, self.interval)

    async def run(self, tasks: Sequence[Tuple[int, SendTask]]) -> List[SegmentOutcome]:
        """
        Run (index, task) pairs in the given order.

        Returns:
            One SegmentOutcome per task, in execution order
        """
        limiter = self._new_limiter()
        outcomes: List[SegmentOutcome] = []

        for index, func in tasks:
            if limiter is not None:
                await limiter.acquire()
            try:
                result = await func()
                outcomes.append(SegmentOutcome(index=index, result=result))
            except Exception as e:
                logger.error(f"Paced task {index} failed: {e}")
                outcomes.append(SegmentOutcome(index=index, error=e))

        return outcomes
