from __future__ import annotations
from typing import Callable, List
import heapq
import itertools
import logging

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle returned by Scheduler.schedule."""

    __slots__ = ("due_ms", "seq", "callback", "generation", "guarded", "label")

    def __init__(self, due_ms: float, seq: int, callback: Callable[[], None],
                 generation: int, guarded: bool, label: str):
        self.due_ms = due_ms
        self.seq = seq
        self.callback = callback
        self.generation = generation
        self.guarded = guarded
        self.label = label

    def __lt__(self, other: "ScheduledCall") -> bool:
        return (self.due_ms, self.seq) < (other.due_ms, other.seq)


class Scheduler:
    """
    Cooperative one-shot timer queue driven by advance(dt_ms).

    Guarded calls remember the generation they were scheduled under; once
    bump_generation() runs they are dropped when they come due. Calls that come
    due in the same advance fire in (due time, scheduling order).
    """

    def __init__(self):
        self.now_ms: float = 0.0
        self.generation: int = 0
        self._queue: List[ScheduledCall] = []
        self._seq = itertools.count()

    def schedule(self, delay_ms: float, callback: Callable[[], None], guarded: bool = True,
                 label: str = "") -> ScheduledCall:
        call = ScheduledCall(self.now_ms + max(0.0, float(delay_ms)), next(self._seq), callback,
                             self.generation, guarded, label or getattr(callback, "__name__", "callback"))
        heapq.heappush(self._queue, call)
        return call

    def bump_generation(self) -> int:
        self.generation += 1
        logger.debug(f"Scheduler generation -> {self.generation}")
        return self.generation

    def pending(self) -> int:
        return len(self._queue)

    def advance(self, dt_ms: float) -> int:
        """
        Move the clock forward and run every call that came due.
        Callbacks may schedule further calls; those fire in the same advance
        when their due time is already reached.

        Returns:
            int: number of callbacks actually run.
        """
        self.now_ms += max(0.0, float(dt_ms))
        fired = 0
        while self._queue and self._queue[0].due_ms <= self.now_ms:
            call = heapq.heappop(self._queue)
            if call.guarded and call.generation != self.generation:
                logger.debug(f"Dropping stale callback '{call.label}' (generation {call.generation} "
                             f"!= {self.generation})")
                continue
            try:
                call.callback()
            except Exception:
                logger.exception(f"Scheduled callback '{call.label}' failed")
            fired += 1
        return fired
