"""Deadline queue for delayed background tasks (job sweeps).

Callbacks are held in a heap ordered by deadline and fired by ``run_due``.
A daemon thread calls ``run_due`` periodically in production; tests inject a
clock and call ``run_due`` directly instead of sleeping.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledTask:
    deadline: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    label: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)


class DeadlineScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._heap: List[ScheduledTask] = []
        self._lock = threading.Lock()
        self._counter = itertools.count()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def now(self) -> float:
        return self._clock()

    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> ScheduledTask:
        """Run ``callback`` once ``delay`` seconds have elapsed from now."""
        task = ScheduledTask(
            deadline=self._clock() + max(0.0, delay),
            seq=next(self._counter),
            callback=callback,
            label=label,
        )
        with self._lock:
            heapq.heappush(self._heap, task)
        logger.debug(f"Scheduled {label or 'task'} in {delay:.0f}s")
        return task

    def cancel(self, task: ScheduledTask) -> None:
        task.cancelled = True

    def pending(self) -> int:
        with self._lock:
            return sum(1 for t in self._heap if not t.cancelled)

    def run_due(self, now: Optional[float] = None) -> int:
        """Fire every task whose deadline has passed. Returns how many ran."""
        if now is None:
            now = self._clock()

        due: List[ScheduledTask] = []
        with self._lock:
            while self._heap and self._heap[0].deadline <= now:
                due.append(heapq.heappop(self._heap))

        ran = 0
        for task in due:
            if task.cancelled:
                continue
            try:
                task.callback()
                ran += 1
            except Exception as e:
                logger.exception(f"Scheduled task {task.label or task.seq} failed: {e}")
        return ran

    def start(self, interval: float = 5.0) -> None:
        """Start the background ticker thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(interval,),
            daemon=True,
            name="relay-sweep-scheduler",
        )
        self._thread.start()
        logger.info(f"Sweep scheduler started (interval={interval}s)")

    def stop(self) -> None:
        self._stop.set()

    def _loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.run_due()
