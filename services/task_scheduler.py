"""
Delayed Task Scheduler

Explicit pending-task scheduling with cancel/flush primitives. Every timer
in the nudge engine (debounced writes, productivity-window recompute) goes
through a TaskScheduler, so tests can drive time with a ManualClock and
call run_due() instead of sleeping.
"""

import asyncio
import heapq
import inspect
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class Clock(ABC):
    """Wall-clock source (epoch seconds)"""

    @abstractmethod
    def now(self) -> float:
        pass


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    """Virtual clock for tests"""

    def __init__(self, start: Optional[float] = None):
        self._now = start if start is not None else time.time()

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float):
        self._now += seconds

    def set(self, timestamp: float):
        self._now = timestamp


@dataclass(order=True)
class PendingTask:
    due_at: float
    seq: int
    callback: Callable[[], Any] = field(compare=False)
    name: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)
    done: bool = field(default=False, compare=False)

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.done


class TaskScheduler:
    """Cooperative timer wheel driven by run_due()"""

    def __init__(self, clock: Clock, poll_interval: float = 0.25):
        self.clock = clock
        self.poll_interval = poll_interval
        self._heap: List[PendingTask] = []
        self._counter = itertools.count()
        self.running = False
        self.task: Optional[asyncio.Task] = None

    def schedule(self, delay: float, callback: Callable[[], Any], name: str = "") -> PendingTask:
        """Schedule callback to run once delay seconds from now"""
        pending = PendingTask(
            due_at=self.clock.now() + max(0.0, delay),
            seq=next(self._counter),
            callback=callback,
            name=name,
        )
        heapq.heappush(self._heap, pending)
        return pending

    def cancel(self, pending: Optional[PendingTask]):
        if pending:
            pending.cancel()

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._heap if t.active)

    @property
    def next_due_at(self) -> Optional[float]:
        self._drop_inactive_head()
        return self._heap[0].due_at if self._heap else None

    def _drop_inactive_head(self):
        while self._heap and not self._heap[0].active:
            heapq.heappop(self._heap)

    async def run_task(self, pending: PendingTask):
        """Run a single task now, regardless of its due time"""
        if not pending.active:
            return
        pending.done = True
        try:
            result = pending.callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Scheduled task '{pending.name}' failed: {e}", exc_info=True)

    async def run_due(self) -> int:
        """Run every task whose due time has passed. Returns the number run."""
        ran = 0
        now = self.clock.now()
        while True:
            self._drop_inactive_head()
            if not self._heap or self._heap[0].due_at > now:
                break
            pending = heapq.heappop(self._heap)
            await self.run_task(pending)
            ran += 1
        return ran

    async def start(self):
        """Start the background driver"""
        if self.running:
            logger.warning("Task scheduler already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._drive_loop())
        logger.info(f"⏱️ Task scheduler started (poll: {self.poll_interval}s)")

    async def stop(self):
        """Stop the background driver. Pending tasks are kept."""
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("⏹️ Task scheduler stopped")

    async def _drive_loop(self):
        while self.running:
            try:
                await self.run_due()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}")
                await asyncio.sleep(self.poll_interval)


class Debouncer:
    """
    Coalesces rapid calls into one.

    Each call restarts the quiet period and replaces the arguments of any
    pending call (last write wins). flush() runs the pending call right away,
    cancel() drops it.
    """

    def __init__(self, scheduler: TaskScheduler, wait: float, func: Callable[..., Any], name: str = ""):
        self.scheduler = scheduler
        self.wait = wait
        self.func = func
        self.name = name or getattr(func, "__name__", "debounced")
        self._pending: Optional[PendingTask] = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    def __call__(self, *args, **kwargs):
        self.scheduler.cancel(self._pending)
        self._args = args
        self._kwargs = kwargs
        self._pending = self.scheduler.schedule(self.wait, self._fire, name=self.name)

    @property
    def pending(self) -> bool:
        return self._pending is not None and self._pending.active

    async def _fire(self):
        args, kwargs = self._args, self._kwargs
        self._pending = None
        self._args, self._kwargs = (), {}
        result = self.func(*args, **kwargs)
        if inspect.isawaitable(result):
            await result

    async def flush(self):
        """Run the pending call immediately, if any"""
        if not self.pending:
            return
        await self.scheduler.run_task(self._pending)

    def cancel(self):
        self.scheduler.cancel(self._pending)
        self._pending = None
        self._args, self._kwargs = (), {}
