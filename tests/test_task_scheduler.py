"""
Unit Tests for Task Scheduler

Tests delayed scheduling, cancellation, error isolation and the debouncer.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from unittest.mock import MagicMock

from services.task_scheduler import Debouncer, ManualClock, TaskScheduler


# ============================================================================
# Scheduler Tests
# ============================================================================

@pytest.mark.asyncio
async def test_run_due_only_runs_due_tasks(scheduler, clock):
    calls = []
    scheduler.schedule(5, lambda: calls.append("early"), name="early")
    scheduler.schedule(10, lambda: calls.append("late"), name="late")

    clock.advance(6)
    ran = await scheduler.run_due()

    assert ran == 1
    assert calls == ["early"]
    assert scheduler.pending_count == 1


@pytest.mark.asyncio
async def test_tasks_run_in_due_order(scheduler, clock):
    calls = []
    scheduler.schedule(3, lambda: calls.append(3))
    scheduler.schedule(1, lambda: calls.append(1))
    scheduler.schedule(2, lambda: calls.append(2))

    clock.advance(5)
    await scheduler.run_due()

    assert calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_cancelled_task_never_runs(scheduler, clock):
    callback = MagicMock()
    pending = scheduler.schedule(1, callback)
    scheduler.cancel(pending)

    clock.advance(2)
    ran = await scheduler.run_due()

    assert ran == 0
    callback.assert_not_called()
    assert scheduler.next_due_at is None


@pytest.mark.asyncio
async def test_coroutine_callbacks_are_awaited(scheduler, clock):
    calls = []

    async def work():
        calls.append("done")

    scheduler.schedule(0, work)
    await scheduler.run_due()

    assert calls == ["done"]


@pytest.mark.asyncio
async def test_failing_task_does_not_stop_others(scheduler, clock):
    calls = []

    def boom():
        raise RuntimeError("boom")

    scheduler.schedule(1, boom, name="boom")
    scheduler.schedule(2, lambda: calls.append("after"))

    clock.advance(3)
    ran = await scheduler.run_due()

    assert ran == 2
    assert calls == ["after"]


def test_negative_delay_is_due_now():
    clock = ManualClock(1000.0)
    scheduler = TaskScheduler(clock)
    pending = scheduler.schedule(-5, lambda: None)

    assert pending.due_at == 1000.0


# ============================================================================
# Debouncer Tests
# ============================================================================

@pytest.mark.asyncio
async def test_debouncer_coalesces_calls_with_last_args(scheduler, clock):
    func = MagicMock()
    debounced = Debouncer(scheduler, 0.5, func)

    debounced(1)
    debounced(2)
    debounced(3)

    clock.advance(0.6)
    await scheduler.run_due()

    func.assert_called_once_with(3)
    assert not debounced.pending


@pytest.mark.asyncio
async def test_debouncer_restarts_quiet_period(scheduler, clock):
    func = MagicMock()
    debounced = Debouncer(scheduler, 0.5, func)

    debounced()
    clock.advance(0.4)
    debounced()
    clock.advance(0.4)
    await scheduler.run_due()
    func.assert_not_called()

    clock.advance(0.2)
    await scheduler.run_due()
    func.assert_called_once()


@pytest.mark.asyncio
async def test_debouncer_flush_runs_immediately(scheduler):
    func = MagicMock()
    debounced = Debouncer(scheduler, 10, func)

    debounced("now")
    await debounced.flush()

    func.assert_called_once_with("now")
    assert not debounced.pending
    assert await scheduler.run_due() == 0


@pytest.mark.asyncio
async def test_debouncer_flush_without_pending_is_noop(scheduler):
    func = MagicMock()
    debounced = Debouncer(scheduler, 10, func)

    await debounced.flush()

    func.assert_not_called()


@pytest.mark.asyncio
async def test_debouncer_cancel_drops_pending_call(scheduler, clock):
    func = MagicMock()
    debounced = Debouncer(scheduler, 0.5, func)

    debounced()
    debounced.cancel()
    clock.advance(1)
    await scheduler.run_due()

    func.assert_not_called()
