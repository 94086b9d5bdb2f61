"""Shared fixtures for nudge engine tests"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import random
from datetime import datetime
from typing import List, Tuple

import pytest
import pytest_asyncio

from agents.engine import create_nudge_engine
from services.delivery_channel import DeliveryChannel
from services.key_value_store import InMemoryKeyValueStore
from services.task_scheduler import ManualClock, TaskScheduler

# Monday, mid-morning local time
MONDAY_10AM = datetime(2026, 10, 19, 10, 0).timestamp()


class FakeDelivery(DeliveryChannel):
    """Records deliveries; result and error are configurable per test"""

    def __init__(self, result: bool = True):
        self.result = result
        self.error = None
        self.calls: List[Tuple[str, str, float]] = []

    async def deliver(self, title: str, body: str, scheduled_at: float) -> bool:
        self.calls.append((title, body, scheduled_at))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    return ManualClock(MONDAY_10AM)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def scheduler(clock):
    return TaskScheduler(clock, poll_interval=0.01)


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest_asyncio.fixture
async def engine(store, delivery, clock):
    """Fully wired engine on an in-memory store (loops not started)"""
    nudge_engine = create_nudge_engine(store, delivery, clock=clock, rng=random.Random(42))
    await nudge_engine.initialize()
    return nudge_engine
