"""
Unit Tests for Behavioral Model Storage

Tests debounced writes, retention, validation and storage failure handling.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
import pytest
from unittest.mock import AsyncMock

from models.behavioral import (
    BehavioralModel,
    Interaction,
    PersonalizedThresholds,
    UserOutcome,
)
from services.behavioral_storage import BehavioralModelStore, DAY_SECONDS
from services.key_value_store import BEHAVIORAL_MODELS_KEY, InMemoryKeyValueStore


def make_model(now: float, interactions: int = 0, timestamp: float = None) -> BehavioralModel:
    return BehavioralModel(
        message_effectiveness={"motivational": 0.6},
        interactions=[
            Interaction(
                timestamp=timestamp if timestamp is not None else now,
                message_type="motivational",
                outcome=UserOutcome(engaged=True),
                signal=0.2,
            )
            for _ in range(interactions)
        ],
        personalized_thresholds=PersonalizedThresholds(
            procrastination_high=5, procrastination_medium=2, activity_timeout=2
        ),
        created_at=now,
    )


@pytest.fixture
def model_store(store, scheduler):
    return BehavioralModelStore(store, scheduler)


# ============================================================================
# Debounced Write Tests
# ============================================================================

@pytest.mark.asyncio
async def test_save_is_visible_before_flush(model_store, store, clock):
    model_store.save_user_model("alice", make_model(clock.now()))

    loaded = model_store.load_user_model("alice")

    assert loaded is not None
    assert loaded.message_effectiveness["motivational"] == 0.6
    assert BEHAVIORAL_MODELS_KEY not in store.data
    assert model_store.has_pending_writes


@pytest.mark.asyncio
async def test_rapid_saves_coalesce_into_one_write(model_store, store, scheduler, clock):
    for value in (0.6, 0.7, 0.8):
        model = make_model(clock.now())
        model.message_effectiveness["motivational"] = value
        model_store.save_user_model("alice", model)

    clock.advance(1)
    await scheduler.run_due()

    assert store.write_count == 1
    saved = json.loads(store.data[BEHAVIORAL_MODELS_KEY])
    assert saved["alice"]["message_effectiveness"]["motivational"] == 0.8
    assert not model_store.has_pending_writes


@pytest.mark.asyncio
async def test_flush_writes_pending_models(model_store, store, clock):
    model_store.save_user_model("alice", make_model(clock.now()))

    await model_store.flush()

    assert "alice" in json.loads(store.data[BEHAVIORAL_MODELS_KEY])


@pytest.mark.asyncio
async def test_loaded_model_is_a_copy(model_store, clock):
    model_store.save_user_model("alice", make_model(clock.now()))

    loaded = model_store.load_user_model("alice")
    loaded.message_effectiveness["motivational"] = 0.0

    assert model_store.load_user_model("alice").message_effectiveness["motivational"] == 0.6


# ============================================================================
# Retention Tests
# ============================================================================

@pytest.mark.asyncio
async def test_interactions_capped_on_save(model_store, clock):
    model_store.save_user_model("alice", make_model(clock.now(), interactions=250))

    assert len(model_store.load_user_model("alice").interactions) == 200


@pytest.mark.asyncio
async def test_old_interactions_pruned_on_load(model_store, clock):
    old = clock.now() - 31 * DAY_SECONDS
    model = make_model(clock.now(), interactions=3, timestamp=old)
    model.interactions.append(Interaction(
        timestamp=clock.now(), message_type="urgent", outcome=UserOutcome(completed=True), signal=0.4
    ))
    model_store.save_user_model("alice", model)
    await model_store.flush()

    loaded = model_store.load_user_model("alice")

    assert len(loaded.interactions) == 1
    assert loaded.interactions[0].message_type == "urgent"


@pytest.mark.asyncio
async def test_stale_models_trimmed_on_flush(scheduler, clock):
    stale = make_model(clock.now()).model_dump(mode="json")
    stale["model_metrics"]["last_updated"] = clock.now() - 100 * DAY_SECONDS
    store = InMemoryKeyValueStore({BEHAVIORAL_MODELS_KEY: json.dumps({"bob": stale})})
    model_store = BehavioralModelStore(store, scheduler)
    await model_store.initialize()

    model_store.save_user_model("alice", make_model(clock.now()))
    await model_store.flush()

    saved = json.loads(store.data[BEHAVIORAL_MODELS_KEY])
    assert set(saved) == {"alice"}


# ============================================================================
# Validation and Failure Tests
# ============================================================================

@pytest.mark.asyncio
async def test_invalid_stored_model_loads_as_none(scheduler):
    store = InMemoryKeyValueStore({BEHAVIORAL_MODELS_KEY: json.dumps({"alice": {"bogus": 1}})})
    model_store = BehavioralModelStore(store, scheduler)
    await model_store.initialize()

    assert model_store.load_user_model("alice") is None


@pytest.mark.asyncio
async def test_corrupted_blob_starts_empty(scheduler):
    store = InMemoryKeyValueStore({BEHAVIORAL_MODELS_KEY: "{not json"})
    model_store = BehavioralModelStore(store, scheduler)
    await model_store.initialize()

    assert model_store.get_storage_stats()["total_users"] == 0


@pytest.mark.asyncio
async def test_failed_write_keeps_pending_models(model_store, store, clock):
    store.set = AsyncMock(side_effect=RuntimeError("quota exceeded"))
    model_store.save_user_model("alice", make_model(clock.now()))

    await model_store.flush()

    assert model_store.has_pending_writes
    assert model_store.load_user_model("alice") is not None


@pytest.mark.asyncio
async def test_unreadable_store_starts_empty(scheduler):
    store = InMemoryKeyValueStore()
    store.get = AsyncMock(side_effect=RuntimeError("connection refused"))
    model_store = BehavioralModelStore(store, scheduler)

    await model_store.initialize()

    assert model_store.load_user_model("alice") is None


@pytest.mark.asyncio
async def test_clear_user_model(model_store, store, clock):
    model_store.save_user_model("alice", make_model(clock.now()))
    await model_store.flush()

    await model_store.clear_user_model("alice")

    assert model_store.load_user_model("alice") is None
    assert json.loads(store.data[BEHAVIORAL_MODELS_KEY]) == {}


@pytest.mark.asyncio
async def test_reload_keeps_unflushed_local_writes(model_store, store, clock):
    model_store.save_user_model("alice", make_model(clock.now()))
    other = make_model(clock.now()).model_dump(mode="json")
    store.data[BEHAVIORAL_MODELS_KEY] = json.dumps({"bob": other})

    await model_store.reload()

    assert model_store.load_user_model("alice") is not None
    assert model_store.load_user_model("bob") is not None


@pytest.mark.asyncio
async def test_storage_stats(model_store, clock):
    model_store.save_user_model("alice", make_model(clock.now(), interactions=4))
    model_store.save_user_model("bob", make_model(clock.now(), interactions=2))

    stats = model_store.get_storage_stats()

    assert stats == {"total_users": 2, "total_interactions": 6, "pending_writes": 2}
