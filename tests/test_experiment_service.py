"""
Unit Tests for Experiment Service

Tests sticky variant assignment, persistence and metric aggregation.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import random
import pytest
from unittest.mock import patch

from config.settings import settings
from motivation.nudge_types import EXPERIMENT_VARIANTS, Experiment
from services.experiment_service import ExperimentService


@pytest.fixture
def experiments(store, scheduler):
    return ExperimentService(store, scheduler, rng=random.Random(7))


# ============================================================================
# Assignment Tests
# ============================================================================

@pytest.mark.parametrize("experiment", list(Experiment))
def test_variant_is_sticky(experiments, experiment):
    first = experiments.get_variant(experiment.value)

    assert first in EXPERIMENT_VARIANTS[experiment]
    assert all(experiments.get_variant(experiment.value) == first for _ in range(20))


def test_unknown_experiment_returns_none(experiments):
    assert experiments.get_variant("button_color") is None


def test_disabled_experiments_return_none(experiments, monkeypatch):
    monkeypatch.setattr(settings, "EXPERIMENTS_ENABLED", False)

    assert experiments.get_variant("message_tone") is None


@pytest.mark.asyncio
async def test_assignment_persists_across_restart(experiments, store, scheduler):
    variant = experiments.get_variant("message_tone")
    await experiments.flush()

    for seed in range(5):
        restored = ExperimentService(store, scheduler, rng=random.Random(seed))
        await restored.initialize()
        assert restored.get_variant("message_tone") == variant


def test_current_experiments_lists_all(experiments):
    current = experiments.get_current_experiments()

    assert set(current) == {"message_tone", "notification_frequency", "intervention_timing"}
    assert all(v is not None for v in current.values())


# ============================================================================
# Metric Tests
# ============================================================================

def test_track_metric_aggregates_per_variant(experiments):
    variant = experiments.get_variant("intervention_timing")
    experiments.track_metric("intervention_timing", "engagement_score", 0.4)
    experiments.track_metric("intervention_timing", "engagement_score", 0.8)

    aggregate = experiments.state.metrics["intervention_timing"][variant]["engagement_score"]
    assert aggregate.count == 2
    assert aggregate.sum == pytest.approx(1.2)


def test_experiment_results(experiments):
    variant = experiments.get_variant("notification_frequency")
    experiments.track_metric("notification_frequency", "notification_sent", 1)
    experiments.track_metric("notification_frequency", "notification_sent", 1)
    experiments.track_metric("notification_frequency", "task_completed", 1)

    results = experiments.get_experiment_results("notification_frequency")

    assert results[variant]["sample_size"] == 3
    assert results[variant]["completion_rate"] == pytest.approx(0.5)
    assert results[variant]["metrics"]["task_completed"] == 1.0


def test_results_empty_without_metrics(experiments):
    assert experiments.get_experiment_results("message_tone") == {}


def test_track_metric_unknown_experiment_is_ignored(experiments):
    experiments.track_metric("button_color", "clicks", 1)

    assert experiments.state.metrics == {}


def test_track_metric_never_raises(experiments):
    with patch.object(experiments, "get_variant", side_effect=RuntimeError("broken")):
        experiments.track_metric("message_tone", "task_completed", 1)


@pytest.mark.asyncio
async def test_metrics_persist(experiments, store, scheduler, clock):
    experiments.track_metric("message_tone", "task_completed", 1)
    clock.advance(1)
    await scheduler.run_due()

    restored = ExperimentService(store, scheduler)
    await restored.initialize()

    variant = restored.get_variant("message_tone")
    assert restored.state.metrics["message_tone"][variant]["task_completed"].count == 1
