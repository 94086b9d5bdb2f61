"""
Unit Tests for Pattern Tracker

Tests engagement and streak tracking, quiet hours, delay selection,
predictive insight and behavior analysis.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
import pytest
from datetime import datetime

from analytics.pattern_tracker import PatternTracker, DAY_SECONDS, HOUR_SECONDS
from models.behavioral import PersonalizedThresholds
from motivation.nudge_types import InterventionTiming, NotificationPriority, ProcrastinationRisk
from services.key_value_store import COMPLETION_PATTERN_KEY, InMemoryKeyValueStore

DEFAULT_THRESHOLDS = PersonalizedThresholds(
    procrastination_high=5, procrastination_medium=2, activity_timeout=2
)


def at(month: int, day: int, hour: int, minute: int = 0) -> float:
    return datetime(2026, month, day, hour, minute).timestamp()


@pytest.fixture
def tracker(store, scheduler):
    return PatternTracker(store, scheduler)


def record_at(tracker, clock, timestamps):
    for timestamp in timestamps:
        clock.set(timestamp)
        tracker.record_completion(NotificationPriority.MEDIUM)


# ============================================================================
# Activity and Completion Tests
# ============================================================================

def test_activity_raises_engagement(tracker):
    tracker.update_activity()

    assert tracker.get_engagement() == pytest.approx(0.52)


def test_engagement_never_exceeds_one(tracker):
    for _ in range(100):
        tracker.update_activity()
        tracker.record_completion()

    assert tracker.get_engagement() <= 1.0
    assert tracker.pattern.engagement_score == 1.0


def test_engagement_decays_toward_baseline(tracker, clock):
    tracker.record_completion()
    assert tracker.get_engagement() == pytest.approx(0.6)

    clock.advance(6 * HOUR_SECONDS)

    assert tracker.get_engagement() == pytest.approx(0.55)


def test_streak_increments_within_gap(tracker, clock):
    tracker.record_completion()
    clock.advance(DAY_SECONDS)
    tracker.record_completion()

    assert tracker.pattern.completion_streak == 2


def test_streak_resets_after_long_gap(tracker, clock):
    tracker.record_completion()
    tracker.record_completion()
    clock.advance(2 * DAY_SECONDS)
    tracker.record_completion()

    assert tracker.pattern.completion_streak == 1


def test_completion_history_is_capped(tracker, clock):
    for _ in range(60):
        tracker.record_completion()
        clock.advance(60)

    assert len(tracker.pattern.completion_history) == 50


@pytest.mark.asyncio
async def test_productivity_windows_need_five_samples(tracker, scheduler, clock):
    for _ in range(4):
        tracker.record_completion()

    clock.advance(3)
    await scheduler.run_due()

    assert tracker.pattern.productivity_windows == []


@pytest.mark.asyncio
async def test_productivity_windows_recomputed_after_quiet_period(tracker, scheduler, clock):
    tracker.record_completion()
    tracker.record_completion()
    for _ in range(3):
        clock.advance(HOUR_SECONDS)
        tracker.record_completion()
    assert tracker.pattern.productivity_windows == []

    clock.advance(3)
    await scheduler.run_due()

    windows = tracker.pattern.productivity_windows
    assert [(w.hour, w.completions) for w in windows] == [(10, 2), (11, 1), (12, 1)]
    assert windows[0].score == 1.0
    assert windows[1].score == pytest.approx(0.5)


# ============================================================================
# Quiet Time and Delay Tests
# ============================================================================

@pytest.mark.parametrize("hour,expected", [
    (22, True),
    (23, True),
    (3, True),
    (6, True),
    (7, False),
    (10, False),
    (21, False),
])
def test_quiet_time_wraps_midnight(tracker, clock, hour, expected):
    clock.set(at(10, 19, hour))

    assert tracker.is_quiet_time() is expected


def test_quiet_time_delay_is_fixed(tracker, clock):
    clock.set(at(10, 19, 23))

    assert tracker.get_optimal_delay("high_frequency") == 8 * HOUR_SECONDS


def test_recent_activity_triples_base_delay(tracker):
    assert tracker.get_optimal_delay() == 900
    assert tracker.get_optimal_delay("high_frequency") == 540
    assert tracker.get_optimal_delay("low_frequency") == 1800


def test_moderate_absence_doubles_base_delay(tracker, clock):
    clock.advance(10 * 60)

    assert tracker.get_optimal_delay("adaptive") == 600


def test_long_absence_uses_base_delay(tracker, clock):
    clock.advance(40 * 60)

    assert tracker.get_optimal_delay() == 300


# ============================================================================
# Predictive Insight Tests
# ============================================================================

WEEKDAY_NINE_AM = [at(10, d, 9, 15) for d in (8, 9, 12, 13, 14, 15, 16)]


def test_insufficient_data_returns_default_insight(tracker):
    tracker.record_completion()
    tracker.record_completion()

    insight = tracker.get_predictive_insight()

    assert insight.optimal_hour == 10
    assert insight.confidence == 0.3


def test_weekday_pattern_predicts_nine_am(tracker, clock):
    record_at(tracker, clock, WEEKDAY_NINE_AM)
    clock.set(at(10, 19, 10))

    insight = tracker.get_predictive_insight()

    assert insight.optimal_hour == 9
    assert insight.confidence > 0.5
    assert insight.confidence == pytest.approx(0.855)
    assert insight.sample_size == 7


def test_mixed_weekday_history_predicts_dominant_hour(tracker, clock):
    nine_am = [at(10, d, 9) for d in (5, 6, 7, 8, 9, 12)]
    afternoons = [at(10, 13, 14), at(10, 14, 15), at(10, 15, 16), at(10, 16, 17)]
    record_at(tracker, clock, nine_am + afternoons)
    clock.set(at(10, 19, 10))

    insight = tracker.get_predictive_insight()

    assert insight.optimal_hour == 9
    assert insight.confidence > 0.5


def test_weekend_falls_back_to_full_history(tracker, clock):
    record_at(tracker, clock, WEEKDAY_NINE_AM)
    clock.set(at(10, 24, 10))

    insight = tracker.get_predictive_insight()

    assert insight.optimal_hour == 9
    assert insight.confidence == pytest.approx(0.805)


def test_single_outlier_mode_prefers_runner_up(tracker, clock):
    weekdays = (5, 6, 7, 8, 9, 12, 13, 14, 15, 16)
    record_at(tracker, clock, [at(10, d, 8 + i) for i, d in enumerate(weekdays)])
    clock.set(at(10, 19, 10))

    insight = tracker.get_predictive_insight()

    assert insight.optimal_hour == 9


def test_confident_prediction_sets_delay(tracker, clock):
    record_at(tracker, clock, WEEKDAY_NINE_AM)
    clock.set(at(10, 19, 7, 30))

    assert tracker.get_optimal_delay() == 2 * HOUR_SECONDS


def test_current_predicted_hour_sends_now(tracker, clock):
    record_at(tracker, clock, WEEKDAY_NINE_AM)
    clock.set(at(10, 19, 9, 30))

    assert tracker.get_optimal_delay() == 0


def test_predicted_hour_already_passed_falls_through(tracker, clock):
    record_at(tracker, clock, WEEKDAY_NINE_AM)
    clock.set(at(10, 19, 10))

    assert tracker.get_optimal_delay() == 300


# ============================================================================
# Behavior Analysis Tests
# ============================================================================

def test_fresh_session_is_low_risk(tracker):
    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.procrastination_risk == ProcrastinationRisk.LOW
    assert insight.optimal_intervention_timing == InterventionTiming.GENTLE
    assert insight.days_since_completion == 0
    assert insight.completion_probability == pytest.approx(0.5)


def test_six_days_without_completion_is_high_risk(tracker, clock):
    tracker.record_completion()
    clock.advance(6 * DAY_SECONDS)

    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.procrastination_risk == ProcrastinationRisk.HIGH
    assert insight.days_since_completion == pytest.approx(6)


def test_three_days_without_completion_is_medium_risk(tracker, clock):
    tracker.record_completion()
    clock.advance(3 * DAY_SECONDS)

    assert tracker.analyze_behavior(DEFAULT_THRESHOLDS).procrastination_risk == ProcrastinationRisk.MEDIUM


def test_inactivity_beyond_timeout_is_medium_risk(tracker, clock):
    clock.advance(3 * HOUR_SECONDS)

    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.procrastination_risk == ProcrastinationRisk.MEDIUM
    assert insight.hours_since_activity == pytest.approx(3)


def test_personalised_thresholds_are_respected(tracker, clock):
    tracker.record_completion()
    clock.advance(6 * DAY_SECONDS)
    lenient = PersonalizedThresholds(procrastination_high=8, procrastination_medium=5, activity_timeout=200)

    assert tracker.analyze_behavior(lenient).procrastination_risk == ProcrastinationRisk.MEDIUM


def test_high_risk_low_engagement_is_immediate(tracker, clock):
    tracker.record_completion()
    clock.advance(6 * DAY_SECONDS)
    tracker.pattern.engagement_score = 0.1
    tracker.pattern.engagement_updated_at = clock.now()

    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.optimal_intervention_timing == InterventionTiming.IMMEDIATE


def test_high_engagement_is_delayed(tracker, clock):
    tracker.pattern.engagement_score = 0.9

    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.optimal_intervention_timing == InterventionTiming.DELAYED


def test_completion_probability_scaled_by_accuracy(tracker):
    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS, accuracy=0.5, total_predictions=10)

    assert insight.completion_probability == pytest.approx(0.375)


def test_completion_probability_is_capped(tracker):
    for _ in range(3):
        tracker.record_completion()

    insight = tracker.analyze_behavior(DEFAULT_THRESHOLDS)

    assert insight.completion_probability == pytest.approx(0.95)
    assert insight.completion_streak == 3


# ============================================================================
# Persistence Tests
# ============================================================================

@pytest.mark.asyncio
async def test_snapshot_survives_restart(tracker, store, scheduler):
    tracker.record_completion(NotificationPriority.HIGH)
    await tracker.flush()

    restored = PatternTracker(store, scheduler)
    await restored.initialize()

    assert restored.pattern.completion_streak == 1
    assert restored.pattern.completion_history[0].priority == NotificationPriority.HIGH


@pytest.mark.asyncio
async def test_invalid_snapshot_is_ignored(scheduler):
    store = InMemoryKeyValueStore({COMPLETION_PATTERN_KEY: json.dumps({"engagement_score": 5})})
    tracker = PatternTracker(store, scheduler)

    await tracker.initialize()

    assert tracker.pattern.engagement_score == 0.5


def test_stats(tracker):
    tracker.record_completion()

    stats = tracker.get_stats()

    assert stats["completion_streak"] == 1
    assert stats["total_completions"] == 1
    assert stats["is_quiet_time"] is False
