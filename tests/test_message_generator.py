"""
Unit Tests for Message Generator

Tests library selection by streak, tone, priority and time of day, and the
fallback for invalid input.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import random
import pytest

from models.behavioral import MessageContext, PredictionResult
from motivation.message_generator import (
    FALLBACK_MESSAGE,
    MessageGenerator,
    _contextual_library,
    _intervention_library,
    _motivation_library,
)
from motivation.nudge_types import (
    NotificationPriority,
    ProcrastinationRisk,
    StreakLevel,
    TimeOfDay,
    ToneVariant,
    get_streak_level,
    get_time_of_day,
)


@pytest.fixture
def generator():
    return MessageGenerator(rng=random.Random(3))


def make_context(**overrides):
    context = {
        "streak": 0,
        "engagement": 0.5,
        "time_of_day": "afternoon",
        "priority": "medium",
    }
    context.update(overrides)
    return context


def as_pair(message):
    return (message.title, message.body)


# ============================================================================
# Bucketing Tests
# ============================================================================

@pytest.mark.parametrize("streak,level", [
    (0, StreakLevel.LOW),
    (2, StreakLevel.LOW),
    (3, StreakLevel.MEDIUM),
    (5, StreakLevel.MEDIUM),
    (6, StreakLevel.HIGH),
])
def test_streak_levels(streak, level):
    assert get_streak_level(streak) == level


@pytest.mark.parametrize("hour,bucket", [
    (5, TimeOfDay.MORNING),
    (11, TimeOfDay.MORNING),
    (12, TimeOfDay.AFTERNOON),
    (16, TimeOfDay.AFTERNOON),
    (17, TimeOfDay.EVENING),
    (20, TimeOfDay.EVENING),
    (21, TimeOfDay.NIGHT),
    (4, TimeOfDay.NIGHT),
])
def test_time_of_day_buckets(hour, bucket):
    assert get_time_of_day(hour) == bucket


# ============================================================================
# Generation Tests
# ============================================================================

def test_motivational_uses_streak_and_tone(generator):
    message = generator.generate(make_context(streak=7), tone="urgent")

    assert as_pair(message) in _motivation_library(7)[StreakLevel.HIGH][ToneVariant.URGENT]


def test_unknown_tone_falls_back_to_encouraging(generator):
    message = generator.generate(make_context(streak=1), tone="sarcastic")

    assert as_pair(message) in _motivation_library(1)[StreakLevel.LOW][ToneVariant.ENCOURAGING]


def test_contextual_uses_priority_and_time_of_day(generator):
    message = generator.generate(
        make_context(priority="low", time_of_day="evening"),
        prefer_motivational=False,
    )

    expected = _contextual_library(False, False)[NotificationPriority.LOW][TimeOfDay.EVENING]
    assert as_pair(message) in expected


def test_contextual_reflects_high_engagement(generator):
    message = generator.generate_contextual(MessageContext(
        streak=0,
        engagement=0.9,
        time_of_day=TimeOfDay.MORNING,
        priority=NotificationPriority.HIGH,
    ))

    expected = _contextual_library(True, False)[NotificationPriority.HIGH][TimeOfDay.MORNING]
    assert as_pair(message) in expected


def test_confident_prediction_selects_motivational(generator):
    prediction = PredictionResult(message_type="celebration", prediction=0.8, confidence=0.7)

    message = generator.generate(
        make_context(streak=4),
        tone="neutral",
        prediction=prediction,
        prefer_motivational=False,
    )

    assert as_pair(message) in _motivation_library(4)[StreakLevel.MEDIUM][ToneVariant.NEUTRAL]


def test_streak_count_appears_in_body(generator):
    for _ in range(10):
        message = generator.generate(make_context(streak=8), tone="neutral")
        assert as_pair(message) in _motivation_library(8)[StreakLevel.HIGH][ToneVariant.NEUTRAL]


@pytest.mark.parametrize("context", [
    None,
    "morning",
    {"streak": 1},
    {"streak": -1, "engagement": 0.5, "time_of_day": "morning", "priority": "low"},
    {"streak": 1, "engagement": 0.5, "time_of_day": "brunch", "priority": "low"},
    {"streak": 1, "engagement": 0.5, "time_of_day": "morning", "priority": "critical"},
])
def test_invalid_context_returns_fallback(generator, context):
    assert as_pair(generator.generate(context)) == FALLBACK_MESSAGE


def test_intervention_by_risk_and_variant(generator):
    message = generator.generate_intervention(ProcrastinationRisk.HIGH, "gentle", days_since_completion=6.2)

    assert as_pair(message) in _intervention_library(6.2)[ProcrastinationRisk.HIGH]["gentle"]


def test_intervention_without_variant_uses_adaptive(generator):
    message = generator.generate_intervention(ProcrastinationRisk.MEDIUM, None)

    assert as_pair(message) in _intervention_library(0)[ProcrastinationRisk.MEDIUM]["adaptive"]


def test_low_risk_intervention_falls_back(generator):
    assert as_pair(generator.generate_intervention(ProcrastinationRisk.LOW)) == FALLBACK_MESSAGE
