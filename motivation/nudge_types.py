"""
Nudge Types Configuration

Defines notification types, priorities, message categories and the
per-type configuration used by the orchestrator.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional


class NotificationType(str, Enum):
    """Kinds of nudges the engine sends"""
    MOTIVATIONAL = "motivational"
    INTERVENTION = "intervention"
    CONTEXTUAL = "contextual"


class NotificationPriority(str, Enum):
    """Nudge priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MessageType(str, Enum):
    """Message categories whose effectiveness is learned"""
    MOTIVATIONAL = "motivational"
    GENTLE = "gentle"
    URGENT = "urgent"
    CELEBRATION = "celebration"
    ENCOURAGING = "encouraging"
    NEUTRAL = "neutral"


class ProcrastinationRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InterventionTiming(str, Enum):
    IMMEDIATE = "immediate"
    GENTLE = "gentle"
    DELAYED = "delayed"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class StreakLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ToneVariant(str, Enum):
    ENCOURAGING = "encouraging"
    URGENT = "urgent"
    NEUTRAL = "neutral"


class Experiment(str, Enum):
    """Experiment ids run by the experiment service"""
    MESSAGE_TONE = "message_tone"
    NOTIFICATION_FREQUENCY = "notification_frequency"
    INTERVENTION_TIMING = "intervention_timing"


PRIORITY_ORDER = {
    NotificationPriority.HIGH: 0,
    NotificationPriority.MEDIUM: 1,
    NotificationPriority.LOW: 2,
}

# Candidate types ranked by predict_optimal_message_type
PREDICTION_CANDIDATES = [
    MessageType.MOTIVATIONAL,
    MessageType.GENTLE,
    MessageType.URGENT,
    MessageType.CELEBRATION,
]

EXPERIMENT_VARIANTS = {
    Experiment.MESSAGE_TONE: ["encouraging", "urgent", "neutral"],
    Experiment.NOTIFICATION_FREQUENCY: ["high_frequency", "low_frequency", "adaptive"],
    Experiment.INTERVENTION_TIMING: ["aggressive", "gentle", "adaptive"],
}


@dataclass
class NudgeTypeConfig:
    """Configuration for a notification type"""
    type: NotificationType
    default_priority: NotificationPriority
    experiment: Optional[Experiment]
    description: str


NUDGE_CONFIGS = {
    NotificationType.MOTIVATIONAL: NudgeTypeConfig(
        type=NotificationType.MOTIVATIONAL,
        default_priority=NotificationPriority.MEDIUM,
        experiment=Experiment.MESSAGE_TONE,
        description="Streak-aware encouragement drawn from the tone library"
    ),

    NotificationType.CONTEXTUAL: NudgeTypeConfig(
        type=NotificationType.CONTEXTUAL,
        default_priority=NotificationPriority.MEDIUM,
        experiment=Experiment.NOTIFICATION_FREQUENCY,
        description="Task reminder shaped by priority and time of day"
    ),

    NotificationType.INTERVENTION: NudgeTypeConfig(
        type=NotificationType.INTERVENTION,
        default_priority=NotificationPriority.HIGH,
        experiment=Experiment.INTERVENTION_TIMING,
        description="Sent when procrastination risk is medium or high"
    ),
}


# Fixed delays per intervention timing tier (seconds)
INTERVENTION_DELAYS = {
    InterventionTiming.IMMEDIATE: 0,
    InterventionTiming.GENTLE: 2 * 60,
    InterventionTiming.DELAYED: 10 * 60,
}


def get_time_of_day(hour: int) -> TimeOfDay:
    if 5 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def get_streak_level(streak: int) -> StreakLevel:
    if streak > 5:
        return StreakLevel.HIGH
    if streak > 2:
        return StreakLevel.MEDIUM
    return StreakLevel.LOW
