"""
Nudge Message Generator

Builds (title, body) pairs from fixed message libraries. Motivational
messages are indexed by streak level and tone, contextual reminders by task
priority and time of day, interventions by procrastination risk. Any invalid
input falls back to a generic task reminder.
"""

import random
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from pydantic import ValidationError

from models.behavioral import MessageContext, NudgeMessage, PredictionResult
from motivation.nudge_types import (
    NotificationPriority,
    ProcrastinationRisk,
    StreakLevel,
    TimeOfDay,
    ToneVariant,
    get_streak_level,
)

FALLBACK_MESSAGE = ("📋 Task reminder", "You have a pending task")

MOTIVATION_CONFIDENCE_THRESHOLD = 0.6
HIGH_ENGAGEMENT = 0.7
STREAK_ACTIVE = 2

MessagePair = Tuple[str, str]


def _motivation_library(streak: int) -> Dict[StreakLevel, Dict[ToneVariant, List[MessagePair]]]:
    return {
        StreakLevel.LOW: {
            ToneVariant.ENCOURAGING: [
                ("🌱 One step at a time", "A small task done today still moves you forward"),
                ("💪 You've got this", "Pick one thing and give it ten minutes"),
            ],
            ToneVariant.URGENT: [
                ("⚡ Start now", "The hardest part is the first minute"),
                ("🔥 Get moving", "Knock out one task before the day slips away"),
            ],
            ToneVariant.NEUTRAL: [
                ("📋 Next up", "Your task list is waiting"),
                ("⏰ Check-in", "A good moment to pick up a task"),
            ],
        },
        StreakLevel.MEDIUM: {
            ToneVariant.ENCOURAGING: [
                ("🔥 Nice rhythm!", f"{streak} tasks done, keep it rolling"),
                ("✨ Building momentum", "Your consistency is starting to show"),
            ],
            ToneVariant.URGENT: [
                ("🚀 Keep the chain going", f"{streak} in a row, don't stop now"),
                ("⚡ Strike while it's hot", "Finish the next one while you're in the zone"),
            ],
            ToneVariant.NEUTRAL: [
                ("📈 Streak active", f"{streak} completions so far"),
                ("⚖️ Steady pace", "Continue with your next task"),
            ],
        },
        StreakLevel.HIGH: {
            ToneVariant.ENCOURAGING: [
                ("🏆 On fire!", f"{streak} tasks in a row, seriously impressive"),
                ("👑 Productivity streak", "Your focus lately has been outstanding"),
            ],
            ToneVariant.URGENT: [
                ("🔥 Don't break it!", f"{streak} task streak, protect it"),
                ("⚡ Full speed", "You're in top form, take on the next one"),
            ],
            ToneVariant.NEUTRAL: [
                ("📊 Strong streak", f"{streak} consecutive completions"),
                ("🎯 In the zone", "Keep working through your list"),
            ],
        },
    }


def _contextual_library(
    high_engagement: bool,
    has_streak: bool
) -> Dict[NotificationPriority, Dict[TimeOfDay, List[MessagePair]]]:
    high_morning = [
        ("🔥 Big one first?", "Your high-priority task is ready for you"),
        ("⚡ Power start", "Tackle the important task while you're fresh"),
    ] if high_engagement else [
        ("🎯 Important task ahead", "Start the day with your top priority"),
        ("⚡ Priority focus", "Your critical task is waiting"),
    ]
    high_afternoon = [
        ("🎯 Ride the streak", "Make your next win the important one"),
        ("🔥 Momentum check", "Put that energy into your priority task"),
    ] if has_streak else [
        ("🚀 Push through", "A high-impact task is ready"),
        ("⚡ Afternoon focus", "Your important task still needs you"),
    ]
    medium_afternoon = [
        ("⚡ You're doing great", "Another task is ready to go"),
        ("🔥 Keep it up", "Line up the next one"),
    ] if high_engagement else [
        ("📋 Task reminder", "Time for the next one"),
        ("⏰ Gentle nudge", "A task is waiting for you"),
    ]

    return {
        NotificationPriority.HIGH: {
            TimeOfDay.MORNING: high_morning,
            TimeOfDay.AFTERNOON: high_afternoon,
            TimeOfDay.EVENING: [
                ("🌟 Finish strong", "One important task left for today"),
                ("🎯 Evening win", "Close out your priority task"),
            ],
            TimeOfDay.NIGHT: [
                ("🌙 One before bed?", "Wrap up your priority task"),
                ("✨ Late push", "Your important task is still open"),
            ],
        },
        NotificationPriority.MEDIUM: {
            TimeOfDay.MORNING: [
                ("☀️ Good morning", "Ready for a productive start?"),
                ("🌅 Fresh start", "Let's get a task done early"),
            ],
            TimeOfDay.AFTERNOON: medium_afternoon,
            TimeOfDay.EVENING: [
                ("🌆 Evening progress", "One more task to go"),
                ("✨ Almost there", "Let's wrap this one up"),
            ],
            TimeOfDay.NIGHT: [
                ("🌙 Quick one?", "A short task before you rest"),
                ("✨ Night check-in", "One last task for today?"),
            ],
        },
        NotificationPriority.LOW: {
            TimeOfDay.MORNING: [
                ("🌱 Easy start", "A quick win to warm up"),
                ("☕ Morning warm-up", "A light task is ready"),
            ],
            TimeOfDay.AFTERNOON: [
                ("🌿 Small reminder", "A light task is waiting"),
                ("🍃 Easy win", "Something quick for the afternoon"),
            ],
            TimeOfDay.EVENING: [
                ("🌇 Light task", "Something small to end the day"),
                ("🕯️ Low-key finish", "An easy task if you have a minute"),
            ],
            TimeOfDay.NIGHT: [
                ("🌙 No rush", "A small task is there for tomorrow too"),
                ("💤 Optional", "A light task if you're still up"),
            ],
        },
    }


def _intervention_library(days_since_completion: float) -> Dict[ProcrastinationRisk, Dict[str, List[MessagePair]]]:
    days = max(1, int(days_since_completion))
    return {
        ProcrastinationRisk.HIGH: {
            "aggressive": [
                ("⏰ Time to get back on track", f"{days} days without a completed task, start one now"),
                ("🚨 Your list needs you", "Pick the smallest task and finish it today"),
            ],
            "gentle": [
                ("🌱 Ease back in", "It's been a while. One small task is enough"),
                ("🤝 Fresh start", "No pressure, just pick something quick"),
            ],
            "adaptive": [
                ("🎯 Restart the streak", f"It's been {days} days. A quick win gets things moving"),
                ("💡 Small step", "Break your next task into five minutes of work"),
            ],
        },
        ProcrastinationRisk.MEDIUM: {
            "aggressive": [
                ("⚡ Don't let it slide", "A task is waiting, tackle it now"),
                ("🔥 Get ahead", "Clear one task before it piles up"),
            ],
            "gentle": [
                ("🌿 Friendly reminder", "Your tasks are still here when you're ready"),
                ("☕ Quick check-in", "Got a minute for a small task?"),
            ],
            "adaptive": [
                ("📋 Pick one", "Choose a task and give it a few minutes"),
                ("🎯 Back to it", "A short session now keeps things on track"),
            ],
        },
    }


class MessageGenerator:
    """Library-driven nudge message generator"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.logger = logging.getLogger("MessageGenerator")

    def generate(
        self,
        context: Union[MessageContext, Dict[str, Any], None],
        tone: Optional[str] = None,
        prediction: Optional[PredictionResult] = None,
        prefer_motivational: bool = True
    ) -> NudgeMessage:
        """
        Generate a nudge message for the given context.

        Args:
            context: Streak, engagement, time of day and priority
            tone: message_tone experiment variant
            prediction: Learning engine prediction, if available
            prefer_motivational: Force the motivational library

        Returns:
            NudgeMessage (generic reminder when the context is invalid)
        """
        parsed = self._parse_context(context)
        if parsed is None:
            return self.get_fallback_message()

        confident = prediction is not None and prediction.confidence > MOTIVATION_CONFIDENCE_THRESHOLD
        if prefer_motivational or confident:
            return self.generate_motivational(parsed, tone)
        return self.generate_contextual(parsed)

    def generate_motivational(self, context: MessageContext, tone: Optional[str] = None) -> NudgeMessage:
        streak_level = get_streak_level(context.streak)
        library = _motivation_library(context.streak)
        messages = library[streak_level][self._validated_tone(tone)]
        return self._select(messages)

    def generate_contextual(self, context: MessageContext) -> NudgeMessage:
        library = _contextual_library(
            high_engagement=context.engagement > HIGH_ENGAGEMENT,
            has_streak=context.streak > STREAK_ACTIVE,
        )
        messages = library.get(context.priority, {}).get(context.time_of_day)
        if not messages:
            return self.get_fallback_message()
        return self._select(messages)

    def generate_intervention(
        self,
        risk: ProcrastinationRisk,
        timing_variant: Optional[str] = None,
        days_since_completion: float = 0.0
    ) -> NudgeMessage:
        by_variant = _intervention_library(days_since_completion).get(risk)
        if not by_variant:
            return self.get_fallback_message()
        messages = by_variant.get(timing_variant or "adaptive", by_variant["adaptive"])
        return self._select(messages)

    def get_fallback_message(self) -> NudgeMessage:
        title, body = FALLBACK_MESSAGE
        return NudgeMessage(title=title, body=body)

    def _validated_tone(self, tone: Optional[str]) -> ToneVariant:
        try:
            return ToneVariant(tone)
        except ValueError:
            if tone is not None:
                self.logger.warning(f"Unknown tone variant {tone!r}, using encouraging")
            return ToneVariant.ENCOURAGING

    def _parse_context(self, context: Any) -> Optional[MessageContext]:
        if isinstance(context, MessageContext):
            return context
        if not isinstance(context, dict):
            self.logger.warning(f"Invalid message context: {context!r}")
            return None
        try:
            return MessageContext.model_validate(context)
        except ValidationError as e:
            self.logger.warning(f"Invalid message context: {e.error_count()} errors")
            return None

    def _select(self, messages: List[MessagePair]) -> NudgeMessage:
        title, body = self.rng.choice(messages)
        return NudgeMessage(title=title, body=body)
