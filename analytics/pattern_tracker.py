"""
Completion Pattern Tracker

Tracks the user's activity and task completions for the current session:
engagement score, completion streak, quiet hours and productive hours.
Derives the delay before the next nudge, a predictive "best hour" insight and
the behavioral risk assessment used for interventions.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from pydantic import ValidationError

from config.settings import settings
from models.behavioral import (
    BehavioralInsight,
    CompletionPattern,
    CompletionRecord,
    PersonalizedThresholds,
    PredictiveInsight,
    ProductivityWindow,
)
from motivation.nudge_types import (
    InterventionTiming,
    NotificationPriority,
    ProcrastinationRisk,
)
from services.key_value_store import COMPLETION_PATTERN_KEY, KeyValueStore
from services.task_scheduler import Debouncer, TaskScheduler

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS


class PatternTracker:
    """Session-level activity and completion tracking"""

    # Productivity windows
    MIN_WINDOW_SAMPLES = 5
    MAX_WINDOWS = 3

    # Predictive insight
    MIN_PREDICTION_SAMPLES = 3
    MIN_DAY_TYPE_SAMPLES = 5
    PREDICTION_WINDOW = 10
    OUTLIER_MIN_SAMPLES = 10
    DEFAULT_OPTIMAL_HOUR = 10
    DEFAULT_CONFIDENCE = 0.3
    MAX_CONFIDENCE = 0.95
    DAY_TYPE_BONUS = 0.05

    # Behavior analysis
    LOW_ENGAGEMENT = 0.3
    HIGH_ENGAGEMENT = 0.7
    RISK_PENALTIES = {
        ProcrastinationRisk.LOW: 0.0,
        ProcrastinationRisk.MEDIUM: 0.15,
        ProcrastinationRisk.HIGH: 0.3,
    }
    MAX_STREAK_BONUS = 0.3
    STREAK_BONUS_STEP = 0.05
    MAX_COMPLETION_PROBABILITY = 0.95

    def __init__(self, store: KeyValueStore, scheduler: TaskScheduler):
        self.store = store
        self.clock = scheduler.clock
        self.logger = logging.getLogger("PatternTracker")
        self.pattern = self._fresh_pattern()
        self._recomputing = False

        self._debounced_recompute = Debouncer(
            scheduler,
            settings.PRODUCTIVITY_RECOMPUTE_DEBOUNCE_SECONDS,
            self._recompute_productivity_windows,
            name="productivity_recompute",
        )
        self._debounced_snapshot = Debouncer(
            scheduler,
            settings.BEHAVIORAL_WRITE_DEBOUNCE_SECONDS,
            self._save_snapshot,
            name="pattern_snapshot",
        )

    def _fresh_pattern(self) -> CompletionPattern:
        now = self.clock.now()
        return CompletionPattern(
            active_hours=(settings.ACTIVE_HOURS_START, settings.ACTIVE_HOURS_END),
            quiet_hours=(settings.QUIET_HOURS_START, settings.QUIET_HOURS_END),
            last_activity=now,
            engagement_score=settings.ENGAGEMENT_BASELINE,
            engagement_updated_at=now,
            started_at=now,
        )

    async def initialize(self):
        """Restore the last snapshot, if any"""
        await self.reload()
        self.logger.info(
            f"Pattern tracker ready ({len(self.pattern.completion_history)} completions, "
            f"streak {self.pattern.completion_streak})"
        )

    async def reload(self):
        try:
            data = await self.store.get_json(COMPLETION_PATTERN_KEY)
        except Exception as e:
            self.logger.warning(f"Failed to read completion pattern, keeping current: {e}")
            return
        if data is None:
            return
        try:
            self.pattern = CompletionPattern.model_validate(data)
        except ValidationError as e:
            self.logger.warning(f"Invalid completion pattern snapshot, ignoring: {e.error_count()} errors")

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def update_activity(self):
        """Record user activity"""
        now = self.clock.now()
        self.pattern.last_activity = now
        self._set_engagement(self.get_engagement() + settings.ACTIVITY_ENGAGEMENT_STEP, now)
        self._debounced_snapshot()

    def record_completion(self, priority: NotificationPriority = NotificationPriority.MEDIUM):
        """Record a completed task and update the streak"""
        now = self.clock.now()
        history = self.pattern.completion_history

        if history and (now - history[-1].time) / DAY_SECONDS <= settings.STREAK_GAP_DAYS:
            self.pattern.completion_streak += 1
        else:
            self.pattern.completion_streak = 1

        history.append(CompletionRecord(time=now, hour=_local_hour(now), priority=priority))
        if len(history) > settings.MAX_COMPLETION_HISTORY:
            self.pattern.completion_history = history[-settings.MAX_COMPLETION_HISTORY:]

        self.pattern.last_activity = now
        self._set_engagement(self.get_engagement() + settings.COMPLETION_ENGAGEMENT_STEP, now)

        self._debounced_recompute()
        self._debounced_snapshot()

        self.logger.debug(f"Completion recorded (streak: {self.pattern.completion_streak})")

    def get_engagement(self) -> float:
        """Engagement with decay toward the baseline applied"""
        elapsed_hours = max(0.0, self.clock.now() - self.pattern.engagement_updated_at) / HOUR_SECONDS
        baseline = settings.ENGAGEMENT_BASELINE
        decay = 0.5 ** (elapsed_hours / settings.ENGAGEMENT_HALF_LIFE_HOURS)
        return baseline + (self.pattern.engagement_score - baseline) * decay

    def _set_engagement(self, value: float, now: float):
        self.pattern.engagement_score = max(0.0, min(1.0, value))
        self.pattern.engagement_updated_at = now

    async def _recompute_productivity_windows(self):
        if self._recomputing:
            # Another pass is mid-write; try again after the quiet period
            self._debounced_recompute()
            return

        self._recomputing = True
        try:
            history = self.pattern.completion_history
            if len(history) < self.MIN_WINDOW_SAMPLES:
                return
            counts = Counter(r.hour for r in history)
            peak = max(counts.values())
            self.pattern.productivity_windows = [
                ProductivityWindow(hour=hour, completions=count, score=count / peak)
                for hour, count in counts.most_common(self.MAX_WINDOWS)
            ]
            await self._save_snapshot()
        finally:
            self._recomputing = False

    async def _save_snapshot(self):
        try:
            await self.store.set_json(COMPLETION_PATTERN_KEY, self.pattern.model_dump(mode="json"))
        except Exception as e:
            self.logger.error(f"Failed to save completion pattern: {e}")

    async def flush(self):
        """Run pending recompute and snapshot writes now"""
        await self._debounced_recompute.flush()
        await self._debounced_snapshot.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_quiet_time(self) -> bool:
        hour = _local_hour(self.clock.now())
        start, end = self.pattern.quiet_hours
        if start > end:
            return hour >= start or hour < end
        return start <= hour < end

    def get_optimal_delay(self, frequency_variant: Optional[str] = None) -> float:
        """
        Seconds to wait before the next nudge.

        A confident predicted hour 0 to 4 hours ahead wins over the activity
        rules. Zero means the productive hour is under way, so send now.

        Args:
            frequency_variant: notification_frequency experiment variant

        Returns:
            Delay in seconds
        """
        if self.is_quiet_time():
            return settings.QUIET_TIME_DELAY_HOURS * HOUR_SECONDS

        if frequency_variant == "high_frequency":
            base_delay = settings.HIGH_FREQUENCY_DELAY_SECONDS
        elif frequency_variant == "low_frequency":
            base_delay = settings.LOW_FREQUENCY_DELAY_SECONDS
        else:
            base_delay = settings.BASE_DELAY_SECONDS

        insight = self.get_predictive_insight()
        if insight.confidence > settings.PREDICTIVE_CONFIDENCE_THRESHOLD:
            hours_until = (insight.optimal_hour - _local_hour(self.clock.now())) % 24
            if hours_until <= settings.MAX_PREDICTIVE_DELAY_HOURS:
                return hours_until * HOUR_SECONDS

        since_activity = self.clock.now() - self.pattern.last_activity
        if since_activity < settings.RECENT_ACTIVITY_THRESHOLD_SECONDS:
            return base_delay * settings.RECENT_ACTIVITY_MULTIPLIER
        if since_activity > settings.AWAY_THRESHOLD_SECONDS:
            return base_delay
        return base_delay * settings.DEFAULT_DELAY_MULTIPLIER

    def get_predictive_insight(self) -> PredictiveInsight:
        """Most likely productive hour from recent completions"""
        history = self.pattern.completion_history
        if len(history) < self.MIN_PREDICTION_SAMPLES:
            return PredictiveInsight(
                optimal_hour=self.DEFAULT_OPTIMAL_HOUR,
                confidence=self.DEFAULT_CONFIDENCE,
                reason="Insufficient data",
                sample_size=len(history),
            )

        today_is_weekend = _is_weekend(self.clock.now())
        matching = [r for r in history if _is_weekend(r.time) == today_is_weekend]
        day_type_matched = len(matching) >= self.MIN_DAY_TYPE_SAMPLES
        relevant = matching if day_type_matched else history

        recent = relevant[-self.PREDICTION_WINDOW:]
        ranked = Counter(r.hour for r in recent).most_common()
        optimal_hour, count = ranked[0]

        # A mode seen only once among many samples is noise
        if count == 1 and len(recent) >= self.OUTLIER_MIN_SAMPLES and len(ranked) > 1:
            optimal_hour, count = ranked[1]

        sample_size = len(recent)
        frequency_ratio = count / sample_size
        expected = sample_size / 24
        significance = max(0.0, min(1.0, (count - expected) / max(1.0, sample_size - expected)))

        confidence = (
            0.5 * frequency_ratio
            + 0.3 * min(len(relevant), 20) / 20
            + 0.2 * significance
        )
        if day_type_matched:
            confidence += self.DAY_TYPE_BONUS
        confidence = min(self.MAX_CONFIDENCE, confidence)

        day_type = "weekend" if today_is_weekend else "weekday"
        reason = (
            f"{count} of {sample_size} recent {day_type} completions at {optimal_hour}:00"
            if day_type_matched
            else f"{count} of {sample_size} recent completions at {optimal_hour}:00"
        )

        return PredictiveInsight(
            optimal_hour=optimal_hour,
            confidence=confidence,
            reason=reason,
            sample_size=sample_size,
        )

    def analyze_behavior(
        self,
        thresholds: PersonalizedThresholds,
        accuracy: float = 0.0,
        total_predictions: int = 0
    ) -> BehavioralInsight:
        """
        Assess procrastination risk with the user's personalised thresholds.

        Args:
            thresholds: Thresholds learned by the adaptive learning engine
            accuracy: Current model accuracy
            total_predictions: Number of predictions behind the accuracy

        Returns:
            BehavioralInsight
        """
        now = self.clock.now()
        history = self.pattern.completion_history
        days_since_completion = (now - history[-1].time) / DAY_SECONDS if history else 0.0
        hours_since_activity = max(0.0, now - self.pattern.last_activity) / HOUR_SECONDS
        engagement = self.get_engagement()
        streak = self.pattern.completion_streak

        if days_since_completion > thresholds.procrastination_high:
            risk = ProcrastinationRisk.HIGH
        elif (days_since_completion > thresholds.procrastination_medium
              or hours_since_activity > thresholds.activity_timeout):
            risk = ProcrastinationRisk.MEDIUM
        else:
            risk = ProcrastinationRisk.LOW

        if risk == ProcrastinationRisk.HIGH and engagement < self.LOW_ENGAGEMENT:
            timing = InterventionTiming.IMMEDIATE
        elif engagement > self.HIGH_ENGAGEMENT:
            timing = InterventionTiming.DELAYED
        else:
            timing = InterventionTiming.GENTLE

        streak_bonus = min(self.MAX_STREAK_BONUS, self.STREAK_BONUS_STEP * streak)
        accuracy_factor = 0.5 + 0.5 * accuracy if total_predictions > 0 else 1.0
        probability = (engagement + streak_bonus - self.RISK_PENALTIES[risk]) * accuracy_factor
        probability = max(0.0, min(self.MAX_COMPLETION_PROBABILITY, probability))

        return BehavioralInsight(
            procrastination_risk=risk,
            optimal_intervention_timing=timing,
            completion_probability=probability,
            days_since_completion=days_since_completion,
            hours_since_activity=hours_since_activity,
            engagement_score=engagement,
            completion_streak=streak,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "engagement_score": self.get_engagement(),
            "completion_streak": self.pattern.completion_streak,
            "total_completions": len(self.pattern.completion_history),
            "last_activity": self.pattern.last_activity,
            "is_quiet_time": self.is_quiet_time(),
            "productivity_windows": [w.model_dump() for w in self.get_top_windows()],
        }

    def get_top_windows(self, limit: int = 3) -> List[ProductivityWindow]:
        return self.pattern.productivity_windows[:limit]


def _local_hour(timestamp: float) -> int:
    return datetime.fromtimestamp(timestamp).hour


def _is_weekend(timestamp: float) -> bool:
    return datetime.fromtimestamp(timestamp).weekday() >= 5
