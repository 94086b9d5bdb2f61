"""
Adaptive Learning Engine

Learns per-message-type effectiveness from feedback signals, tunes the
user's procrastination thresholds, and predicts which message type is most
likely to land in a given context.
"""

from typing import Any, Dict, List, Optional, Union
import logging

from pydantic import ValidationError

from config.settings import settings
from models.behavioral import (
    BehavioralModel,
    Interaction,
    ModelMetrics,
    PersonalizedThresholds,
    PredictionContext,
    PredictionResult,
    UserOutcome,
)
from motivation.nudge_types import (
    MessageType,
    NotificationPriority,
    PREDICTION_CANDIDATES,
    TimeOfDay,
)
from services.behavioral_storage import BehavioralModelStore


class AdaptiveLearningEngine:
    """Feedback-driven effectiveness and threshold learning for one user"""

    # Signal weights per outcome flag
    WEIGHT_COMPLETED = 0.4
    WEIGHT_ENGAGED = 0.2
    WEIGHT_IGNORED = -0.1
    WEIGHT_FRUSTRATED = -0.3
    CONTEXT_WEIGHT = 1.0

    CONTEXT_MULTIPLIERS = {
        "high_priority": 0.3,
        "morning": 0.2,
        "evening": -0.1,
        "streak_active": 0.25,
        "first_task": 0.15,
    }

    # Adaptive learning rate
    BASE_RATE = 0.1
    ADAPTATION_FACTOR = 0.5
    MIN_RATE = 0.05
    MAX_RATE = 0.3
    LOW_ACCURACY = 0.5
    LOW_ACCURACY_MIN_SAMPLES = 10
    HIGH_ACCURACY = 0.8
    HIGH_ACCURACY_MIN_SAMPLES = 20

    # Threshold tuning
    THRESHOLD_REVIEW_INTERVAL = 20
    PROCRASTINATION_HIGH_BOUNDS = (1.0, 10.0)
    PROCRASTINATION_MEDIUM_BOUNDS = (0.5, 5.0)
    ACTIVITY_TIMEOUT_BOUNDS = (1.0, 8.0)

    DEFAULT_EFFECTIVENESS = 0.5

    def __init__(self, storage: BehavioralModelStore, user_id: str = "default"):
        self.storage = storage
        self.user_id = user_id
        self.clock = storage.clock
        self.logger = logging.getLogger("AdaptiveLearningEngine")

    def process_feedback(
        self,
        message_type: Any,
        outcome: Union[UserOutcome, Dict[str, Any], None],
        context: Optional[str] = None
    ) -> bool:
        """
        Learn from the user's response to a nudge.

        Malformed input is logged and ignored; nothing is raised.

        Args:
            message_type: Message category (unknown names are kept as custom types)
            outcome: Outcome flags, as a UserOutcome or a plain dict
            context: Optional context tag such as "high_priority" or "evening"

        Returns:
            True when the model was updated
        """
        if not isinstance(message_type, str) or not message_type.strip():
            self.logger.warning(f"Invalid message_type: {message_type!r}")
            return False

        parsed_outcome = self._parse_outcome(outcome)
        if parsed_outcome is None:
            return False

        if context is not None and not isinstance(context, str):
            self.logger.warning(f"Invalid context {context!r}, treating as general")
            context = None

        sanitized_type = message_type.strip().lower()
        known = {t.value for t in MessageType}
        if sanitized_type not in known and not sanitized_type.startswith("custom_"):
            self.logger.warning(f"Unknown message_type, allowing as custom: {sanitized_type}")

        model = self.get_user_model()
        signal = self.calculate_signal(parsed_outcome, context)
        learning_rate = self.calculate_learning_rate(model)

        current = model.message_effectiveness.get(sanitized_type, self.DEFAULT_EFFECTIVENESS)
        model.message_effectiveness[sanitized_type] = max(0.0, min(1.0, current + signal * learning_rate))

        model.interactions.append(Interaction(
            timestamp=self.clock.now(),
            message_type=sanitized_type,
            outcome=parsed_outcome,
            signal=signal,
            context=context or "general"
        ))

        self._update_model_metrics(model, parsed_outcome)

        # Counted on feedback events; the interaction log itself is capped
        if model.model_metrics.total_predictions % self.THRESHOLD_REVIEW_INTERVAL == 0:
            self._update_personalized_thresholds(model)

        self.storage.save_user_model(self.user_id, model)

        self.logger.debug(
            f"Feedback for {sanitized_type}: signal={signal:.2f}, rate={learning_rate:.3f}, "
            f"effectiveness={model.message_effectiveness[sanitized_type]:.3f}"
        )
        return True

    def _parse_outcome(self, outcome: Any) -> Optional[UserOutcome]:
        if isinstance(outcome, UserOutcome):
            return outcome
        if not isinstance(outcome, dict):
            self.logger.warning(f"Invalid outcome: {outcome!r}")
            return None
        try:
            return UserOutcome.model_validate(outcome)
        except ValidationError as e:
            self.logger.warning(f"Invalid outcome {outcome!r}: {e.error_count()} errors")
            return None

    def calculate_signal(self, outcome: UserOutcome, context: Optional[str] = None) -> float:
        """Weighted outcome signal in [-1, 1]"""
        signal = 0.0
        if outcome.completed:
            signal += self.WEIGHT_COMPLETED
        if outcome.engaged:
            signal += self.WEIGHT_ENGAGED
        if outcome.ignored:
            signal += self.WEIGHT_IGNORED
        if outcome.frustrated:
            signal += self.WEIGHT_FRUSTRATED

        if context:
            multiplier = self.CONTEXT_MULTIPLIERS.get(context, 0.0)
            signal *= (1 + multiplier * self.CONTEXT_WEIGHT)

        return max(-1.0, min(1.0, signal))

    def calculate_learning_rate(self, model: BehavioralModel) -> float:
        """Faster when the model is often wrong, slower once it is stable"""
        accuracy = model.model_metrics.accuracy
        sample_count = len(model.interactions)
        rate = self.BASE_RATE

        if accuracy < self.LOW_ACCURACY and sample_count > self.LOW_ACCURACY_MIN_SAMPLES:
            rate *= (1 + self.ADAPTATION_FACTOR)
        elif accuracy > self.HIGH_ACCURACY and sample_count > self.HIGH_ACCURACY_MIN_SAMPLES:
            rate *= (1 - self.ADAPTATION_FACTOR)

        return max(self.MIN_RATE, min(self.MAX_RATE, rate))

    def _update_personalized_thresholds(self, model: BehavioralModel):
        recent = model.interactions[-self.THRESHOLD_REVIEW_INTERVAL:]
        frustrations = sum(1 for i in recent if i.outcome.frustrated)
        engagements = sum(1 for i in recent if i.outcome.engaged)
        thresholds = model.personalized_thresholds

        if frustrations > engagements:
            # Back off for users who find nudges annoying
            thresholds.procrastination_high *= 1.1
            thresholds.procrastination_medium *= 1.1
            thresholds.activity_timeout *= 1.2
            self.logger.info(f"Thresholds relaxed for {self.user_id} ({frustrations} frustrations)")
        elif engagements > frustrations * 2:
            thresholds.procrastination_high *= 0.9
            thresholds.procrastination_medium *= 0.9
            thresholds.activity_timeout *= 0.8
            self.logger.info(f"Thresholds tightened for {self.user_id} ({engagements} engagements)")

        model.personalized_thresholds = self.clamp_thresholds(thresholds)

    def clamp_thresholds(self, thresholds: PersonalizedThresholds) -> PersonalizedThresholds:
        high = _clamp(thresholds.procrastination_high, *self.PROCRASTINATION_HIGH_BOUNDS)
        medium = _clamp(thresholds.procrastination_medium, *self.PROCRASTINATION_MEDIUM_BOUNDS)
        return PersonalizedThresholds(
            procrastination_high=high,
            procrastination_medium=min(medium, high),
            activity_timeout=_clamp(thresholds.activity_timeout, *self.ACTIVITY_TIMEOUT_BOUNDS),
        )

    def _update_model_metrics(self, model: BehavioralModel, outcome: UserOutcome):
        metrics = model.model_metrics
        metrics.total_predictions += 1
        # Engagement or completion counts as a good call
        if outcome.engaged or outcome.completed:
            metrics.correct_predictions += 1
        metrics.accuracy = metrics.correct_predictions / metrics.total_predictions
        metrics.last_updated = self.clock.now()

    def predict_optimal_message_type(self, context: Union[PredictionContext, Dict[str, Any], None]) -> PredictionResult:
        """
        Pick the message type with the best context-adjusted effectiveness.

        Returns:
            PredictionResult; a low-confidence default when the context is invalid
        """
        parsed = self._parse_context(context)
        if parsed is None:
            return PredictionResult(
                message_type=MessageType.MOTIVATIONAL.value,
                prediction=0.5,
                confidence=0.3,
                reasoning=["Invalid context provided, using defaults"]
            )

        model = self.get_user_model()
        best_type = MessageType.MOTIVATIONAL.value
        best_score = self.DEFAULT_EFFECTIVENESS
        reasoning: List[str] = []

        for candidate in PREDICTION_CANDIDATES:
            effectiveness = model.message_effectiveness.get(candidate.value, self.DEFAULT_EFFECTIVENESS)

            if parsed.time_of_day == TimeOfDay.MORNING and candidate == MessageType.MOTIVATIONAL:
                effectiveness *= 1.2
            if parsed.priority == NotificationPriority.HIGH and candidate == MessageType.URGENT:
                effectiveness *= 1.1
            if parsed.streak > 3 and candidate == MessageType.CELEBRATION:
                effectiveness *= 1.3

            if effectiveness > best_score:
                best_score = effectiveness
                best_type = candidate.value
                reasoning.append(f"{candidate.value} selected ({effectiveness * 100:.1f}% effective)")

        sample_count = sum(1 for i in model.interactions if i.message_type == best_type)
        confidence = min(0.95, sample_count / 20) * best_score

        return PredictionResult(
            message_type=best_type,
            prediction=best_score,
            confidence=confidence,
            reasoning=reasoning
        )

    def _parse_context(self, context: Any) -> Optional[PredictionContext]:
        if isinstance(context, PredictionContext):
            return context
        if not isinstance(context, dict):
            self.logger.warning(f"Invalid prediction context: {context!r}")
            return None
        try:
            return PredictionContext.model_validate(context)
        except ValidationError as e:
            self.logger.warning(f"Invalid prediction context {context!r}: {e.error_count()} errors")
            return None

    def get_user_model(self) -> BehavioralModel:
        """Stored model, or a fresh one with default thresholds"""
        model = self.storage.load_user_model(self.user_id)
        if model is not None:
            return model

        now = self.clock.now()
        return BehavioralModel(
            personalized_thresholds=self.default_thresholds(),
            model_metrics=ModelMetrics(last_updated=now),
            created_at=now,
        )

    @staticmethod
    def default_thresholds() -> PersonalizedThresholds:
        return PersonalizedThresholds(
            procrastination_high=settings.PROCRASTINATION_HIGH_DAYS,
            procrastination_medium=settings.PROCRASTINATION_MEDIUM_DAYS,
            activity_timeout=settings.ACTIVITY_TIMEOUT_HOURS,
        )

    def get_personalized_thresholds(self) -> PersonalizedThresholds:
        return self.get_user_model().personalized_thresholds

    def get_model_accuracy(self) -> float:
        return self.get_user_model().model_metrics.accuracy

    def has_predictions(self) -> bool:
        return self.get_user_model().model_metrics.total_predictions > 0

    def get_model_insights(self) -> Dict[str, Any]:
        model = self.get_user_model()
        return {
            "accuracy": model.model_metrics.accuracy,
            "total_predictions": model.model_metrics.total_predictions,
            "total_interactions": len(model.interactions),
            "personalized_thresholds": model.personalized_thresholds.model_dump(),
            "message_effectiveness": dict(model.message_effectiveness),
            "last_updated": model.model_metrics.last_updated,
        }

    async def reset_model(self):
        await self.storage.clear_user_model(self.user_id)
        self.logger.info(f"Behavioral model reset for {self.user_id}")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
