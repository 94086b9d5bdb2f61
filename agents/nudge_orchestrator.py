"""
Nudge Orchestrator

Entry points of the nudge engine. Every send consults the rate limiter,
derives content from the message generator and learning engine, picks a
delay from the pattern tracker (or the intervention timing tier), hands the
notification to the delivery channel and records the outcome with the rate
limiter and the experiment service.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Union
import time

from agents.base_agent import BaseAgent
from analytics.pattern_tracker import PatternTracker
from config.settings import settings
from models.behavioral import (
    BehavioralInsight,
    MessageContext,
    NudgeMessage,
    PredictionContext,
    QueuedNotification,
    TaskContext,
    UserOutcome,
)
from motivation.learning_engine import AdaptiveLearningEngine
from motivation.message_generator import MessageGenerator
from motivation.nudge_types import (
    INTERVENTION_DELAYS,
    NUDGE_CONFIGS,
    Experiment,
    NotificationPriority,
    NotificationType,
    ProcrastinationRisk,
    get_time_of_day,
)
from services.delivery_channel import DeliveryChannel
from services.delivery_queue import DeliveryQueue
from services.experiment_service import FAILED_METRIC, SENT_METRIC, COMPLETION_METRIC, ExperimentService
from services.nudge_monitoring import NudgeMonitoringService, NudgeOutcome
from services.rate_limiter import RateLimiter


class NudgeOrchestrator(BaseAgent):
    """Sequences rate limiting, content, timing and delivery for each nudge"""

    def __init__(
        self,
        pattern_tracker: PatternTracker,
        learning_engine: AdaptiveLearningEngine,
        experiments: ExperimentService,
        message_generator: MessageGenerator,
        rate_limiter: RateLimiter,
        delivery: DeliveryChannel,
        delivery_queue: DeliveryQueue,
        monitoring: NudgeMonitoringService,
        name: str = "NudgeOrchestrator"
    ):
        super().__init__(name)
        self.pattern_tracker = pattern_tracker
        self.learning_engine = learning_engine
        self.experiments = experiments
        self.message_generator = message_generator
        self.rate_limiter = rate_limiter
        self.delivery = delivery
        self.delivery_queue = delivery_queue
        self.monitoring = monitoring
        self.clock = rate_limiter.clock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def send_nudge(
        self,
        title: str,
        body: str,
        notification_type: NotificationType = NotificationType.CONTEXTUAL,
        priority: Optional[NotificationPriority] = None,
        delay: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send a nudge with caller-supplied content.

        Args:
            title: Notification title
            body: Notification body
            notification_type: Kind of nudge (drives rate limiting)
            priority: Queue priority, defaults to the type's priority
            delay: Seconds until display; computed from the user's pattern when None
            context: Extra data kept with a queued notification

        Returns:
            True if the notification was delivered
        """
        try:
            notification_type = NotificationType(notification_type)
        except ValueError:
            self.logger.warning(f"Invalid notification type: {notification_type!r}")
            return False

        started = time.perf_counter()
        try:
            if not self._check_rate_limit(notification_type, started):
                return False

            if delay is None:
                variant = self.experiments.get_variant(Experiment.NOTIFICATION_FREQUENCY.value)
                delay = self.pattern_tracker.get_optimal_delay(variant)

            return await self._dispatch(
                notification_type,
                NudgeMessage(title=title, body=body),
                priority or NUDGE_CONFIGS[notification_type].default_priority,
                delay,
                started,
                context=context,
            )
        except Exception as e:
            return await self._handle_failure("send_nudge", notification_type, e, started)

    async def send_contextual_nudge(self, task: Union[TaskContext, Dict[str, Any], None] = None) -> bool:
        """Send a reminder about a pending task, shaped by priority and time of day"""
        notification_type = NotificationType.CONTEXTUAL
        started = time.perf_counter()
        try:
            if not self._check_rate_limit(notification_type, started):
                return False

            task = self._parse_task(task)
            message_context = self._message_context(task.priority, task.category)
            prediction = self.learning_engine.predict_optimal_message_type(self._prediction_context(message_context))
            tone = self.experiments.get_variant(Experiment.MESSAGE_TONE.value)
            message = self.message_generator.generate(
                message_context,
                tone=tone,
                prediction=prediction,
                prefer_motivational=False,
            )

            variant = self.experiments.get_variant(Experiment.NOTIFICATION_FREQUENCY.value)
            delay = self.pattern_tracker.get_optimal_delay(variant)

            return await self._dispatch(
                notification_type,
                message,
                task.priority,
                delay,
                started,
                experiment=Experiment.NOTIFICATION_FREQUENCY,
                context={"task": task.text, "message_type": prediction.message_type},
            )
        except Exception as e:
            return await self._handle_failure("send_contextual_nudge", notification_type, e, started)

    async def generate_motivational_nudge(self) -> bool:
        """Send a streak-aware motivational message in the user's tone variant"""
        notification_type = NotificationType.MOTIVATIONAL
        started = time.perf_counter()
        try:
            if not self._check_rate_limit(notification_type, started):
                return False

            message_context = self._message_context(NUDGE_CONFIGS[notification_type].default_priority)
            prediction = self.learning_engine.predict_optimal_message_type(self._prediction_context(message_context))
            tone = self.experiments.get_variant(Experiment.MESSAGE_TONE.value)
            message = self.message_generator.generate(
                message_context,
                tone=tone,
                prediction=prediction,
                prefer_motivational=True,
            )

            variant = self.experiments.get_variant(Experiment.NOTIFICATION_FREQUENCY.value)
            delay = self.pattern_tracker.get_optimal_delay(variant)

            return await self._dispatch(
                notification_type,
                message,
                message_context.priority,
                delay,
                started,
                experiment=Experiment.MESSAGE_TONE,
                context={"message_type": prediction.message_type, "tone": tone},
            )
        except Exception as e:
            return await self._handle_failure("generate_motivational_nudge", notification_type, e, started)

    async def send_behavioral_intervention(self) -> bool:
        """
        Send an intervention when procrastination risk is medium or high.

        Low risk returns False without consulting the rate limiter, delivering
        or recording anything.
        """
        notification_type = NotificationType.INTERVENTION
        started = time.perf_counter()
        try:
            insight = self.get_behavioral_insights()
            if insight.procrastination_risk == ProcrastinationRisk.LOW:
                self.logger.debug("Procrastination risk low, no intervention")
                self.monitoring.record_nudge(notification_type, NudgeOutcome.SKIPPED, _elapsed_ms(started))
                return False

            if not self._check_rate_limit(notification_type, started):
                return False

            variant = self.experiments.get_variant(Experiment.INTERVENTION_TIMING.value)
            message = self.message_generator.generate_intervention(
                insight.procrastination_risk,
                timing_variant=variant,
                days_since_completion=insight.days_since_completion,
            )
            delay = INTERVENTION_DELAYS[insight.optimal_intervention_timing]

            self.logger.info(
                f"🚨 Intervention: risk={insight.procrastination_risk.value}, "
                f"timing={insight.optimal_intervention_timing.value}, variant={variant}"
            )

            return await self._dispatch(
                notification_type,
                message,
                NUDGE_CONFIGS[notification_type].default_priority,
                delay,
                started,
                experiment=Experiment.INTERVENTION_TIMING,
                context={"risk": insight.procrastination_risk.value},
            )
        except Exception as e:
            return await self._handle_failure("send_behavioral_intervention", notification_type, e, started)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def update_activity(self):
        self.pattern_tracker.update_activity()

    def record_task_completion(self, priority: NotificationPriority = NotificationPriority.MEDIUM):
        """Record a completed task and credit the user's experiment variants"""
        self.pattern_tracker.record_completion(NotificationPriority(priority))
        engagement = self.pattern_tracker.get_engagement()
        for experiment in Experiment:
            self.experiments.track_metric(experiment.value, COMPLETION_METRIC, 1)
            self.experiments.track_metric(experiment.value, "engagement_score", engagement)

    def process_feedback(
        self,
        message_type: Any,
        outcome: Union[UserOutcome, Dict[str, Any], None],
        context: Optional[str] = None
    ) -> bool:
        return self.learning_engine.process_feedback(message_type, outcome, context)

    async def run_periodic_check(self) -> bool:
        """Send an intervention if the user is drifting. Returns True if one was sent."""
        insight = self.get_behavioral_insights()
        if insight.procrastination_risk == ProcrastinationRisk.LOW:
            return False
        return await self.send_behavioral_intervention()

    def get_behavioral_insights(self) -> BehavioralInsight:
        return self.pattern_tracker.analyze_behavior(
            self.learning_engine.get_personalized_thresholds(),
            accuracy=self.learning_engine.get_model_accuracy(),
            total_predictions=self.learning_engine.get_user_model().model_metrics.total_predictions,
        )

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats.update({
            "monitoring": self.monitoring.get_metrics(),
            "rate_limit": self.rate_limiter.get_status().model_dump(),
            "queue": self.delivery_queue.get_queue_stats(),
            "pattern": self.pattern_tracker.get_stats(),
            "model": self.learning_engine.get_model_insights(),
        })
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_rate_limit(self, notification_type: NotificationType, started: float) -> bool:
        if self.rate_limiter.can_send(notification_type):
            return True
        self.logger.debug(f"Rate limited: {notification_type.value}")
        self.monitoring.record_nudge(notification_type, NudgeOutcome.RATE_LIMITED, _elapsed_ms(started))
        return False

    async def _dispatch(
        self,
        notification_type: NotificationType,
        message: NudgeMessage,
        priority: NotificationPriority,
        delay: float,
        started: float,
        experiment: Optional[Experiment] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        scheduled_at = self.clock.now() + max(delay, settings.MIN_SCHEDULE_LEAD_SECONDS)

        if not self.delivery_queue.is_online:
            await self.delivery_queue.enqueue(message.title, message.body, notification_type, priority, context)
            self.monitoring.record_nudge(notification_type, NudgeOutcome.QUEUED, _elapsed_ms(started))
            return False

        try:
            success = bool(await self.delivery.deliver(message.title, message.body, scheduled_at))
        except Exception as e:
            self.logger.error(f"Delivery failed for {notification_type.value}: {e}")
            success = False

        await self.rate_limiter.record_attempt(notification_type, success)
        if experiment is not None:
            self.experiments.track_metric(experiment.value, SENT_METRIC if success else FAILED_METRIC, 1)

        if success:
            self.monitoring.record_nudge(notification_type, NudgeOutcome.SENT, _elapsed_ms(started))
            self.log_execution(
                f"Sent {notification_type.value}",
                f"'{message.title}' at {datetime.fromtimestamp(scheduled_at).isoformat()}"
            )
        else:
            await self.delivery_queue.enqueue(message.title, message.body, notification_type, priority, context)
            self.monitoring.record_nudge(notification_type, NudgeOutcome.FAILED, _elapsed_ms(started))
            self.logger.warning(f"{notification_type.value} delivery failed, queued for retry")
        return success

    async def _handle_failure(
        self,
        action: str,
        notification_type: NotificationType,
        error: Exception,
        started: float
    ) -> bool:
        self.log_error(action, error)
        self.monitoring.record_nudge(notification_type, NudgeOutcome.ERROR, _elapsed_ms(started))
        try:
            await self.rate_limiter.record_attempt(notification_type, False)
        except Exception as e:
            self.logger.error(f"Could not record failed attempt: {e}")
        return False

    async def on_queue_result(self, notification: QueuedNotification, success: bool):
        """Delivery queue hook: count retried deliveries against the budget

        Only a successful retry is recorded with the rate limiter. The failure
        that queued the nudge was already counted, so retries of one nudge
        never stack extra backoff.
        """
        if success:
            await self.rate_limiter.record_attempt(notification.type, True)
        outcome = NudgeOutcome.SENT if success else NudgeOutcome.FAILED
        self.monitoring.record_nudge(notification.type, outcome)

    def _parse_task(self, task: Any) -> TaskContext:
        if isinstance(task, TaskContext):
            return task
        if isinstance(task, dict):
            try:
                return TaskContext.model_validate(task)
            except ValueError as e:
                self.logger.warning(f"Invalid task context, using defaults: {e}")
        return TaskContext()

    def _message_context(self, priority: NotificationPriority, category: Optional[str] = None) -> MessageContext:
        hour = datetime.fromtimestamp(self.clock.now()).hour
        return MessageContext(
            streak=self.pattern_tracker.pattern.completion_streak,
            engagement=self.pattern_tracker.get_engagement(),
            time_of_day=get_time_of_day(hour),
            priority=priority,
            category=category,
        )

    @staticmethod
    def _prediction_context(message_context: MessageContext) -> PredictionContext:
        return PredictionContext(
            time_of_day=message_context.time_of_day,
            priority=message_context.priority,
            streak=message_context.streak,
            engagement=message_context.engagement,
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
