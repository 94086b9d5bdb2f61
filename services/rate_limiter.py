"""
Notification Rate Limiter

Per-user sending budget: a trailing-window quota on successful sends, a
minimum cooldown between sends that backs off exponentially after delivery
failures, and a shorter fixed cooldown for interventions.
"""

from typing import Optional
import logging

from pydantic import ValidationError

from config.settings import settings
from models.behavioral import NotificationAttempt, RateLimitState, RateLimitStatus
from motivation.nudge_types import NotificationType
from services.key_value_store import RATE_LIMIT_STATE_KEY, KeyValueStore
from services.task_scheduler import Clock

MAX_ATTEMPT_LOG = 100
TRIMMED_ATTEMPT_LOG = 50


class RateLimiter:
    """Window quota plus failure-aware cooldown"""

    def __init__(self, store: KeyValueStore, clock: Clock):
        self.store = store
        self.clock = clock
        self.logger = logging.getLogger("RateLimiter")
        self.state = RateLimitState()

    async def initialize(self):
        await self.reload()
        self.logger.info(
            f"Rate limiter ready ({len(self.state.attempts)} recent attempts, "
            f"{self.state.consecutive_failures} consecutive failures)"
        )

    async def reload(self):
        try:
            data = await self.store.get_json(RATE_LIMIT_STATE_KEY)
        except Exception as e:
            self.logger.warning(f"Failed to read rate limit state, keeping current: {e}")
            return
        if data is None:
            return
        try:
            state = RateLimitState.model_validate(data)
        except ValidationError as e:
            self.logger.warning(f"Invalid rate limit state, resetting: {e.error_count()} errors")
            self.state = RateLimitState()
            return
        self.state = state
        self._prune_attempts(self.clock.now())

    def required_cooldown(self) -> float:
        """General cooldown scaled by the failure streak (seconds)"""
        exponent = min(self.state.consecutive_failures, settings.RATE_LIMIT_MAX_BACKOFF_EXPONENT)
        return settings.RATE_LIMIT_COOLDOWN_SECONDS * settings.RATE_LIMIT_BACKOFF_MULTIPLIER ** exponent

    def _successes_in_window(self, now: float) -> int:
        window_start = now - settings.RATE_LIMIT_WINDOW_SECONDS
        return sum(1 for a in self.state.attempts if a.success and a.timestamp > window_start)

    def can_send(self, notification_type: NotificationType) -> bool:
        """Whether a notification of this type may be sent now. Read-only."""
        now = self.clock.now()
        since_last = now - self.state.last_notification_time

        if notification_type == NotificationType.INTERVENTION:
            if since_last < settings.RATE_LIMIT_INTERVENTION_COOLDOWN_SECONDS:
                self.logger.debug("Intervention cooldown active")
                return False
        elif since_last < self.required_cooldown():
            remaining = self.required_cooldown() - since_last
            self.logger.debug(f"Cooldown active: {remaining:.0f}s remaining")
            return False

        in_window = self._successes_in_window(now)
        if in_window >= settings.RATE_LIMIT_MAX_NOTIFICATIONS:
            self.logger.debug(
                f"Rate limit reached: {in_window}/{settings.RATE_LIMIT_MAX_NOTIFICATIONS} in window"
            )
            return False

        return True

    async def record_attempt(self, notification_type: NotificationType, success: bool):
        """Log a delivery attempt and update the failure streak"""
        now = self.clock.now()
        self.state.attempts.append(NotificationAttempt(
            timestamp=now,
            type=notification_type,
            success=success
        ))

        if len(self.state.attempts) > MAX_ATTEMPT_LOG:
            self.state.attempts = self.state.attempts[-TRIMMED_ATTEMPT_LOG:]
        self._prune_attempts(now)

        if success:
            self.state.last_notification_time = now
            self.state.consecutive_failures = 0
        else:
            self.state.consecutive_failures += 1

        await self._save_state()
        self.logger.info(
            f"Recorded {NotificationType(notification_type).value} notification: "
            f"{'success' if success else 'failed'}"
        )

    def _prune_attempts(self, now: float):
        cutoff = now - settings.RATE_LIMIT_ATTEMPT_RETENTION_SECONDS
        self.state.attempts = [a for a in self.state.attempts if a.timestamp > cutoff]

    async def _save_state(self):
        try:
            await self.store.set_json(RATE_LIMIT_STATE_KEY, self.state.model_dump(mode="json"))
        except Exception as e:
            self.logger.warning(f"Failed to save rate limit state: {e}")

    def get_next_allowed_time(self, notification_type: Optional[NotificationType] = None) -> float:
        now = self.clock.now()
        if notification_type == NotificationType.INTERVENTION:
            cooldown = settings.RATE_LIMIT_INTERVENTION_COOLDOWN_SECONDS
        else:
            cooldown = self.required_cooldown()
        if now - self.state.last_notification_time >= cooldown:
            return now
        return self.state.last_notification_time + cooldown

    def get_status(self) -> RateLimitStatus:
        now = self.clock.now()
        next_allowed = self.get_next_allowed_time()
        return RateLimitStatus(
            notifications_in_window=self._successes_in_window(now),
            max_notifications=settings.RATE_LIMIT_MAX_NOTIFICATIONS,
            cooldown_active=now < next_allowed,
            next_allowed_time=next_allowed,
            consecutive_failures=self.state.consecutive_failures,
            time_until_next=max(0.0, next_allowed - now),
        )
