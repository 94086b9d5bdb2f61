"""
Nudge Monitoring Service

Tracks nudge engine activity:
- Send outcomes per notification type
- Delivery durations
- Error rates
"""

from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
import logging

from motivation.nudge_types import NotificationType
from services.task_scheduler import Clock, SystemClock

logger = logging.getLogger(__name__)


class NudgeOutcome(str, Enum):
    SENT = "sent"
    QUEUED = "queued"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    SKIPPED = "skipped"
    ERROR = "error"


class NudgeMonitoringService:
    """Service for monitoring nudge delivery."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self.reset_metrics()

    def record_nudge(
        self,
        notification_type: NotificationType,
        outcome: NudgeOutcome,
        duration_ms: float = 0.0
    ):
        """
        Record the outcome of one nudge request.

        Args:
            notification_type: Kind of nudge
            outcome: What happened to it
            duration_ms: Time spent in the send path
        """
        type_key = NotificationType(notification_type).value
        self.outcomes[type_key][NudgeOutcome(outcome).value] += 1
        self.total_requests += 1
        self.last_request_time = self.clock.now()

        self.durations.append(duration_ms / 1000.0)
        if len(self.durations) > 1000:
            self.durations.pop(0)

        logger.debug(f"Nudge recorded: {type_key} -> {outcome.value} ({duration_ms:.2f}ms)")

    def _count(self, outcome: NudgeOutcome) -> int:
        return sum(by_outcome[outcome.value] for by_outcome in self.outcomes.values())

    def get_metrics(self) -> Dict:
        """Get monitoring metrics."""
        uptime_seconds = max(0.0, self.clock.now() - self.start_time)
        failed = self._count(NudgeOutcome.FAILED) + self._count(NudgeOutcome.ERROR)
        attempted = self._count(NudgeOutcome.SENT) + self._count(NudgeOutcome.QUEUED) + failed

        return {
            'uptime_seconds': uptime_seconds,
            'uptime_hours': uptime_seconds / 3600,
            'request_metrics': {
                'total_requests': self.total_requests,
                'sent': self._count(NudgeOutcome.SENT),
                'queued': self._count(NudgeOutcome.QUEUED),
                'failed': failed,
                'rate_limited': self._count(NudgeOutcome.RATE_LIMITED),
                'skipped': self._count(NudgeOutcome.SKIPPED),
                'error_rate': failed / attempted if attempted > 0 else 0.0,
                'last_request': (
                    datetime.fromtimestamp(self.last_request_time).isoformat()
                    if self.last_request_time else None
                ),
            },
            'by_type': {t: dict(counts) for t, counts in self.outcomes.items()},
            'performance_metrics': {
                'avg_duration_seconds': (
                    sum(self.durations) / len(self.durations) if self.durations else 0.0
                ),
                'recent_avg_duration_seconds': self._calculate_recent_average(),
            },
        }

    def _calculate_recent_average(self) -> float:
        if not self.durations:
            return 0.0
        recent = self.durations[-100:]
        return sum(recent) / len(recent)

    def get_health_status(self) -> Dict:
        """Get health status for health check endpoint."""
        metrics = self.get_metrics()
        error_rate = metrics['request_metrics']['error_rate']

        if error_rate > 0.5:
            status = 'unhealthy'
            message = f'High delivery failure rate: {error_rate:.1%}'
        elif error_rate > 0.2:
            status = 'degraded'
            message = f'Elevated delivery failure rate: {error_rate:.1%}'
        elif self.total_requests == 0:
            status = 'idle'
            message = 'No nudges yet'
        else:
            status = 'healthy'
            message = 'Operating normally'

        return {
            'status': status,
            'message': message,
            'metrics': {
                'total_requests': self.total_requests,
                'error_rate': error_rate,
                'uptime_hours': metrics['uptime_hours'],
            }
        }

    def reset_metrics(self):
        self.outcomes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.total_requests = 0
        self.last_request_time: Optional[float] = None
        self.durations: List[float] = []
        self.start_time = self.clock.now()
