"""
Nudge engine records.

Persisted blobs and the values passed between components. Everything that
crosses a boundary (feedback outcomes, prediction contexts, stored state) is
validated here; callers turn a ValidationError into the documented
log-and-default behaviour.
"""

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from typing import Any, Dict, List, Optional, Tuple

from motivation.nudge_types import (
    InterventionTiming,
    NotificationPriority,
    NotificationType,
    ProcrastinationRisk,
    TimeOfDay,
)


class UserOutcome(BaseModel):
    """What the user did after a nudge"""
    model_config = ConfigDict(extra="forbid")

    completed: StrictBool = False
    engaged: StrictBool = False
    ignored: StrictBool = False
    frustrated: StrictBool = False


class Interaction(BaseModel):
    timestamp: float
    message_type: str
    outcome: UserOutcome
    signal: float = Field(..., ge=-1, le=1)
    context: str = "general"


class PersonalizedThresholds(BaseModel):
    procrastination_high: float  # days
    procrastination_medium: float  # days
    activity_timeout: float  # hours


class ModelMetrics(BaseModel):
    total_predictions: int = 0
    correct_predictions: int = 0
    accuracy: float = Field(0.0, ge=0, le=1)
    last_updated: float = 0.0


class BehavioralModel(BaseModel):
    """Learned per-user model"""
    message_effectiveness: Dict[str, float] = Field(default_factory=dict)
    interactions: List[Interaction] = Field(default_factory=list)
    personalized_thresholds: PersonalizedThresholds
    model_metrics: ModelMetrics = Field(default_factory=ModelMetrics)
    created_at: float


class CompletionRecord(BaseModel):
    time: float
    hour: int = Field(..., ge=0, le=23)
    priority: NotificationPriority = NotificationPriority.MEDIUM


class ProductivityWindow(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    completions: int
    score: float = Field(..., ge=0, le=1)


class CompletionPattern(BaseModel):
    """In-memory session pattern, snapshotted to the store"""
    active_hours: Tuple[int, int] = (9, 17)
    quiet_hours: Tuple[int, int] = (22, 7)
    last_activity: float = 0.0
    engagement_score: float = Field(0.5, ge=0, le=1)
    engagement_updated_at: float = 0.0
    completion_streak: int = 0
    completion_history: List[CompletionRecord] = Field(default_factory=list)
    productivity_windows: List[ProductivityWindow] = Field(default_factory=list)
    started_at: float = 0.0


class PredictiveInsight(BaseModel):
    optimal_hour: int
    confidence: float
    reason: str
    sample_size: int = 0


class BehavioralInsight(BaseModel):
    procrastination_risk: ProcrastinationRisk
    optimal_intervention_timing: InterventionTiming
    completion_probability: float
    days_since_completion: float
    hours_since_activity: float
    engagement_score: float
    completion_streak: int


class PredictionContext(BaseModel):
    time_of_day: TimeOfDay
    priority: NotificationPriority
    streak: int = Field(..., ge=0)
    engagement: float = Field(..., ge=0, le=1)


class PredictionResult(BaseModel):
    message_type: str
    prediction: float
    confidence: float
    reasoning: List[str] = Field(default_factory=list)


class MessageContext(BaseModel):
    streak: int = Field(..., ge=0)
    engagement: float = Field(..., ge=0, le=1)
    time_of_day: TimeOfDay
    priority: NotificationPriority
    category: Optional[str] = None


class NudgeMessage(BaseModel):
    title: str
    body: str


class TaskContext(BaseModel):
    """Pending task a contextual nudge is about"""
    text: str = ""
    priority: NotificationPriority = NotificationPriority.MEDIUM
    category: Optional[str] = None


class NotificationAttempt(BaseModel):
    timestamp: float
    type: NotificationType
    success: bool


class RateLimitState(BaseModel):
    attempts: List[NotificationAttempt] = Field(default_factory=list)
    last_notification_time: float = 0.0
    consecutive_failures: int = 0


class RateLimitStatus(BaseModel):
    notifications_in_window: int
    max_notifications: int
    cooldown_active: bool
    next_allowed_time: float
    consecutive_failures: int
    time_until_next: float


class QueuedNotification(BaseModel):
    id: str
    title: str
    body: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    context: Optional[Dict[str, Any]] = None
    attempts: int = 0
    next_retry_at: float
    created_at: float
    type: NotificationType


class ExperimentAssignment(BaseModel):
    experiment_id: str
    variant: str
    assigned_at: float


class MetricAggregate(BaseModel):
    sum: float = 0.0
    count: int = 0


class ExperimentState(BaseModel):
    assignments: Dict[str, ExperimentAssignment] = Field(default_factory=dict)
    # experiment -> variant -> metric -> aggregate
    metrics: Dict[str, Dict[str, Dict[str, MetricAggregate]]] = Field(default_factory=dict)
