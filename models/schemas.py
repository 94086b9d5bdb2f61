from pydantic import BaseModel, Field
from typing import Dict, Any, Optional

from motivation.nudge_types import NotificationPriority, NotificationType


class HealthCheckResponse(BaseModel):
    status: str
    timestamp: str
    services: Dict[str, str]


class EngineHealthResponse(BaseModel):
    status: str
    message: str
    orchestrator: Dict[str, Any]
    pending_timers: int
    queue: Dict[str, Any]
    storage: Dict[str, int]


class SendNudgeRequest(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.CONTEXTUAL
    priority: Optional[NotificationPriority] = None
    delay_seconds: Optional[float] = Field(None, ge=0, description="Computed from the user's pattern when omitted")
    context: Optional[Dict[str, Any]] = None


class NudgeResultResponse(BaseModel):
    sent: bool


class TaskCompletionRequest(BaseModel):
    priority: NotificationPriority = NotificationPriority.MEDIUM


class FeedbackRequest(BaseModel):
    """Outcome is validated by the learning engine so bad input is ignored, not rejected"""
    message_type: Any = None
    outcome: Any = None
    context: Optional[str] = None


class FeedbackResponse(BaseModel):
    accepted: bool


class ConnectivityRequest(BaseModel):
    online: bool


class AcknowledgeResponse(BaseModel):
    status: str = "ok"
