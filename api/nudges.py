"""
Nudge API Endpoints

REST surface of the nudge engine: send entry points, activity, completion
and feedback ingestion, behavioral insights, rate-limit and queue status,
and experiment results.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Any, Dict, Optional
import logging

from agents.engine import NudgeEngine
from models.behavioral import (
    BehavioralInsight,
    PredictionContext,
    PredictionResult,
    PredictiveInsight,
    RateLimitStatus,
    TaskContext,
)
from models.schemas import (
    AcknowledgeResponse,
    ConnectivityRequest,
    FeedbackRequest,
    FeedbackResponse,
    NudgeResultResponse,
    SendNudgeRequest,
    TaskCompletionRequest,
)
from motivation.nudge_types import Experiment

router = APIRouter(prefix="/api/nudges", tags=["nudges"])
logger = logging.getLogger(__name__)


def get_engine(request: Request) -> NudgeEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Nudge engine not initialized")
    return engine


# ----------------------------------------------------------------------
# Send entry points
# ----------------------------------------------------------------------

@router.post("/send", response_model=NudgeResultResponse)
async def send_nudge(request: SendNudgeRequest, engine: NudgeEngine = Depends(get_engine)):
    """Send a nudge with caller-supplied content"""
    sent = await engine.orchestrator.send_nudge(
        request.title,
        request.body,
        notification_type=request.type,
        priority=request.priority,
        delay=request.delay_seconds,
        context=request.context,
    )
    return NudgeResultResponse(sent=sent)


@router.post("/contextual", response_model=NudgeResultResponse)
async def send_contextual_nudge(task: TaskContext, engine: NudgeEngine = Depends(get_engine)):
    """Send a reminder about a pending task"""
    return NudgeResultResponse(sent=await engine.orchestrator.send_contextual_nudge(task))


@router.post("/motivational", response_model=NudgeResultResponse)
async def generate_motivational_nudge(engine: NudgeEngine = Depends(get_engine)):
    return NudgeResultResponse(sent=await engine.orchestrator.generate_motivational_nudge())


@router.post("/intervention", response_model=NudgeResultResponse)
async def send_behavioral_intervention(engine: NudgeEngine = Depends(get_engine)):
    """Send an intervention if procrastination risk is medium or high"""
    return NudgeResultResponse(sent=await engine.orchestrator.send_behavioral_intervention())


# ----------------------------------------------------------------------
# Ingestion
# ----------------------------------------------------------------------

@router.post("/activity", response_model=AcknowledgeResponse)
async def record_activity(engine: NudgeEngine = Depends(get_engine)):
    engine.orchestrator.update_activity()
    return AcknowledgeResponse()


@router.post("/completions", response_model=AcknowledgeResponse)
async def record_task_completion(request: TaskCompletionRequest, engine: NudgeEngine = Depends(get_engine)):
    engine.orchestrator.record_task_completion(request.priority)
    return AcknowledgeResponse()


@router.post("/feedback", response_model=FeedbackResponse)
async def process_feedback(request: FeedbackRequest, engine: NudgeEngine = Depends(get_engine)):
    """
    Learn from the user's response to a nudge.

    Malformed feedback is logged and ignored; the response reports whether
    the model was updated.
    """
    accepted = engine.orchestrator.process_feedback(request.message_type, request.outcome, request.context)
    return FeedbackResponse(accepted=accepted)


@router.post("/connectivity", response_model=AcknowledgeResponse)
async def set_connectivity(request: ConnectivityRequest, engine: NudgeEngine = Depends(get_engine)):
    await engine.delivery_queue.set_online(request.online)
    return AcknowledgeResponse()


# ----------------------------------------------------------------------
# Insights and status
# ----------------------------------------------------------------------

@router.get("/insights", response_model=BehavioralInsight)
async def get_behavioral_insights(engine: NudgeEngine = Depends(get_engine)):
    try:
        return engine.orchestrator.get_behavioral_insights()
    except Exception as e:
        logger.error(f"Failed to analyze behavior: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to analyze behavior")


@router.get("/insights/predictive", response_model=PredictiveInsight)
async def get_predictive_insight(engine: NudgeEngine = Depends(get_engine)):
    return engine.pattern_tracker.get_predictive_insight()


@router.post("/predict", response_model=PredictionResult)
async def predict_optimal_message_type(context: PredictionContext, engine: NudgeEngine = Depends(get_engine)):
    return engine.learning_engine.predict_optimal_message_type(context)


@router.get("/model")
async def get_model_insights(engine: NudgeEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.learning_engine.get_model_insights()


@router.delete("/model", response_model=AcknowledgeResponse)
async def reset_model(engine: NudgeEngine = Depends(get_engine)):
    try:
        await engine.learning_engine.reset_model()
    except Exception as e:
        logger.error(f"Failed to reset model: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to reset behavioral model")
    return AcknowledgeResponse()


@router.get("/rate-limit", response_model=RateLimitStatus)
async def get_rate_limit_status(engine: NudgeEngine = Depends(get_engine)):
    return engine.rate_limiter.get_status()


@router.get("/queue")
async def get_queue_stats(engine: NudgeEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.delivery_queue.get_queue_stats()


@router.delete("/queue", response_model=AcknowledgeResponse)
async def clear_queue(engine: NudgeEngine = Depends(get_engine)):
    await engine.delivery_queue.clear_queue()
    return AcknowledgeResponse()


@router.get("/experiments")
async def get_current_experiments(engine: NudgeEngine = Depends(get_engine)) -> Dict[str, Optional[str]]:
    return engine.experiments.get_current_experiments()


@router.get("/experiments/{experiment_id}")
async def get_experiment_results(experiment_id: str, engine: NudgeEngine = Depends(get_engine)) -> Dict[str, Any]:
    try:
        Experiment(experiment_id)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown experiment: {experiment_id}")
    return {
        "experiment_id": experiment_id,
        "results": engine.experiments.get_experiment_results(experiment_id),
    }


@router.get("/stats")
async def get_stats(engine: NudgeEngine = Depends(get_engine)) -> Dict[str, Any]:
    try:
        return engine.orchestrator.get_stats()
    except Exception as e:
        logger.error(f"Failed to collect engine stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to collect engine stats")
