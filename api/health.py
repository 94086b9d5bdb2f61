from fastapi import APIRouter, Depends
from datetime import datetime

from models.schemas import HealthCheckResponse, EngineHealthResponse
from config.redis_client import redis_client
from agents.engine import NudgeEngine
from api.nudges import get_engine

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Basic health check for backing services"""

    services = {}

    if await redis_client.ping():
        services["redis"] = "connected"
    else:
        services["redis"] = "disconnected"

    status = "ok" if all(s == "connected" for s in services.values()) else "degraded"

    return HealthCheckResponse(
        status=status,
        timestamp=datetime.utcnow().isoformat(),
        services=services
    )


@router.get("/health/engine", response_model=EngineHealthResponse)
async def engine_health(engine: NudgeEngine = Depends(get_engine)):
    """Nudge engine health and statistics"""

    health = engine.monitoring.get_health_status()

    return EngineHealthResponse(
        status=health["status"],
        message=health["message"],
        orchestrator=engine.orchestrator.get_stats(),
        pending_timers=engine.scheduler.pending_count,
        queue=engine.delivery_queue.get_queue_stats(),
        storage=engine.behavioral_storage.get_storage_stats(),
    )
