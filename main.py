from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from config.settings import settings
from config.redis_client import redis_client
from api.health import router as health_router
from api.nudges import router as nudges_router
from agents.engine import create_nudge_engine
from services.delivery_channel import RedisDeliveryChannel
from services.key_value_store import RedisKeyValueStore
from services.pubsub_handler import PubSubListener

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events for FastAPI application"""
    # Startup
    logger.info("🚀 Starting Nudge Engine...")

    try:
        await redis_client.connect()

        engine = create_nudge_engine(
            store=RedisKeyValueStore(redis_client),
            delivery=RedisDeliveryChannel(redis_client),
        )
        await engine.initialize()
        await engine.start()

        pubsub_listener = PubSubListener(engine, redis_client)
        await pubsub_listener.start()

        app.state.engine = engine
        app.state.pubsub_listener = pubsub_listener

        logger.info("✅ Nudge Engine started successfully")
        logger.info(f"📡 API available at http://0.0.0.0:8000")
        logger.info(f"📚 API docs at http://0.0.0.0:8000/docs")

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("⏳ Shutting down Nudge Engine...")

    try:
        await app.state.pubsub_listener.stop()
        await app.state.engine.stop()

        await redis_client.disconnect()

        logger.info("✅ Nudge Engine shut down gracefully")

    except Exception as e:
        logger.error(f"❌ Shutdown error: {e}")


# Initialize FastAPI app
app = FastAPI(
    title="Nudge Engine",
    description="Adaptive notification engine for task reminders",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.CLIENT_APP_URL,
        "http://localhost:3000",
        "http://localhost:5173"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(nudges_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Nudge Engine",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
