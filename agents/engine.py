"""
Nudge Engine assembly

Builds every component once and wires them together. The FastAPI lifespan
creates one NudgeEngine at startup and routes reach it through
request.app.state.engine.
"""

import random
from dataclasses import dataclass
from typing import Optional
import logging

from agents.nudge_orchestrator import NudgeOrchestrator
from analytics.pattern_tracker import PatternTracker
from config.settings import settings
from motivation.learning_engine import AdaptiveLearningEngine
from motivation.message_generator import MessageGenerator
from services.behavioral_storage import BehavioralModelStore
from services.delivery_channel import DeliveryChannel
from services.delivery_queue import DeliveryQueue
from services.experiment_service import ExperimentService
from services.key_value_store import (
    BEHAVIORAL_MODELS_KEY,
    COMPLETION_PATTERN_KEY,
    DELIVERY_QUEUE_KEY,
    EXPERIMENTS_KEY,
    RATE_LIMIT_STATE_KEY,
    KeyValueStore,
)
from services.nudge_monitoring import NudgeMonitoringService
from services.periodic_check import PeriodicCheck
from services.rate_limiter import RateLimiter
from services.task_scheduler import Clock, SystemClock, TaskScheduler

logger = logging.getLogger(__name__)


@dataclass
class NudgeEngine:
    """All engine components for one user"""
    store: KeyValueStore
    clock: Clock
    scheduler: TaskScheduler
    behavioral_storage: BehavioralModelStore
    pattern_tracker: PatternTracker
    learning_engine: AdaptiveLearningEngine
    experiments: ExperimentService
    message_generator: MessageGenerator
    rate_limiter: RateLimiter
    delivery_queue: DeliveryQueue
    monitoring: NudgeMonitoringService
    orchestrator: NudgeOrchestrator
    periodic_check: PeriodicCheck

    async def initialize(self):
        """Load persisted state into every component"""
        await self.behavioral_storage.initialize()
        await self.pattern_tracker.initialize()
        await self.experiments.initialize()
        await self.rate_limiter.initialize()
        await self.delivery_queue.initialize()
        logger.info("✅ Nudge engine initialized")

    async def start(self):
        """Start background timers and loops"""
        await self.scheduler.start()
        await self.delivery_queue.start()
        await self.periodic_check.start()

    async def stop(self):
        """Stop loops and write everything still pending"""
        await self.periodic_check.stop()
        await self.delivery_queue.stop()
        await self.scheduler.stop()
        await self.flush()
        logger.info("⏹️ Nudge engine stopped")

    async def flush(self):
        await self.behavioral_storage.flush()
        await self.pattern_tracker.flush()
        await self.experiments.flush()

    async def reload_key(self, key: str) -> bool:
        """Reload the component that owns a store key (cross-instance sync)"""
        reloaders = {
            BEHAVIORAL_MODELS_KEY: self.behavioral_storage.reload,
            COMPLETION_PATTERN_KEY: self.pattern_tracker.reload,
            EXPERIMENTS_KEY: self.experiments.reload,
            RATE_LIMIT_STATE_KEY: self.rate_limiter.reload,
            DELIVERY_QUEUE_KEY: self.delivery_queue.reload,
        }
        reload = reloaders.get(key)
        if reload is None:
            return False
        await reload()
        logger.debug(f"🔁 Reloaded {key} after external write")
        return True


def create_nudge_engine(
    store: KeyValueStore,
    delivery: DeliveryChannel,
    clock: Optional[Clock] = None,
    user_id: Optional[str] = None,
    rng: Optional[random.Random] = None
) -> NudgeEngine:
    """
    Build a fully wired engine.

    Args:
        store: Persistent key-value store
        delivery: Delivery channel for finished notifications
        clock: Time source (SystemClock by default)
        user_id: User the engine learns for
        rng: Random source for variant assignment, message choice and jitter

    Returns:
        NudgeEngine (call initialize() before use)
    """
    clock = clock or SystemClock()
    rng = rng or random.Random()
    scheduler = TaskScheduler(clock, poll_interval=settings.SCHEDULER_POLL_INTERVAL_SECONDS)

    behavioral_storage = BehavioralModelStore(store, scheduler)
    pattern_tracker = PatternTracker(store, scheduler)
    learning_engine = AdaptiveLearningEngine(behavioral_storage, user_id or settings.NUDGE_USER_ID)
    experiments = ExperimentService(store, scheduler, rng=rng)
    message_generator = MessageGenerator(rng=rng)
    rate_limiter = RateLimiter(store, clock)
    delivery_queue = DeliveryQueue(store, clock, delivery, can_send=rate_limiter.can_send, rng=rng)
    monitoring = NudgeMonitoringService(clock)

    orchestrator = NudgeOrchestrator(
        pattern_tracker=pattern_tracker,
        learning_engine=learning_engine,
        experiments=experiments,
        message_generator=message_generator,
        rate_limiter=rate_limiter,
        delivery=delivery,
        delivery_queue=delivery_queue,
        monitoring=monitoring,
    )
    delivery_queue.on_result = orchestrator.on_queue_result

    return NudgeEngine(
        store=store,
        clock=clock,
        scheduler=scheduler,
        behavioral_storage=behavioral_storage,
        pattern_tracker=pattern_tracker,
        learning_engine=learning_engine,
        experiments=experiments,
        message_generator=message_generator,
        rate_limiter=rate_limiter,
        delivery_queue=delivery_queue,
        monitoring=monitoring,
        orchestrator=orchestrator,
        periodic_check=PeriodicCheck(orchestrator),
    )
