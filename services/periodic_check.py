import asyncio
import logging
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)


class PeriodicCheck:
    """Periodically checks for procrastination and sends interventions"""

    def __init__(self, orchestrator, interval: Optional[float] = None):
        self.orchestrator = orchestrator
        self.interval = interval if interval is not None else settings.PERIODIC_CHECK_INTERVAL_SECONDS
        self.running = False
        self.task = None
        self.checks_run = 0
        self.interventions_sent = 0

    async def start(self):
        """Start the periodic check"""
        if self.running:
            logger.warning("Periodic check already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._check_loop())
        logger.info(f"🔄 Periodic check started (interval: {self.interval}s)")

    async def stop(self):
        """Stop the periodic check"""
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("⏹️ Periodic check stopped")

    async def _check_loop(self):
        """Main check loop"""
        while self.running:
            try:
                await asyncio.sleep(self.interval)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in periodic check loop: {e}")

    async def run_once(self) -> bool:
        self.checks_run += 1
        sent = await self.orchestrator.run_periodic_check()
        if sent:
            self.interventions_sent += 1
            logger.info("📣 Periodic check sent an intervention")
        return sent
