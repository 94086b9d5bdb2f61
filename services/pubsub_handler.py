import asyncio
import logging
import json

from config.redis_client import RedisClient
from services.key_value_store import STORAGE_SYNC_CHANNEL

logger = logging.getLogger(__name__)

CHANNELS = [
    "tasks:completed",
    "tasks:activity",
    "nudges:feedback",
    "client:connectivity",
    STORAGE_SYNC_CHANNEL,
]


class PubSubListener:
    """Redis pub/sub listener feeding client events into the nudge engine"""

    def __init__(self, engine, client: RedisClient):
        self.engine = engine
        self.client = client
        self.running = False
        self.task = None
        self.pubsub = None

    async def start(self):
        """Start listening to Redis pub/sub channels"""
        if self.running:
            logger.warning("PubSub listener already running")
            return

        self.running = True
        self.pubsub = await self.client.subscribe_to_channels(CHANNELS)
        self.task = asyncio.create_task(self._listen_loop())
        logger.info(f"📡 PubSub listener started for channels: {CHANNELS}")

    async def stop(self):
        """Stop the pub/sub listener"""
        self.running = False

        if self.pubsub:
            await self.pubsub.unsubscribe()
            await self.pubsub.close()

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        logger.info("⏹️ PubSub listener stopped")

    async def _listen_loop(self):
        try:
            async for message in self.pubsub.listen():
                if not self.running:
                    break

                if message["type"] == "message":
                    await self.handle_message(message)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Error in listen loop: {e}")

    async def handle_message(self, message: dict):
        """Dispatch one pub/sub message by channel"""
        try:
            channel = message["channel"]
            data = json.loads(message["data"])
            if not isinstance(data, dict):
                logger.warning(f"Ignoring non-object payload on {channel}")
                return

            logger.debug(f"📨 Received message on {channel}: {data.get('type')}")

            if channel == "tasks:completed":
                await self._handle_task_completed(data)
            elif channel == "tasks:activity":
                self.engine.orchestrator.update_activity()
            elif channel == "nudges:feedback":
                await self._handle_feedback(data)
            elif channel == "client:connectivity":
                await self._handle_connectivity(data)
            elif channel == STORAGE_SYNC_CHANNEL:
                await self._handle_storage_sync(data)

        except Exception as e:
            logger.error(f"Error handling message: {e}")

    async def _handle_task_completed(self, data: dict):
        priority = data.get("priority", "medium")
        try:
            self.engine.orchestrator.record_task_completion(priority)
        except ValueError:
            logger.warning(f"Invalid task priority {priority!r}, recording as medium")
            self.engine.orchestrator.record_task_completion()
        logger.info(f"✅ Task completed (priority: {priority})")

    async def _handle_feedback(self, data: dict):
        accepted = self.engine.orchestrator.process_feedback(
            data.get("message_type"),
            data.get("outcome"),
            data.get("context"),
        )
        if not accepted:
            logger.warning("Feedback message rejected")

    async def _handle_connectivity(self, data: dict):
        online = data.get("online")
        if not isinstance(online, bool):
            logger.warning(f"Invalid connectivity payload: {data}")
            return
        await self.engine.delivery_queue.set_online(online)

    async def _handle_storage_sync(self, data: dict):
        # Our own writes come back on the same channel
        if data.get("source") == self.engine.store.instance_id:
            return
        key = data.get("key")
        if key:
            await self.engine.reload_key(key)
