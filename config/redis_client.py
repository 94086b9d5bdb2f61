import redis.asyncio as aioredis
from redis.asyncio import Redis
from typing import List, Optional
import json
import logging

from config.settings import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper with helper methods"""

    def __init__(self):
        self.data_client: Optional[Redis] = None
        self.pubsub_client: Optional[Redis] = None

    async def connect(self):
        """Initialize Redis connections"""
        try:
            # Data client for persisted nudge state
            self.data_client = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10
            )

            # Pub/Sub client
            self.pubsub_client = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )

            # Test connections
            await self.data_client.ping()
            await self.pubsub_client.ping()

            logger.info("✅ Redis connections initialized")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            raise

    async def disconnect(self):
        """Close Redis connections"""
        if self.data_client:
            await self.data_client.close()
        if self.pubsub_client:
            await self.pubsub_client.close()
        logger.info("🔌 Redis connections closed")

    @property
    def connected(self) -> bool:
        return self.data_client is not None

    async def get_value(self, key: str) -> Optional[str]:
        """Read a raw string value. Raises on connection errors."""
        return await self.data_client.get(key)

    async def set_value(self, key: str, value: str):
        """Write a raw string value. Raises on connection or OOM errors."""
        await self.data_client.set(key, value)

    async def delete_value(self, key: str):
        await self.data_client.delete(key)

    async def publish_event(self, channel: str, message: dict) -> int:
        """Publish to pub/sub channel, returns the receiver count"""
        receivers = await self.pubsub_client.publish(channel, json.dumps(message))
        logger.debug(f"📤 Published to {channel}: {message.get('type')}")
        return receivers

    async def subscribe_to_channels(self, channels: List[str]):
        """Subscribe to multiple channels"""
        pubsub = self.pubsub_client.pubsub()
        await pubsub.subscribe(*channels)
        logger.info(f"📡 Subscribed to channels: {channels}")
        return pubsub

    async def ping(self) -> bool:
        try:
            return bool(await self.data_client.ping())
        except Exception as e:
            logger.debug(f"Redis ping failed: {e}")
            return False


# Global Redis client instance
redis_client = RedisClient()
