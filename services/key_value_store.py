"""
Persistent Key-Value Store

JSON blobs addressed by fixed string keys. The Redis implementation is the
production store; InMemoryKeyValueStore serves tests and single-process runs.
Writes publish a sync notice so other instances can reload the latest value
(last write wins, no arbitration).
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from config.redis_client import RedisClient

logger = logging.getLogger(__name__)

STORAGE_SYNC_CHANNEL = "nudge:storage_sync"

BEHAVIORAL_MODELS_KEY = "nudge:behavioral_models"
RATE_LIMIT_STATE_KEY = "nudge:rate_limit_state"
DELIVERY_QUEUE_KEY = "nudge:delivery_queue"
EXPERIMENTS_KEY = "nudge:experiments"
COMPLETION_PATTERN_KEY = "nudge:completion_pattern"


class StorageError(Exception):
    """Raised when a store read or write fails"""


class KeyValueStore(ABC):
    """Async get/set of JSON-serialisable blobs"""

    def __init__(self):
        self.instance_id = uuid.uuid4().hex[:12]

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str):
        pass

    @abstractmethod
    async def delete(self, key: str):
        pass

    async def get_json(self, key: str, default: Any = None) -> Any:
        """
        Read and decode a blob.

        Corrupted payloads are logged and replaced by the default; connection
        failures surface as StorageError so callers can decide how to degrade.
        """
        raw = await self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupted blob under {key}, using default: {e}")
            return default

    async def set_json(self, key: str, value: Any):
        await self.set(key, json.dumps(value, default=str))


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self.data: Dict[str, str] = dict(initial or {})
        self.write_count = 0

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str):
        self.data[key] = value
        self.write_count += 1

    async def delete(self, key: str):
        self.data.pop(key, None)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store with sync broadcast on write"""

    def __init__(self, client: RedisClient, publish_sync: bool = True):
        super().__init__()
        self.client = client
        self.publish_sync = publish_sync

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get_value(key)
        except Exception as e:
            raise StorageError(f"Read failed for {key}: {e}") from e

    async def set(self, key: str, value: str):
        try:
            await self.client.set_value(key, value)
        except Exception as e:
            raise StorageError(f"Write failed for {key}: {e}") from e
        await self._broadcast(key)

    async def delete(self, key: str):
        try:
            await self.client.delete_value(key)
        except Exception as e:
            raise StorageError(f"Delete failed for {key}: {e}") from e
        await self._broadcast(key)

    async def _broadcast(self, key: str):
        if not self.publish_sync:
            return
        try:
            await self.client.publish_event(STORAGE_SYNC_CHANNEL, {
                "type": "storage_changed",
                "key": key,
                "source": self.instance_id,
            })
        except Exception as e:
            logger.debug(f"Storage sync broadcast failed for {key}: {e}")
