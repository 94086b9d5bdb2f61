"""
Behavioral Model Storage Service

Persists one BehavioralModel per user under a single store key. Saves are
queued and flushed by a debounced batch write, so rapid successive updates
for the same user coalesce into one write.
"""

from typing import Any, Dict, Optional
import logging

from pydantic import ValidationError

from config.settings import settings
from models.behavioral import BehavioralModel
from services.key_value_store import BEHAVIORAL_MODELS_KEY, KeyValueStore
from services.task_scheduler import Debouncer, TaskScheduler

DAY_SECONDS = 24 * 60 * 60


class BehavioralModelStore:
    """Cache-backed store for per-user behavioral models"""

    def __init__(self, store: KeyValueStore, scheduler: TaskScheduler):
        self.store = store
        self.clock = scheduler.clock
        self.logger = logging.getLogger("BehavioralModelStore")
        self._models: Dict[str, Dict[str, Any]] = {}
        self._pending_writes: Dict[str, BehavioralModel] = {}
        self._debounced_write = Debouncer(
            scheduler,
            settings.BEHAVIORAL_WRITE_DEBOUNCE_SECONDS,
            self._flush_pending_writes,
            name="behavioral_model_write",
        )

    async def initialize(self):
        """Load all models from the store into the cache"""
        self._models = await self._load_all_models()
        self.logger.info(f"Loaded {len(self._models)} behavioral models")

    async def reload(self):
        """Refresh the cache after another instance wrote the key"""
        loaded = await self._load_all_models()
        # Unflushed local writes still win
        for user_id, model in self._pending_writes.items():
            loaded[user_id] = model.model_dump(mode="json")
        self._models = loaded

    async def _load_all_models(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = await self.store.get_json(BEHAVIORAL_MODELS_KEY, {})
        except Exception as e:
            self.logger.warning(f"Failed to read behavioral models, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.warning("Behavioral models blob is not a mapping, resetting")
            return {}
        return data

    def load_user_model(self, user_id: str) -> Optional[BehavioralModel]:
        """
        Get a user's model, or None when absent or invalid.

        Interactions older than the retention window are dropped on load.
        """
        pending = self._pending_writes.get(user_id)
        if pending is not None:
            return pending.model_copy(deep=True)

        raw = self._models.get(user_id)
        if raw is None:
            return None

        try:
            model = BehavioralModel.model_validate(raw)
        except ValidationError as e:
            self.logger.warning(f"Invalid model structure for {user_id}, resetting: {e.error_count()} errors")
            return None

        cutoff = self.clock.now() - settings.BEHAVIORAL_INTERACTION_RETENTION_DAYS * DAY_SECONDS
        model.interactions = [i for i in model.interactions if i.timestamp > cutoff]
        return model

    def save_user_model(self, user_id: str, model: BehavioralModel):
        """Queue a write; flushed after the debounce window"""
        compressed = model.model_copy(deep=True)
        cap = settings.BEHAVIORAL_MAX_INTERACTIONS
        if len(compressed.interactions) > cap:
            compressed.interactions = compressed.interactions[-cap:]

        self._pending_writes[user_id] = compressed
        self._debounced_write()

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending_writes)

    async def flush(self):
        """Write pending models now (e.g. before shutdown)"""
        if self._debounced_write.pending:
            await self._debounced_write.flush()
        elif self._pending_writes:
            await self._flush_pending_writes()

    async def _flush_pending_writes(self):
        if not self._pending_writes:
            return

        now = self.clock.now()
        all_models = dict(self._models)
        for user_id, model in self._pending_writes.items():
            model.model_metrics.last_updated = now
            all_models[user_id] = model.model_dump(mode="json")

        all_models = self._trim_old_models(all_models, now)

        try:
            await self.store.set_json(BEHAVIORAL_MODELS_KEY, all_models)
        except Exception as e:
            self.logger.error(f"Failed to flush {len(self._pending_writes)} pending writes: {e}")
            return

        flushed = len(self._pending_writes)
        self._models = all_models
        self._pending_writes.clear()
        self.logger.debug(f"Flushed {flushed} pending behavioral model writes")

    def _trim_old_models(self, all_models: Dict[str, Dict[str, Any]], now: float) -> Dict[str, Dict[str, Any]]:
        """Drop models not updated within the retention window"""
        cutoff = now - settings.BEHAVIORAL_MODEL_RETENTION_DAYS * DAY_SECONDS
        trimmed = {}
        for user_id, model in all_models.items():
            last_updated = (model.get("model_metrics") or {}).get("last_updated", 0) if isinstance(model, dict) else 0
            if last_updated > cutoff:
                trimmed[user_id] = model
            else:
                self.logger.info(f"Trimming stale behavioral model for {user_id}")
        return trimmed

    async def clear_user_model(self, user_id: str):
        """Delete a user's model (explicit reset)"""
        self._pending_writes.pop(user_id, None)
        if not self._pending_writes:
            self._debounced_write.cancel()
        self._models.pop(user_id, None)
        try:
            await self.store.set_json(BEHAVIORAL_MODELS_KEY, self._models)
        except Exception as e:
            self.logger.error(f"Failed to clear model for {user_id}: {e}")

    def get_storage_stats(self) -> Dict[str, int]:
        users = set(self._models) | set(self._pending_writes)
        total_interactions = 0
        for user_id in users:
            model = self.load_user_model(user_id)
            if model:
                total_interactions += len(model.interactions)
        return {
            "total_users": len(users),
            "total_interactions": total_interactions,
            "pending_writes": len(self._pending_writes),
        }
