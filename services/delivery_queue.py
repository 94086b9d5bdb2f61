"""
Offline Delivery Queue

Holds notifications that could not be delivered (client offline or delivery
failure) and retries them with exponential backoff and jitter. The queue is
persisted so pending notifications survive a restart.
"""

import asyncio
import inspect
import random
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from pydantic import TypeAdapter, ValidationError

from config.settings import settings
from models.behavioral import QueuedNotification
from motivation.nudge_types import (
    NotificationPriority,
    NotificationType,
    PRIORITY_ORDER,
)
from services.delivery_channel import DeliveryChannel
from services.key_value_store import DELIVERY_QUEUE_KEY, KeyValueStore
from services.task_scheduler import Clock

ResultHook = Callable[[QueuedNotification, bool], Optional[Awaitable[None]]]
SendGate = Callable[[NotificationType], bool]

_queue_adapter = TypeAdapter(List[QueuedNotification])


class DeliveryQueue:
    """Priority-ordered retry queue for undelivered notifications"""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock,
        delivery: DeliveryChannel,
        on_result: Optional[ResultHook] = None,
        can_send: Optional[SendGate] = None,
        rng: Optional[random.Random] = None
    ):
        self.store = store
        self.clock = clock
        self.delivery = delivery
        self.on_result = on_result
        self.can_send = can_send
        self.rng = rng or random.Random()
        self.logger = logging.getLogger("DeliveryQueue")

        self.queue: List[QueuedNotification] = []
        self.is_online = True
        self.interval = settings.QUEUE_PROCESS_INTERVAL_SECONDS
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._processing = False

    async def initialize(self):
        await self.reload()
        self.logger.info(f"Loaded {len(self.queue)} queued notifications")

    async def reload(self):
        try:
            data = await self.store.get_json(DELIVERY_QUEUE_KEY)
        except Exception as e:
            self.logger.warning(f"Failed to load queue, keeping current: {e}")
            return
        if data is None:
            return
        try:
            self.queue = _queue_adapter.validate_python(data)
        except ValidationError as e:
            self.logger.warning(f"Invalid queue blob, starting empty: {e.error_count()} errors")
            self.queue = []

    async def _save_queue(self):
        try:
            await self.store.set_json(DELIVERY_QUEUE_KEY, _queue_adapter.dump_python(self.queue, mode="json"))
        except Exception as e:
            self.logger.warning(f"Failed to save queue: {e}")

    async def enqueue(
        self,
        title: str,
        body: str,
        notification_type: NotificationType,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Add a notification, ordered by priority then insertion.

        Returns:
            The queued notification id
        """
        now = self.clock.now()
        notification = QueuedNotification(
            id=f"notif_{int(now * 1000)}_{uuid.uuid4().hex[:9]}",
            title=title,
            body=body,
            priority=priority,
            context=context,
            attempts=0,
            next_retry_at=now,
            created_at=now,
            type=notification_type,
        )

        rank = PRIORITY_ORDER[notification.priority]
        insert_at = next(
            (i for i, n in enumerate(self.queue) if PRIORITY_ORDER[n.priority] > rank),
            len(self.queue)
        )
        self.queue.insert(insert_at, notification)

        if len(self.queue) > settings.QUEUE_MAX_SIZE:
            self._evict_one()

        await self._save_queue()
        self.logger.info(f"📥 Enqueued {notification.type.value} notification (priority: {notification.priority.value})")
        return notification.id

    def _evict_one(self):
        lowest_rank = max(PRIORITY_ORDER[n.priority] for n in self.queue)
        candidates = [n for n in self.queue if PRIORITY_ORDER[n.priority] == lowest_rank]
        victim = min(candidates, key=lambda n: n.created_at)
        self.queue.remove(victim)
        self.logger.warning(f"Queue full, evicted {victim.id} ({victim.priority.value})")

    def calculate_backoff(self, attempts: int) -> float:
        """Exponential backoff with up to 10% jitter (seconds)"""
        delay = min(
            settings.QUEUE_BASE_BACKOFF_SECONDS * settings.QUEUE_BACKOFF_MULTIPLIER ** attempts,
            settings.QUEUE_MAX_BACKOFF_SECONDS
        )
        return delay + delay * settings.QUEUE_JITTER_FACTOR * self.rng.random()

    async def process_queue(self) -> int:
        """
        Try every ready notification once.

        Returns:
            Number of notifications delivered
        """
        if not self.is_online or not self.queue or self._processing:
            return 0

        self._processing = True
        try:
            return await self._process_ready()
        finally:
            self._processing = False

    async def _process_ready(self) -> int:
        now = self.clock.now()
        ready = [
            n for n in self.queue
            if n.next_retry_at <= now and n.attempts < settings.QUEUE_MAX_ATTEMPTS
        ]
        delivered = 0

        for notification in ready:
            if self.can_send is not None and not self.can_send(notification.type):
                # Not an attempt; retry timing is left alone
                self.logger.debug(f"Rate limited, holding {notification.id}")
                continue

            try:
                success = await self.delivery.deliver(notification.title, notification.body, now)
            except Exception as e:
                self.logger.error(f"Error delivering {notification.id}: {e}")
                success = False

            if success:
                self._remove(notification.id)
                delivered += 1
                self.logger.info(f"✅ Delivered queued {notification.type.value} notification")
            else:
                notification.attempts += 1
                notification.next_retry_at = now + self.calculate_backoff(notification.attempts)
                if notification.attempts >= settings.QUEUE_MAX_ATTEMPTS:
                    self.logger.warning(f"Max attempts reached for {notification.id}, dropping")
                    self._remove(notification.id)
                else:
                    self.logger.info(
                        f"Retry for {notification.id} in {notification.next_retry_at - now:.0f}s"
                    )

            await self._notify_result(notification, success)

        cutoff = now - settings.QUEUE_RETENTION_SECONDS
        self.queue = [n for n in self.queue if n.created_at > cutoff]
        await self._save_queue()
        return delivered

    def _remove(self, notification_id: str):
        self.queue = [n for n in self.queue if n.id != notification_id]

    async def _notify_result(self, notification: QueuedNotification, success: bool):
        if self.on_result is None:
            return
        try:
            result = self.on_result(notification, success)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Result hook failed for {notification.id}: {e}", exc_info=True)

    async def set_online(self, online: bool):
        """Connectivity change; coming online triggers an immediate pass"""
        was_online = self.is_online
        self.is_online = online
        if online and not was_online:
            self.logger.info("🌐 Connection restored, processing queue")
            await self.process_queue()
        elif not online and was_online:
            self.logger.info("📴 Connection lost, queuing notifications")

    async def start(self):
        """Start the periodic queue processor"""
        if self.running:
            self.logger.warning("Queue processor already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._process_loop())
        self.logger.info(f"🔄 Queue processor started (interval: {self.interval}s)")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        self.logger.info("⏹️ Queue processor stopped")

    async def _process_loop(self):
        while self.running:
            try:
                await self.process_queue()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in queue loop: {e}")
                await asyncio.sleep(self.interval)

    def get_queue_stats(self) -> Dict[str, Any]:
        now = self.clock.now()
        return {
            "total": len(self.queue),
            "pending": sum(1 for n in self.queue if n.next_retry_at <= now),
            "is_online": self.is_online,
            "by_priority": {
                p.value: sum(1 for n in self.queue if n.priority == p) for p in NotificationPriority
            },
            "by_type": {
                t.value: sum(1 for n in self.queue if n.type == t) for t in NotificationType
            },
        }

    async def clear_queue(self):
        self.queue = []
        await self._save_queue()
        self.logger.info("Queue cleared")
