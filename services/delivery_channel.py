"""
Notification Delivery Channels

The delivery primitive the nudge engine hands finished notifications to.
RedisDeliveryChannel publishes them for the client app to display at the
scheduled time.
"""

from abc import ABC, abstractmethod
import logging

from config.redis_client import RedisClient

DELIVERY_CHANNEL = "notifications:deliver"


class DeliveryChannel(ABC):
    """Schedules a notification on the user's device"""

    @abstractmethod
    async def deliver(self, title: str, body: str, scheduled_at: float) -> bool:
        """
        Hand a notification to the client.

        Args:
            title: Notification title
            body: Notification body
            scheduled_at: Epoch seconds at which it should be shown

        Returns:
            True when the client accepted it
        """


class RedisDeliveryChannel(DeliveryChannel):
    """Publishes notifications to the client app over Redis pub/sub"""

    def __init__(self, client: RedisClient, channel: str = DELIVERY_CHANNEL):
        self.client = client
        self.channel = channel
        self.logger = logging.getLogger("RedisDeliveryChannel")

    async def deliver(self, title: str, body: str, scheduled_at: float) -> bool:
        receivers = await self.client.publish_event(self.channel, {
            "type": "notification",
            "title": title,
            "body": body,
            "scheduled_at": scheduled_at,
        })
        if not receivers:
            self.logger.debug(f"No client listening on {self.channel}")
            return False
        return True
