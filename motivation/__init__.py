"""Nudge content and learning

Notification types, the message libraries and the adaptive learning engine
that tracks which kinds of messages work for the user.
"""

from motivation.nudge_types import (
    NotificationType,
    NotificationPriority,
    MessageType,
    NUDGE_CONFIGS,
)

__all__ = [
    "NotificationType",
    "NotificationPriority",
    "MessageType",
    "NUDGE_CONFIGS",
]
