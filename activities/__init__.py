"""Activity definitions module."""

from activities.notify import (
    process_notifications,
    ProcessNotificationsInput,
)

__all__ = [
    "process_notifications",
    "ProcessNotificationsInput",
]
