"""Notifications - hourly pending-transaction summary emails."""

from notifications.mail_service import (
    TRANSACTION_TYPE_LABELS,
    MailDeliveryError,
    MailService,
    MailSettingsNotFound,
)
from notifications.scheduler import NotificationRunSummary, NotificationScheduler

__all__ = [
    "TRANSACTION_TYPE_LABELS",
    "MailDeliveryError",
    "MailService",
    "MailSettingsNotFound",
    "NotificationRunSummary",
    "NotificationScheduler",
]
