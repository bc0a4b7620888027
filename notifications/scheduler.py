"""Notification Scheduler.

Runs hourly (see workflows/notification_workflow.py). For every user with
notifications enabled whose configured hours include the current hour,
emails each configured recipient a count of pending transactions per
type. Reads only the local store; it never calls DIA.

Hours are evaluated in the server's local time, and last_notification_sent
is stamped in the same clock.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.observability.logging import get_logger, with_correlation
from notifications.mail_service import MailDeliveryError, MailService, MailSettingsNotFound
from storage.settings import NotificationSettings, SettingsRepository
from storage.transactions import TransactionRepository

logger = get_logger(__name__)

MIN_INTERVAL = timedelta(hours=1)


@dataclass
class NotificationRunSummary:
    """What one scheduler run did."""
    users_checked: int = 0
    users_notified: int = 0
    users_skipped: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users_checked": self.users_checked,
            "users_notified": self.users_notified,
            "users_skipped": self.users_skipped,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "errors": list(self.errors),
        }


def is_due(setting: NotificationSettings, now: datetime) -> bool:
    """Whether a user should be notified at `now`."""
    if now.hour not in setting.notification_hours:
        return False
    last = setting.last_notification_sent
    if last is not None:
        if last.tzinfo is not None:
            last = last.astimezone().replace(tzinfo=None)
        if now - last < MIN_INTERVAL:
            return False
    return True


class NotificationScheduler:
    """Send pending-transaction summary emails.

    Usage:
        scheduler = NotificationScheduler(settings_repo, transactions, mail)
        summary = await scheduler.process_notifications()
    """

    def __init__(
        self,
        settings_repo: SettingsRepository,
        transactions: TransactionRepository,
        mail: MailService,
    ):
        self.settings_repo = settings_repo
        self.transactions = transactions
        self.mail = mail

    async def process_notifications(self, now: Optional[datetime] = None) -> NotificationRunSummary:
        """Run one notification pass over every enabled user."""
        now = now or datetime.now()
        summary = NotificationRunSummary()

        settings = self.settings_repo.list_enabled_notification_settings()
        logger.info(f"Found {len(settings)} users with notifications enabled")

        for setting in settings:
            summary.users_checked += 1
            with with_correlation(user_id=setting.user_id):
                try:
                    await self._notify_user(setting, now, summary)
                except Exception as e:
                    logger.exception("Notification processing failed for user")
                    summary.errors.append(f"{setting.user_id}: {e}")

        logger.info("Notification run completed", extra_fields=summary.to_dict())
        return summary

    async def _notify_user(
        self,
        setting: NotificationSettings,
        now: datetime,
        summary: NotificationRunSummary,
    ) -> None:
        if not is_due(setting, now):
            summary.users_skipped += 1
            return

        counts = self.transactions.pending_counts_by_type(setting.user_id)
        if not counts:
            logger.info("No pending transactions")
            summary.users_skipped += 1
            return

        for tx_type, count in counts.items():
            if count <= 0:
                continue
            for recipient in setting.recipients_for(tx_type):
                try:
                    sent = await self.mail.send_notification_email(setting.user_id, recipient, tx_type, count)
                except (MailDeliveryError, MailSettingsNotFound) as e:
                    logger.error(f"Failed to send {tx_type.value} notification to {recipient}: {e}")
                    summary.emails_failed += 1
                    continue
                if sent:
                    logger.info(f"Sent notification to {recipient} for {count} {tx_type.value}")
                    summary.emails_sent += 1

        self.settings_repo.mark_notification_sent(setting.user_id, now)
        summary.users_notified += 1
