"""Notification activities.

Activity wrapper around the notification scheduler so the hourly run is
driven by a Temporal cron workflow.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from temporalio import activity

from core.observability.logging import get_logger
from core.services import build_services

logger = get_logger(__name__)


@dataclass
class ProcessNotificationsInput:
    """Input for process_notifications activity.

    Attributes:
        run_at: ISO local timestamp to evaluate hours against (defaults to now)
    """
    run_at: Optional[str] = None


@activity.defn
async def process_notifications(input: ProcessNotificationsInput) -> dict:
    """Send pending-transaction summary emails to every due user.

    Returns:
        NotificationRunSummary as a dict
    """
    now = datetime.fromisoformat(input.run_at) if input.run_at else datetime.now()
    logger.info(f"Notification activity started for {now.isoformat()}")

    services = build_services()
    services.db.init_schema()
    try:
        summary = await services.scheduler.process_notifications(now)
    finally:
        await services.close()

    return summary.to_dict()
