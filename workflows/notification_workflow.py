"""Notification Workflow.

Runs the notification activity once. Started with a cron schedule
(`0 * * * *` by default, see scripts/start_notification_schedule.py) so
Temporal fires it hourly at minute 0.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.notify import process_notifications, ProcessNotificationsInput


@workflow.defn
class NotificationWorkflow:
    """Hourly pending-transaction summary emails."""

    @workflow.run
    async def run(self) -> dict:
        # Failed sends are logged by the scheduler; the run is not retried
        return await workflow.execute_activity(
            process_notifications,
            ProcessNotificationsInput(),
            start_to_close_timeout=timedelta(minutes=10),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )
