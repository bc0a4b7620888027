"""Start the hourly notification cron workflow on Temporal.

Starts NotificationWorkflow with the configured cron schedule
(NOTIFICATION_CRON, default "0 * * * *"). Safe to re-run: an already
running schedule is reported and left in place.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.exceptions import WorkflowAlreadyStartedError

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import get_logger
from temporal_client import get_temporal_client
from workflows.notification_workflow import NotificationWorkflow

logger = get_logger(__name__)

WORKFLOW_ID = "pending-transaction-notifications"


async def start_notification_schedule(cron: str = None) -> str:
    """Start the cron workflow and return its workflow id."""
    settings = get_settings()
    cron = cron or settings.notification_cron

    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    try:
        handle = await client.start_workflow(
            NotificationWorkflow.run,
            id=WORKFLOW_ID,
            task_queue=settings.temporal_task_queue,
            cron_schedule=cron,
        )
    except WorkflowAlreadyStartedError:
        logger.info(f"Notification schedule already running: {WORKFLOW_ID}")
        return WORKFLOW_ID

    logger.info(f"Notification schedule started: {handle.id} ({cron})")
    return handle.id


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Start the notification cron workflow")
    parser.add_argument("--cron", default=None, help="Cron expression (default: NOTIFICATION_CRON)")
    args = parser.parse_args()

    try:
        workflow_id = asyncio.run(start_notification_schedule(args.cron))
        print(workflow_id)
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
