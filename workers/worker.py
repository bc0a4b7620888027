"""Worker for the approval backend.

Listens on the configured task queue and runs the notification workflow
and its activity.

Run with --queue <name> to override TEMPORAL_TASK_QUEUE.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import get_logger
from core.services import build_services
from temporal_client import get_temporal_client
from workflows.notification_workflow import NotificationWorkflow
from activities.notify import process_notifications

logger = get_logger(__name__)

WORKFLOWS = [NotificationWorkflow]
ACTIVITIES = [process_notifications]


async def run_worker(queue: str = None):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = get_settings()
    task_queue = queue or settings.temporal_task_queue

    # Fail fast on a missing encryption key or unwritable database
    build_services(settings).db.init_schema()

    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
    )
    logger.info(f"Worker created for queue '{task_queue}':")
    logger.info(f"  - Workflows: {len(WORKFLOWS)}")
    logger.info(f"  - Activities: {len(ACTIVITIES)}")

    logger.info("Worker running... (Ctrl+C to stop)")
    await worker.run()


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Approval Backend Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help="Task queue to poll (default: TEMPORAL_TASK_QUEUE)"
    )

    args = parser.parse_args()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
