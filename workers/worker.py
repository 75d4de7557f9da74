"""Worker for the ledger sync pipeline.

Polls one task queue and runs the sync workflow plus its parse and
reconcile activities.

Run with --queue <name> to poll a queue other than the configured default.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from core.config import load_settings
from core.observability.logging import configure_logging
from workflows.ledger_sync_workflow import LedgerSyncWorkflow
from activities.extract import parse_ledger_file
from activities.reconcile import run_reconciliation


logger = logging.getLogger(__name__)

WORKFLOWS = [LedgerSyncWorkflow]
ACTIVITIES = [parse_ledger_file, run_reconciliation]


async def run_worker(task_queue: str):
    """Start a worker listening on the task queue.

    Raises:
        Exception: If connection to Temporal fails
    """
    client = await get_temporal_client()
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

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


def main():
    """Entry point for worker with CLI args."""
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Ledger Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=settings.task_queue,
        help=f"Task queue to poll (default: {settings.task_queue})",
    )
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_format=settings.log_json, force=True)
    asyncio.run(run_worker(args.queue))


if __name__ == "__main__":
    main()
