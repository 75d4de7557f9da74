"""Start a ledger sync workflow on Temporal.

Connects to the configured Temporal server, starts a LedgerSyncWorkflow for
the given ledger exports, and prints the sync report.

Usage:
    python scripts/start_ledger_sync.py --budget budget.json ledgers/*.pdf
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from reconciliation.pipeline import new_sync_run_id
from workflows.ledger_sync_workflow import LedgerSyncWorkflow, LedgerSyncInput


logger = get_logger(__name__)


async def start_ledger_sync(
    ledger_paths,
    budget_path=None,
    purchase_order_path=None,
    task_queue="ledger-sync",
    sync_run_id=None,
):
    """Start a sync workflow and wait for its report.

    Args:
        ledger_paths: Ledger export paths
        budget_path: Budget JSON export
        purchase_order_path: Optional purchase-order export
        task_queue: Queue the worker polls
        sync_run_id: Run identifier (generated when omitted)

    Returns:
        dict: Serialized SyncReport
    """
    missing = [p for p in ledger_paths if not Path(p).exists()]
    if missing:
        raise FileNotFoundError(f"Ledger files not found: {', '.join(str(p) for p in missing)}")

    sync_run_id = sync_run_id or new_sync_run_id()
    logger.info(f"Starting ledger sync {sync_run_id} with {len(ledger_paths)} files...")

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    input_data = LedgerSyncInput(
        sync_run_id=sync_run_id,
        ledger_paths=[str(Path(p).resolve()) for p in ledger_paths],
        budget_path=str(Path(budget_path).resolve()) if budget_path else None,
        purchase_order_path=str(Path(purchase_order_path).resolve()) if purchase_order_path else None,
    )

    handle = await client.start_workflow(
        LedgerSyncWorkflow.run,
        input_data,
        task_queue=task_queue,
        id=f"ledger-sync-{sync_run_id}",
    )
    logger.info(f"Workflow started: {handle.id}")

    return await handle.result()


def main():
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Start a ledger sync workflow")
    parser.add_argument("ledgers", nargs="+", help="Ledger exports (.pdf, .xlsx, .csv, .txt)")
    parser.add_argument("--budget", "-b", help="Budget JSON export")
    parser.add_argument("--purchase-orders", "-p", help="Purchase-order export")
    parser.add_argument("--queue", "-q", default=settings.task_queue, help="Task queue")
    parser.add_argument("--sync-run-id", help="Sync run identifier")
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_format=settings.log_json, force=True)

    try:
        report = asyncio.run(start_ledger_sync(
            args.ledgers,
            budget_path=args.budget,
            purchase_order_path=args.purchase_orders,
            task_queue=args.queue,
            sync_run_id=args.sync_run_id,
        ))
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n=== SYNC REPORT ===")
    for key in ("sync_run_id", "status", "metrics", "summary"):
        print(f"  {key}: {report.get(key)}")
    ref = report.get("report_ref") or {}
    if ref:
        print(f"  report: {ref.get('storage_uri')}")
    print("===================\n")
    return 1 if report.get("status") == "FAIL" else 0


if __name__ == "__main__":
    sys.exit(main())
