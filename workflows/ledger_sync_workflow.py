"""Ledger Sync Workflow.

Parses every ledger export of a sync run concurrently, then reconciles the
parsed ledgers against the budget in a single activity.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.extract import parse_ledger_file, ParseLedgerInput
    from activities.reconcile import run_reconciliation, ReconcileLedgersInput
    from extraction.dates import MAX_RANGE_DAYS


PARSE_RETRY = RetryPolicy(maximum_attempts=3, initial_interval=timedelta(seconds=2))


@dataclass
class LedgerSyncInput:
    """Input for Ledger Sync Workflow.

    Attributes:
        sync_run_id: Unique identifier for the sync run
        ledger_paths: Absolute paths to ledger exports
        budget_path: Budget JSON export
        purchase_order_path: Optional purchase-order export
        artifact_root: Override for the artifact root directory
        max_range_days: Longest accepted description date range
    """
    sync_run_id: str
    ledger_paths: List[str] = field(default_factory=list)
    budget_path: Optional[str] = None
    purchase_order_path: Optional[str] = None
    artifact_root: Optional[str] = None
    max_range_days: int = MAX_RANGE_DAYS


@workflow.defn
class LedgerSyncWorkflow:
    """Workflow for one ledger-to-budget sync run.

    1. Parse each ledger file (fan-out, failures reported per file)
    2. Reconcile all parsed ledgers against the budget
    """

    @workflow.run
    async def run(self, input: LedgerSyncInput) -> dict:
        """Execute the sync.

        Returns:
            Serialized SyncReport
        """
        workflow.logger.info(f"Starting ledger sync {input.sync_run_id} ({len(input.ledger_paths)} files)")

        parse_inputs = []
        for path in input.ledger_paths:
            parse_input = ParseLedgerInput(
                sync_run_id=input.sync_run_id,
                ledger_path=path,
                max_range_days=input.max_range_days,
            )
            if input.artifact_root:
                parse_input.artifact_root = input.artifact_root
            parse_inputs.append(parse_input)

        parsed = await asyncio.gather(*[
            workflow.execute_activity(
                parse_ledger_file,
                parse_input,
                start_to_close_timeout=timedelta(minutes=2),
                retry_policy=PARSE_RETRY,
            )
            for parse_input in parse_inputs
        ])

        ledger_refs = [p.ledger_ref for p in parsed if p.ledger_ref]
        errors = [{"filename": p.filename, "error": p.error} for p in parsed if p.error]
        workflow.logger.info(f"Parsed {len(ledger_refs)} ledgers, {len(errors)} failed")

        result = await workflow.execute_activity(
            run_reconciliation,
            ReconcileLedgersInput(
                sync_run_id=input.sync_run_id,
                ledger_refs=ledger_refs,
                budget_path=input.budget_path,
                purchase_order_path=input.purchase_order_path,
                errors=errors,
                artifact_root=input.artifact_root,
                max_range_days=input.max_range_days,
            ),
            start_to_close_timeout=timedelta(minutes=10),
        )

        workflow.logger.info(f"Sync {input.sync_run_id} complete: {result.status}")
        return result.report
