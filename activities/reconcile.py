"""Reconciliation activity for the ledger sync pipeline.

Loads the parsed ledger artifacts of a sync run, runs matching, inference,
overhead classification and the budget-vs-actual report, then stores the
report as an artifact.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from temporalio import activity

from budget.aggregator import load_budget_source
from core.config import load_settings
from extraction.runner import load_purchase_orders
from models.canonical import LedgerFile
from models.refs import DataReference, SyncReport
from reconciliation.pipeline import load_alias_source, run_sync
from storage.artifacts import artifact_path, get_model, put_json


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ReconcileLedgersInput:
    """Input for run_reconciliation activity.

    Attributes:
        sync_run_id: Sync run identifier
        ledger_refs: Serialized DataReferences to parsed LedgerFile artifacts
        budget_path: Budget JSON export (None reconciles against an empty budget)
        purchase_order_path: Optional purchase-order export
        errors: Parse failures from the extraction activities
        artifact_root: Override for the artifact root directory
        max_range_days: Date-range bound used when parsing (None keeps the setting)
    """
    sync_run_id: str
    ledger_refs: List[dict]
    budget_path: Optional[str] = None
    purchase_order_path: Optional[str] = None
    errors: List[dict] = field(default_factory=list)
    artifact_root: Optional[str] = None
    max_range_days: Optional[int] = None


@dataclass
class ReconcileLedgersOutput:
    """Output from run_reconciliation activity.

    Attributes:
        report: Serialized SyncReport
        status: PASS, WARN or FAIL
    """
    report: dict
    status: str


# =============================================================================
# Activity Definition
# =============================================================================

@activity.defn
async def run_reconciliation(input: ReconcileLedgersInput) -> ReconcileLedgersOutput:
    """Reconcile a sync run's ledgers against the budget.

    Returns:
        ReconcileLedgersOutput wrapping a SyncReport with status, checks,
        summary and the report artifact reference
    """
    settings = load_settings()
    if input.artifact_root:
        settings = settings.model_copy(update={"artifact_root": Path(input.artifact_root)})
    if input.max_range_days is not None:
        inference = settings.inference.model_copy(update={"max_range_days": input.max_range_days})
        settings = settings.model_copy(update={"inference": inference})

    activity.logger.info(f"Reconciling {len(input.ledger_refs)} ledgers for {input.sync_run_id}")

    ledgers = []
    errors = list(input.errors)
    for ref_dict in input.ledger_refs:
        ref = DataReference.model_validate(ref_dict)
        try:
            ledgers.append(get_model(ref, LedgerFile))
        except (FileNotFoundError, ValueError) as e:
            activity.logger.warning(f"Ledger artifact unusable: {e}")
            errors.append({"filename": Path(ref.storage_uri).name, "error": str(e)})

    budget_source = load_budget_source(Path(input.budget_path) if input.budget_path else None)
    purchase_orders = load_purchase_orders(Path(input.purchase_order_path) if input.purchase_order_path else None)

    sync = run_sync(
        ledgers,
        budget_source,
        alias_table=load_alias_source(settings),
        purchase_orders=purchase_orders,
        settings=settings,
        sync_run_id=input.sync_run_id,
        errors=errors,
    )
    result = sync.result

    report_ref = put_json(sync, artifact_path(settings.artifact_root, input.sync_run_id, "reconciliation_report"))

    metrics = {
        "transactions": result.summary.total_transactions,
        "duplicates_removed": sync.duplicates_removed,
        "locations": len(result.locations),
        "needs_review": len(result.needs_review),
        "unmapped_buckets": len(result.unmapped),
        "parse_errors": len(sync.errors),
    }

    if result.status == "PASS":
        activity.logger.info(f"Sync {input.sync_run_id}: PASS")
    elif result.status == "WARN":
        activity.logger.warning(f"Sync {input.sync_run_id}: WARN")
    else:
        activity.logger.error(f"Sync {input.sync_run_id}: FAIL")

    report = SyncReport(
        sync_run_id=input.sync_run_id,
        status=result.status,
        checks=result.checks,
        summary=result.summary.model_dump(mode="json"),
        metrics=metrics,
        report_ref=report_ref,
    )
    return ReconcileLedgersOutput(report=report.model_dump(mode="json"), status=result.status)
