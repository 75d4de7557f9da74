"""Ledger sync pipeline.

Runs one sync over already-parsed ledger files:
1. Collect transactions and drop cross-file duplicates
2. Aggregate the budget and spread "all" budget over active episodes
3. Match candidates against canonical locations
4. Infer locations for the rest
5. Classify overhead
6. Build the reconciliation report

Everything after parsing is sequential; each stage returns new transaction
records and a diagnostics block.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from budget.aggregator import aggregate_budget, redistribute_unassigned
from budget.models import BudgetAggregate, BudgetSource
from core.config import SyncSettings
from core.observability.logging import get_logger, log_stage_summary, with_correlation
from extraction.ledger import dedupe_transactions
from extraction.locations import is_service_token
from location_resolver.db import load_alias_table
from location_resolver.models import LocationAliasTable, LocationMatch, UnmappedLocation
from location_resolver.resolver import LocationMatcher
from inference.engine import run_inference
from models.canonical import LedgerFile, PurchaseOrder, Transaction
from overhead.classifier import run_overhead
from reconciliation.engine import reconcile
from reconciliation.models import ReconciliationResult


logger = get_logger(__name__)


class SyncResult(BaseModel):
    """Everything one sync run produced."""
    sync_run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    result: ReconciliationResult
    transactions: List[Transaction] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duplicates_removed: int = 0
    stages: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


def new_sync_run_id() -> str:
    return f"sync-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:6]}"


def load_alias_source(settings: SyncSettings) -> LocationAliasTable:
    """Alias table from the configured JSON file, else the alias database."""
    if settings.alias_json_path is not None:
        path = Path(settings.alias_json_path)
        if path.exists():
            return LocationAliasTable.from_json_file(path)
        logger.warning(f"Alias file not found, falling back to database: {path}")
    return load_alias_table(settings.production_id, settings.alias_db_path)


# =============================================================================
# Stages
# =============================================================================

def match_transactions(
    transactions: Sequence[Transaction],
    matcher: LocationMatcher,
) -> Tuple[List[Transaction], Dict[str, Any]]:
    """Match every real candidate; service tokens are left for inference.

    Returns:
        (transactions with match or unmapped patches, counters)
    """
    cache: Dict[Tuple[str, str], Optional[LocationMatch]] = {}
    result = []
    counters = {"candidates": 0, "service_tokens": 0, "no_candidate": 0, "matched": 0, "unmapped": 0}

    for txn in transactions:
        candidate = txn.candidate_location
        if not candidate:
            counters["no_candidate"] += 1
            result.append(txn)
            continue
        if is_service_token(candidate):
            counters["service_tokens"] += 1
            result.append(txn)
            continue

        counters["candidates"] += 1
        key = (candidate, txn.description)
        if key not in cache:
            cache[key] = matcher.match(candidate, txn.description)
        match = cache[key]

        if match is not None:
            counters["matched"] += 1
            result.append(txn.apply(match))
        else:
            counters["unmapped"] += 1
            result.append(txn.apply(UnmappedLocation(reason=matcher.classify_unmapped(candidate))))

    return result, counters


def build_budget(
    budget_source: Optional[BudgetSource],
    active_episodes: Sequence[str],
    settings: SyncSettings,
) -> Tuple[BudgetAggregate, List[str]]:
    if budget_source is None:
        return BudgetAggregate(), ["Budget source unavailable; reconciling against an empty budget"]
    aggregate = aggregate_budget(budget_source, tolerance=settings.cross_check_tolerance)
    return redistribute_unassigned(aggregate, active_episodes), []


# =============================================================================
# Main Pipeline
# =============================================================================

def run_sync(
    ledgers: Sequence[LedgerFile],
    budget_source: Optional[BudgetSource],
    alias_table: Optional[LocationAliasTable] = None,
    purchase_orders: Optional[Sequence[PurchaseOrder]] = None,
    settings: Optional[SyncSettings] = None,
    sync_run_id: Optional[str] = None,
    errors: Optional[Sequence[Dict[str, Any]]] = None,
) -> SyncResult:
    """Run one ledger-to-budget sync.

    Args:
        ledgers: Parsed ledger files
        budget_source: Budget tables, None when unavailable
        alias_table: Location aliases (empty when omitted)
        purchase_orders: Purchase orders for committed spend
        settings: Sync settings (defaults when omitted)
        sync_run_id: Run identifier for logs and artifacts
        errors: Parse failures collected before this call

    Returns:
        SyncResult with the reconciliation report and final transactions
    """
    settings = settings or SyncSettings()
    sync_run_id = sync_run_id or new_sync_run_id()
    started_at = datetime.utcnow()
    stages: Dict[str, Dict[str, Any]] = {}

    with with_correlation(sync_run_id=sync_run_id):
        all_errors = list(errors or [])
        for ledger in ledgers:
            all_errors.extend({"filename": ledger.filename, "error": e} for e in ledger.errors)

        with with_correlation(stage="extract"):
            raw = [txn for ledger in ledgers for txn in ledger.transactions]
            transactions, removed = dedupe_transactions(raw)
            stages["extract"] = {
                "ledger_files": len(ledgers),
                "transactions": len(raw),
                "duplicates_removed": removed,
                "errors": len(all_errors),
            }
            log_stage_summary("extract", **stages["extract"])

        with with_correlation(stage="budget"):
            active = sorted({t.episode for t in transactions})
            aggregate, warnings = build_budget(budget_source, active, settings)
            for warning in warnings:
                logger.warning(warning)
            stages["budget"] = {
                "locations": len(aggregate.locations),
                "skipped_line_items": aggregate.skipped_line_items,
                "cross_check_warnings": len(aggregate.cross_checks),
                "active_episodes": active,
            }
            log_stage_summary("budget", **stages["budget"])

        with with_correlation(stage="match"):
            matcher = LocationMatcher(aggregate.locations, alias_table, settings.matching)
            transactions, counters = match_transactions(transactions, matcher)
            stages["match"] = counters
            log_stage_summary("match", **counters)

        with with_correlation(stage="infer"):
            transactions, inference_stats = run_inference(transactions, settings.inference)
            stages["infer"] = inference_stats.to_dict()
            log_stage_summary("infer", **stages["infer"])

        with with_correlation(stage="overhead"):
            transactions, overhead_stats = run_overhead(transactions)
            stages["overhead"] = overhead_stats.to_dict()
            log_stage_summary("overhead", **stages["overhead"])

        with with_correlation(stage="report"):
            result = reconcile(
                transactions,
                aggregate,
                purchase_orders=purchase_orders,
                config=settings.report,
                errors=all_errors,
            )
            result.diagnostics["stages"] = stages
            log_stage_summary("report", status=result.status, locations=len(result.locations))

    return SyncResult(
        sync_run_id=sync_run_id,
        started_at=started_at,
        completed_at=datetime.utcnow(),
        result=result,
        transactions=transactions,
        errors=all_errors,
        warnings=warnings,
        duplicates_removed=removed,
        stages=stages,
    )
