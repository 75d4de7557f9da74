"""Run a ledger sync locally, without Temporal.

Parses the given ledger exports, reconciles them against the budget export
and writes the report to the artifacts directory.

Usage:
    python scripts/run_sync.py --budget budget.json ledgers/*.pdf
    python scripts/run_sync.py --seed-aliases
"""

import argparse
import json
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from budget.aggregator import load_budget_source
from core.config import load_settings
from core.observability.logging import configure_logging
from extraction.runner import extract_ledgers, load_purchase_orders
from location_resolver.db import seed_sample_aliases
from reconciliation.pipeline import load_alias_source, new_sync_run_id, run_sync
from storage.artifacts import artifact_path, put_json


def print_summary(sync) -> None:
    result = sync.result
    summary = result.summary

    print(f"\nSync {sync.sync_run_id}: {result.status}")
    print(f"  Transactions:     {summary.total_transactions} ({sync.duplicates_removed} duplicates removed)")
    print(f"  Invoiced:         {summary.invoiced_total:>14,.2f}")
    print(f"  Matched:          {summary.matched_total:>14,.2f}")
    print(f"  Inferred:         {summary.inferred_total:>14,.2f}")
    print(f"  Overhead:         {summary.overhead_total:>14,.2f}")
    print(f"  Unmapped:         {summary.unmapped_total:>14,.2f}")
    print(f"  Budget:           {summary.total_budget:>14,.2f}")
    print(f"  Committed (POs):  {summary.committed_po_total:>14,.2f}")

    print("\nLocations:")
    for loc in result.locations:
        print(f"  {loc.location:<35} {loc.budgeted:>12,.2f} {loc.actual:>12,.2f} {loc.variance_pct:>8}%  {loc.status}")

    if result.unmapped:
        print("\nUnmapped:")
        for bucket in result.unmapped[:20]:
            print(f"  {bucket.location:<35} {bucket.reason.value:<22} {bucket.total_amount:>12,.2f} ({bucket.transaction_count})")

    for check in result.checks:
        if not check["passed"]:
            print(f"\n[{check['severity']}] {check['check_id']}: {check['message']}")


def main():
    parser = argparse.ArgumentParser(description="Reconcile ledger exports against the location budget")
    parser.add_argument("ledgers", nargs="*", help="Ledger exports (.pdf, .xlsx, .csv, .txt)")
    parser.add_argument("--budget", "-b", help="Budget JSON export")
    parser.add_argument("--purchase-orders", "-p", help="Purchase-order export (.json, .xlsx, .csv)")
    parser.add_argument("--sync-run-id", help="Sync run identifier (generated when omitted)")
    parser.add_argument("--seed-aliases", action="store_true", help="Seed sample location aliases and exit")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        force=True,
    )

    if args.seed_aliases:
        counts = seed_sample_aliases(settings.production_id, settings.alias_db_path)
        print(f"Seeded {counts['aliases']} aliases and {counts['patterns']} patterns into {settings.alias_db_path}")
        return 0

    if not args.ledgers:
        parser.error("at least one ledger file is required")

    sync_run_id = args.sync_run_id or new_sync_run_id()
    ledgers, errors = extract_ledgers([Path(p) for p in args.ledgers], settings.inference.max_range_days)
    budget_source = load_budget_source(Path(args.budget) if args.budget else None)
    purchase_orders = load_purchase_orders(Path(args.purchase_orders) if args.purchase_orders else None)

    sync = run_sync(
        ledgers,
        budget_source,
        alias_table=load_alias_source(settings),
        purchase_orders=purchase_orders,
        settings=settings,
        sync_run_id=sync_run_id,
        errors=errors,
    )

    ref = put_json(sync, artifact_path(settings.artifact_root, sync_run_id, "reconciliation_report"))

    if args.json:
        print(json.dumps(sync.result.model_dump(mode="json"), indent=2))
    else:
        print_summary(sync)
    print(f"\nReport: {ref.storage_uri}")

    return 1 if sync.result.status == "FAIL" else 0


if __name__ == "__main__":
    sys.exit(main())
