"""Activity definitions module."""

from activities.extract import (
    parse_ledger_file,
    ParseLedgerInput,
    ParseLedgerOutput,
)
from activities.reconcile import (
    run_reconciliation,
    ReconcileLedgersInput,
    ReconcileLedgersOutput,
)

__all__ = [
    # Extract activities
    "parse_ledger_file",
    "ParseLedgerInput",
    "ParseLedgerOutput",
    # Reconcile activities
    "run_reconciliation",
    "ReconcileLedgersInput",
    "ReconcileLedgersOutput",
]
