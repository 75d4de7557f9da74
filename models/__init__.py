"""Models Package.

Data models for the ledger sync system including:
- Canonical ledger models (transactions, ledger files, purchase orders)
- Data reference models for artifact storage
"""

from models.canonical import (
    ConfidenceTier,
    DateRange,
    InferenceSource,
    LedgerFile,
    OverheadType,
    PurchaseOrder,
    Transaction,
    UnmappedReason,
    parse_amount,
)

from models.refs import (
    DataReference,
    SyncReport,
)

__all__ = [
    # Canonical models
    "ConfidenceTier",
    "DateRange",
    "InferenceSource",
    "LedgerFile",
    "OverheadType",
    "PurchaseOrder",
    "Transaction",
    "UnmappedReason",
    "parse_amount",

    # Reference models
    "DataReference",
    "SyncReport",
]
