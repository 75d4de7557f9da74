"""Reconciliation result models.

- ReportConfig: Reporter settings
- LocationReconciliation: Budget vs actual for one canonical location
- EpisodeVariance / CategoryVariance: Budget vs actual per episode / category
- UnmappedBucket / OverheadBucket: Spend that reached no location
- SpendSummary: Invoiced, committed and deposit totals
- ReconciliationResult: The full report of one sync run
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.canonical import OverheadType, Transaction, UnmappedReason


class ReportConfig(BaseModel):
    """Configuration for the reconciliation reporter."""
    deposit_keywords: List[str] = Field(
        default_factory=lambda: ["security deposit", "deposit", "refundable"],
        description="Description keywords that mark a refundable deposit",
    )
    include_transactions: bool = Field(
        default=True,
        description="Embed transactions in location and bucket entries",
    )


DEFAULT_REPORT_CONFIG = ReportConfig()


class CategoryVariance(BaseModel):
    category: str
    budgeted: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    variance: Decimal = Decimal("0")


class LocationReconciliation(BaseModel):
    """Budget vs actual for one canonical location.

    Attributes:
        location: Canonical location name
        budgeted: Total budget across episodes
        actual: Matched plus inferred spend
        variance: budgeted - actual
        variance_pct: variance as a percentage of budget, 2 places
        status: "under_budget" or "over_budget"
        matched_amount / inferred_amount: Split of actual by how the location was found
        episodes: Actual per episode
        categories: Budget vs actual per category
        transactions: Contributing transactions
    """
    location: str
    budgeted: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    variance: Decimal = Decimal("0")
    variance_pct: Decimal = Decimal("0")
    status: str = "under_budget"
    transaction_count: int = 0
    matched_amount: Decimal = Decimal("0")
    inferred_amount: Decimal = Decimal("0")
    episodes: Dict[str, Decimal] = Field(default_factory=dict)
    categories: List[CategoryVariance] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)


class EpisodeVariance(BaseModel):
    episode: str
    budgeted: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    variance: Decimal = Decimal("0")
    variance_pct: Decimal = Decimal("0")
    status: str = "under_budget"


class UnmappedBucket(BaseModel):
    """Spend sharing one candidate location and one unmapped reason."""
    location: str = Field(..., description="Candidate as extracted, '(none)' when empty")
    reason: UnmappedReason
    total_amount: Decimal = Decimal("0")
    transaction_count: int = 0
    possible_locations: List[str] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)


class OverheadBucket(BaseModel):
    overhead_type: OverheadType
    total_amount: Decimal = Decimal("0")
    transaction_count: int = 0
    transactions: List[Transaction] = Field(default_factory=list)


class SpendSummary(BaseModel):
    """Run-level totals. ``invoiced_total`` is the signed sum of all transactions."""
    total_transactions: int = 0
    invoiced_total: Decimal = Decimal("0")
    matched_total: Decimal = Decimal("0")
    inferred_total: Decimal = Decimal("0")
    overhead_total: Decimal = Decimal("0")
    unmapped_total: Decimal = Decimal("0")
    deposits_total: Decimal = Decimal("0")
    net_of_deposits: Decimal = Decimal("0")
    total_budget: Decimal = Decimal("0")
    total_variance: Decimal = Decimal("0")
    committed_po_total: Decimal = Decimal("0")
    purchase_order_count: int = 0


class ReconciliationResult(BaseModel):
    """Budget-vs-actual report for one sync run."""
    status: str = "PASS"
    locations: List[LocationReconciliation] = Field(default_factory=list)
    episodes: List[EpisodeVariance] = Field(default_factory=list)
    categories: List[CategoryVariance] = Field(default_factory=list)
    unmapped: List[UnmappedBucket] = Field(default_factory=list)
    overhead: List[OverheadBucket] = Field(default_factory=list)
    needs_review: List[Transaction] = Field(default_factory=list)
    summary: SpendSummary = Field(default_factory=SpendSummary)
    purchase_orders: Dict[str, Any] = Field(default_factory=dict)
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
    checks: List[Dict[str, Any]] = Field(default_factory=list)

    def location(self, name: str) -> Optional[LocationReconciliation]:
        for loc in self.locations:
            if loc.location == name:
                return loc
        return None

    def unmapped_bucket(self, reason: UnmappedReason, location: Optional[str] = None) -> Optional[UnmappedBucket]:
        for bucket in self.unmapped:
            if bucket.reason == reason and (location is None or bucket.location == location):
                return bucket
        return None
