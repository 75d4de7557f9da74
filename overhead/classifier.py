"""
Overhead Classifier

Classifies transactions that reached the end of matching and inference
without an explicit location:
1. Payroll (description, payroll vendor or payroll-style date) outside the
   location-labor GL codes -> payroll overhead, inferred location cleared
2. Bare overhead phrases with still no location -> general overhead
3. Everything else stays unmatched and is reported as such
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from core.observability.logging import get_logger
from models.canonical import InferenceSource, OverheadType, Transaction
from overhead.rules import (
    is_location_labor,
    matches_overhead_description,
    matches_payroll_description,
    matches_payroll_vendor,
)


logger = get_logger(__name__)


class OverheadClassification(BaseModel):
    """Overhead decision for one transaction (a Transaction patch)."""
    model_config = ConfigDict(frozen=True)

    overhead_type: OverheadType
    reason: str = ""
    clear_inferred: bool = False
    clear_unmapped: bool = False

    def to_update(self) -> Dict[str, Any]:
        update: Dict[str, Any] = {"overhead_type": self.overhead_type}
        if self.clear_unmapped:
            update["unmapped_reason"] = None
        if self.clear_inferred:
            update.update({
                "inferred_location": None,
                "inference_source": InferenceSource.NONE,
                "inference_confidence": None,
                "inference_reason": self.reason,
                "possible_locations": [],
                "needs_review": False,
            })
        return update


class OverheadStats(BaseModel):
    """Counters and absolute amounts per overhead outcome."""
    total_checked: int = 0
    payroll: int = 0
    general: int = 0
    still_unmatched: int = 0
    cleared_inferred: int = 0
    payroll_amount: Decimal = Decimal("0")
    general_amount: Decimal = Decimal("0")
    unmatched_amount: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def is_payroll_transaction(txn: Transaction) -> bool:
    """Payroll by date format, description pattern or payroll-service vendor."""
    if txn.date_range is not None and txn.date_range.is_payroll:
        return True
    return matches_payroll_description(txn.description) or matches_payroll_vendor(txn.vendor)


def classify_overhead(txn: Transaction) -> Optional[OverheadClassification]:
    """Classify one transaction without an explicit location.

    Returns:
        OverheadClassification, or None when the transaction is not overhead
        (or already has an explicit match). Payroll also claims rows whose
        candidate matched no budget location; general overhead does not.
    """
    if txn.matched_location:
        return None

    if not is_location_labor(txn.gl_code) and is_payroll_transaction(txn):
        return OverheadClassification(
            overhead_type=OverheadType.PAYROLL,
            reason="payroll_overhead",
            clear_inferred=txn.inferred_location is not None or txn.needs_review,
            clear_unmapped=txn.unmapped_reason is not None,
        )

    if txn.unmapped_reason is not None or txn.needs_review:
        return None
    if not txn.resolved_location and matches_overhead_description(txn.description):
        return OverheadClassification(overhead_type=OverheadType.GENERAL, reason="general_overhead")

    return None


def run_overhead(transactions: Sequence[Transaction]) -> Tuple[List[Transaction], OverheadStats]:
    """Apply overhead classification to a batch, preserving order."""
    stats = OverheadStats()
    result: List[Transaction] = []

    for txn in transactions:
        if txn.matched_location:
            result.append(txn)
            continue

        stats.total_checked += 1
        amount = abs(txn.amount)
        decision = classify_overhead(txn)

        if decision is None:
            if not txn.resolved_location:
                stats.still_unmatched += 1
                stats.unmatched_amount += amount
            result.append(txn)
            continue

        if decision.overhead_type == OverheadType.PAYROLL:
            stats.payroll += 1
            stats.payroll_amount += amount
            if decision.clear_inferred:
                stats.cleared_inferred += 1
        else:
            stats.general += 1
            stats.general_amount += amount
        result.append(txn.apply(decision))

    logger.info(
        f"Overhead classified: {stats.payroll} payroll, {stats.general} general, "
        f"{stats.still_unmatched} still unmatched",
        extra_fields=stats.to_dict(),
    )
    return result, stats
