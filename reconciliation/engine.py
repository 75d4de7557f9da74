"""Reconciliation engine for location budget vs actual spend.

Exposes high-level function:
- reconcile(transactions, aggregate, purchase_orders) -> ReconciliationResult

Every transaction lands in exactly one outcome (matched, inferred, overhead
or unmapped), so the four totals always add back up to the ledger total.
"""

from collections import Counter, defaultdict
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from budget.models import BudgetAggregate
from core.observability.logging import get_logger
from extraction.ledger import categorize_account
from extraction.locations import is_service_token
from extraction.purchase_orders import summarize_purchase_orders
from models.canonical import OverheadType, PurchaseOrder, Transaction, UnmappedReason
from reconciliation.models import (
    DEFAULT_REPORT_CONFIG,
    CategoryVariance,
    EpisodeVariance,
    LocationReconciliation,
    OverheadBucket,
    ReconciliationResult,
    ReportConfig,
    SpendSummary,
    UnmappedBucket,
)


logger = get_logger(__name__)


# =============================================================================
# Configuration & Data Structures
# =============================================================================

CENT = Decimal("0.01")

MATCHED = "matched"
INFERRED = "inferred"
OVERHEAD = "overhead"
UNMAPPED = "unmapped"


class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckResult:
    """Result of a single reconciliation check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "evidence": self.evidence,
        }


# =============================================================================
# Utility Functions
# =============================================================================

def variance_pct(budgeted: Decimal, actual: Decimal) -> Decimal:
    """Variance as a percentage of budget, rounded to 2 places.

    Spend against a zero budget is -100%; zero against zero is 0%.
    """
    if budgeted == 0:
        return Decimal("-100.00") if actual > 0 else Decimal("0.00")
    return ((budgeted - actual) / budgeted * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def budget_status(variance: Decimal) -> str:
    return "over_budget" if variance < 0 else "under_budget"


def classify_outcome(txn: Transaction) -> Tuple[str, Optional[str]]:
    """Which outcome a transaction lands in, and its location if any."""
    if txn.matched_location:
        return MATCHED, txn.matched_location
    if txn.overhead_type is not None:
        return OVERHEAD, None
    if txn.inferred_location:
        return INFERRED, txn.inferred_location
    return UNMAPPED, None


def unmapped_reason_for(txn: Transaction) -> UnmappedReason:
    """Bucket reason; a service token with nothing inferred is a service charge."""
    if txn.unmapped_reason is not None:
        return txn.unmapped_reason
    if txn.needs_review:
        return UnmappedReason.NEEDS_REVIEW
    if is_service_token(txn.candidate_location):
        return UnmappedReason.SERVICE_CHARGE
    return UnmappedReason.NO_LOCATION


def is_deposit(txn: Transaction, keywords: Iterable[str]) -> bool:
    lowered = txn.description.lower()
    return any(kw in lowered for kw in keywords)


def transaction_category(txn: Transaction) -> str:
    """Budget category derived from the GL account (6342 split by keyword)."""
    return categorize_account(txn.gl_code or txn.account_code, txn.description)


def _total(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), Decimal("0"))


# =============================================================================
# Report Sections
# =============================================================================

def build_location_reports(
    located: Dict[str, List[Tuple[str, Transaction]]],
    aggregate: BudgetAggregate,
    config: ReportConfig,
) -> List[LocationReconciliation]:
    """Budget vs actual for every canonical location and every located spend."""
    names = {loc.name for loc in aggregate.locations} | set(located)
    reports = []

    for name in sorted(names):
        entries = located.get(name, [])
        budgeted = aggregate.location_total(name)
        actual = _total(t for _, t in entries)
        variance = budgeted - actual

        by_episode: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        actual_by_category: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for _, txn in entries:
            by_episode[txn.episode] += txn.amount
            actual_by_category[transaction_category(txn)] += txn.amount

        budget_by_category = aggregate.location_category_totals(name)
        categories = []
        for category in sorted(set(budget_by_category) | set(actual_by_category)):
            b = budget_by_category.get(category, Decimal("0"))
            a = actual_by_category.get(category, Decimal("0"))
            categories.append(CategoryVariance(category=category, budgeted=b, actual=a, variance=b - a))

        reports.append(LocationReconciliation(
            location=name,
            budgeted=budgeted,
            actual=actual,
            variance=variance,
            variance_pct=variance_pct(budgeted, actual),
            status=budget_status(variance),
            transaction_count=len(entries),
            matched_amount=_total(t for outcome, t in entries if outcome == MATCHED),
            inferred_amount=_total(t for outcome, t in entries if outcome == INFERRED),
            episodes=dict(by_episode),
            categories=categories,
            transactions=[t for _, t in entries] if config.include_transactions else [],
        ))
    return reports


def build_episode_variance(
    located: Dict[str, List[Tuple[str, Transaction]]],
    aggregate: BudgetAggregate,
) -> List[EpisodeVariance]:
    """Budget vs located spend per episode, using redistributed episode totals."""
    actual: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for entries in located.values():
        for _, txn in entries:
            actual[txn.episode] += txn.amount

    result = []
    for episode in sorted(set(aggregate.episode_totals) | set(actual)):
        budgeted = aggregate.episode_totals.get(episode, Decimal("0"))
        spent = actual.get(episode, Decimal("0"))
        variance = budgeted - spent
        result.append(EpisodeVariance(
            episode=episode,
            budgeted=budgeted,
            actual=spent,
            variance=variance,
            variance_pct=variance_pct(budgeted, spent),
            status=budget_status(variance),
        ))
    return result


def build_category_variance(
    located: Dict[str, List[Tuple[str, Transaction]]],
    aggregate: BudgetAggregate,
) -> List[CategoryVariance]:
    budget: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for by_category in aggregate.by_episode_category.values():
        for category, amount in by_category.items():
            budget[category] += amount

    actual: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for entries in located.values():
        for _, txn in entries:
            actual[transaction_category(txn)] += txn.amount

    return [
        CategoryVariance(
            category=category,
            budgeted=budget.get(category, Decimal("0")),
            actual=actual.get(category, Decimal("0")),
            variance=budget.get(category, Decimal("0")) - actual.get(category, Decimal("0")),
        )
        for category in sorted(set(budget) | set(actual))
    ]


def build_unmapped_buckets(transactions: Sequence[Transaction], config: ReportConfig) -> List[UnmappedBucket]:
    """Group unmapped spend by (candidate, reason), largest first."""
    groups: Dict[Tuple[str, UnmappedReason], List[Transaction]] = defaultdict(list)
    for txn in transactions:
        key = ((txn.candidate_location or "").strip() or "(none)", unmapped_reason_for(txn))
        groups[key].append(txn)

    buckets = []
    for (location, reason), members in groups.items():
        possible = sorted({loc for t in members for loc in t.possible_locations})
        buckets.append(UnmappedBucket(
            location=location,
            reason=reason,
            total_amount=_total(members),
            transaction_count=len(members),
            possible_locations=possible,
            transactions=members if config.include_transactions else [],
        ))
    return sorted(buckets, key=lambda b: (-abs(b.total_amount), b.location, b.reason.value))


def build_overhead_buckets(transactions: Sequence[Transaction], config: ReportConfig) -> List[OverheadBucket]:
    groups: Dict[OverheadType, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        groups[txn.overhead_type].append(txn)
    return [
        OverheadBucket(
            overhead_type=overhead_type,
            total_amount=_total(groups[overhead_type]),
            transaction_count=len(groups[overhead_type]),
            transactions=groups[overhead_type] if config.include_transactions else [],
        )
        for overhead_type in OverheadType
        if overhead_type in groups
    ]


# =============================================================================
# Checks
# =============================================================================

def check_conservation(outcome_totals: Dict[str, Decimal], total: Decimal) -> CheckResult:
    """Matched + inferred + overhead + unmapped must equal the ledger total exactly."""
    accounted = sum(outcome_totals.values(), Decimal("0"))
    evidence = {k: str(v) for k, v in outcome_totals.items()}
    evidence["total"] = str(total)
    if accounted != total:
        return CheckResult(
            check_id="CONSERVATION",
            severity=Severity.BLOCK,
            passed=False,
            message=f"Outcome totals {accounted} do not add up to ledger total {total}",
            evidence={**evidence, "difference": str(total - accounted)},
        )
    return CheckResult(
        check_id="CONSERVATION",
        severity=Severity.INFO,
        passed=True,
        message="All ledger spend is accounted for",
        evidence=evidence,
    )


def check_budget_cross_check(aggregate: BudgetAggregate) -> CheckResult:
    if aggregate.cross_checks:
        return CheckResult(
            check_id="BUDGET_CROSS_CHECK",
            severity=Severity.WARN,
            passed=False,
            message=f"{len(aggregate.cross_checks)} locations differ from their expected budget total",
            evidence={"locations": aggregate.cross_checks},
        )
    return CheckResult(
        check_id="BUDGET_CROSS_CHECK",
        severity=Severity.INFO,
        passed=True,
        message="Budget totals agree with expected location totals",
    )


def check_needs_review(review: Sequence[Transaction]) -> CheckResult:
    if review:
        return CheckResult(
            check_id="NEEDS_REVIEW",
            severity=Severity.WARN,
            passed=False,
            message=f"{len(review)} transactions have several possible locations",
            evidence={
                "amount": str(_total(review)),
                "transactions": [
                    {"txn_id": t.txn_id, "possible_locations": t.possible_locations} for t in review
                ],
            },
        )
    return CheckResult(
        check_id="NEEDS_REVIEW",
        severity=Severity.INFO,
        passed=True,
        message="No transactions awaiting location review",
    )


def check_parse_errors(errors: Sequence[Dict[str, Any]]) -> CheckResult:
    if errors:
        return CheckResult(
            check_id="LEDGER_PARSE_ERRORS",
            severity=Severity.WARN,
            passed=False,
            message=f"{len(errors)} ledger files could not be parsed",
            evidence={"errors": list(errors)},
        )
    return CheckResult(
        check_id="LEDGER_PARSE_ERRORS",
        severity=Severity.INFO,
        passed=True,
        message="All ledger files parsed",
    )


def overall_status(checks: Sequence[CheckResult]) -> str:
    if any(c.severity == Severity.BLOCK for c in checks):
        return CheckStatus.FAIL.value
    if any(c.severity == Severity.WARN for c in checks):
        return CheckStatus.WARN.value
    return CheckStatus.PASS.value


# =============================================================================
# Main Reconciliation Engine
# =============================================================================

def reconcile(
    transactions: Sequence[Transaction],
    aggregate: BudgetAggregate,
    purchase_orders: Optional[Sequence[PurchaseOrder]] = None,
    config: ReportConfig = DEFAULT_REPORT_CONFIG,
    errors: Optional[Sequence[Dict[str, Any]]] = None,
) -> ReconciliationResult:
    """Build the budget-vs-actual report.

    Args:
        transactions: Transactions after matching, inference and overhead
        aggregate: Budget aggregate (after redistribution of "all" budget)
        purchase_orders: Purchase orders for the committed-spend summary
        config: Reporter settings
        errors: Per-file parse failures to surface as a check

    Returns:
        ReconciliationResult with status, sections, diagnostics and checks
    """
    located: Dict[str, List[Tuple[str, Transaction]]] = defaultdict(list)
    overhead: List[Transaction] = []
    unmapped: List[Transaction] = []
    outcome_totals = {MATCHED: Decimal("0"), INFERRED: Decimal("0"), OVERHEAD: Decimal("0"), UNMAPPED: Decimal("0")}

    for txn in transactions:
        outcome, location = classify_outcome(txn)
        outcome_totals[outcome] += txn.amount
        if location:
            located[location].append((outcome, txn))
        elif outcome == OVERHEAD:
            overhead.append(txn)
        else:
            unmapped.append(txn)

    review = [t for t in unmapped if unmapped_reason_for(t) == UnmappedReason.NEEDS_REVIEW]
    total = _total(transactions)

    locations = build_location_reports(located, aggregate, config)
    total_budget = sum((loc.budgeted for loc in locations), Decimal("0"))
    located_total = outcome_totals[MATCHED] + outcome_totals[INFERRED]

    deposits = _total(t for t in transactions if is_deposit(t, config.deposit_keywords))
    orders = list(purchase_orders or [])
    po_summary = summarize_purchase_orders(orders)

    summary = SpendSummary(
        total_transactions=len(transactions),
        invoiced_total=total,
        matched_total=outcome_totals[MATCHED],
        inferred_total=outcome_totals[INFERRED],
        overhead_total=outcome_totals[OVERHEAD],
        unmapped_total=outcome_totals[UNMAPPED],
        deposits_total=deposits,
        net_of_deposits=total - deposits,
        total_budget=total_budget,
        total_variance=total_budget - located_total,
        committed_po_total=po_summary["committed_amount"],
        purchase_order_count=po_summary["count"],
    )

    checks = [
        check_conservation(outcome_totals, total),
        check_budget_cross_check(aggregate),
        check_needs_review(review),
        check_parse_errors(errors or []),
    ]

    diagnostics = {
        "outcomes": dict(Counter(classify_outcome(t)[0] for t in transactions)),
        "match_types": dict(Counter(t.match_type for t in transactions if t.match_type)),
        "inference_sources": dict(Counter(
            t.inference_source.value for t in transactions if t.inferred_location
        )),
        "inference_confidence": dict(Counter(
            t.inference_confidence.value for t in transactions if t.inferred_location and t.inference_confidence
        )),
        "unmapped_reasons": dict(Counter(unmapped_reason_for(t).value for t in unmapped)),
        "locations_with_spend": len(located),
        "locations_over_budget": sum(1 for loc in locations if loc.status == "over_budget"),
        "budget": dict(aggregate.metadata),
        "skipped_line_items": aggregate.skipped_line_items,
    }

    status = overall_status(checks)
    result = ReconciliationResult(
        status=status,
        locations=locations,
        episodes=build_episode_variance(located, aggregate),
        categories=build_category_variance(located, aggregate),
        unmapped=build_unmapped_buckets(unmapped, config),
        overhead=build_overhead_buckets(overhead, config),
        needs_review=review,
        summary=summary,
        purchase_orders=po_summary,
        diagnostics=diagnostics,
        checks=[c.to_dict() for c in checks],
    )

    logger.info(
        f"Reconciled {len(transactions)} transactions: status {status}",
        extra_fields={k: str(v) for k, v in outcome_totals.items()},
    )
    return result
