"""Overhead - Identifies spend that belongs to no single location."""

from overhead.classifier import (
    OverheadClassification,
    OverheadStats,
    classify_overhead,
    is_payroll_transaction,
    run_overhead,
)
from overhead.rules import LOCATION_LABOR_CODES

__all__ = [
    "OverheadClassification",
    "OverheadStats",
    "classify_overhead",
    "is_payroll_transaction",
    "run_overhead",
    "LOCATION_LABOR_CODES",
]
