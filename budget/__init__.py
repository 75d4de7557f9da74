"""Budget - Aggregates location budget line items for reconciliation.

Usage:
    from budget import aggregate_budget, redistribute_unassigned

    aggregate = aggregate_budget(source)
    aggregate = redistribute_unassigned(aggregate, active_episodes={"101", "102"})
"""

from budget.models import (
    BudgetAggregate,
    BudgetLineItem,
    BudgetSource,
    CanonicalLocation,
    LocationRecord,
)
from budget.rules import EpisodeResolver, normalize_category
from budget.aggregator import aggregate_budget, load_budget_source, redistribute_unassigned

__all__ = [
    "BudgetAggregate",
    "BudgetLineItem",
    "BudgetSource",
    "CanonicalLocation",
    "LocationRecord",
    "EpisodeResolver",
    "normalize_category",
    "aggregate_budget",
    "load_budget_source",
    "redistribute_unassigned",
]
