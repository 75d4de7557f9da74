"""Budget category and episode rules.

Category labels in budget exports are free text; a fixed synonym table maps
them onto the category names used throughout reconciliation. Episodes are
resolved by following line item -> location -> budget header references.
"""

from decimal import Decimal
from typing import Dict, Optional, Tuple

from budget.models import BudgetLineItem, BudgetSource


ALL_EPISODES = "all"
UNKNOWN_LOCATION = "Unknown"
DEFAULT_CATEGORY = "Other"
MISSING_LINE_ITEM_CATEGORY = "Loc Fees"

# Aggregated vs expected location totals diverging by more than this is a warning
CROSS_CHECK_TOLERANCE = Decimal("0.05")


# =============================================================================
# Category Normalization
# =============================================================================

CATEGORY_NORMALIZE: Dict[str, str] = {
    "location fees": "Loc Fees",
    "loc fees": "Loc Fees",
    "location fee": "Loc Fees",
    "site fees": "Loc Fees",
    "addl. site fees": "Addl. Site Fees",
    "additional site fees": "Addl. Site Fees",
    "addl site fees": "Addl. Site Fees",
    "equipment": "Equipment",
    "security": "Security",
    "police": "Police",
    "fire": "Fire",
    "permits": "Permits",
    "parking": "Parking",
    "rentals": "Rentals",
    "site personnel": "Site Personnel",
    "addl. labor": "Addl. Labor",
    "additional labor": "Addl. Labor",
    "addl labor": "Addl. Labor",
}


def normalize_category(category: Optional[str]) -> str:
    """Normalize a budget category label.

    Matching is case-insensitive on the trimmed label. Unknown labels are
    returned as given; a missing label becomes "Other".

    Examples:
        >>> normalize_category("SITE FEES")
        'Loc Fees'
        >>> normalize_category(None)
        'Other'
    """
    if not category or not category.strip():
        return DEFAULT_CATEGORY
    return CATEGORY_NORMALIZE.get(category.strip().lower(), category.strip())


# =============================================================================
# Episode Resolution
# =============================================================================

class EpisodeResolver:
    """Resolves a line item's episode through the reference chain.

    Priority:
    1. Direct episode reference on the line item
    2. Line item location -> location's budget header -> episode
    3. Line item's own budget header -> episode
    4. "all"
    """

    DIRECT = "direct"
    VIA_BUDGET = "via_budget"
    UNRESOLVED = "unresolved"

    def __init__(self, source: BudgetSource):
        self.episode_names: Dict[str, str] = {
            ep.row_id: ep.episode for ep in source.episodes if ep.row_id and ep.episode
        }
        self.budget_episodes: Dict[str, str] = {}
        for header in source.budgets:
            name = self.episode_names.get(header.episode_id) if header.episode_id else None
            if header.row_id and name:
                self.budget_episodes[header.row_id] = name
        self.location_episodes: Dict[str, str] = {}
        for loc in source.locations:
            name = self.budget_episodes.get(loc.budget_id) if loc.budget_id else None
            if loc.row_id and name:
                self.location_episodes[loc.row_id] = name

    def resolve(self, item: BudgetLineItem) -> Tuple[str, str]:
        """Return (episode, how it was resolved)."""
        if item.episode_id and item.episode_id in self.episode_names:
            return self.episode_names[item.episode_id], self.DIRECT
        if item.location_id and item.location_id in self.location_episodes:
            return self.location_episodes[item.location_id], self.VIA_BUDGET
        if item.budget_id and item.budget_id in self.budget_episodes:
            return self.budget_episodes[item.budget_id], self.VIA_BUDGET
        return ALL_EPISODES, self.UNRESOLVED

    def location_episode(self, location_row_id: Optional[str]) -> str:
        if location_row_id and location_row_id in self.location_episodes:
            return self.location_episodes[location_row_id]
        return ALL_EPISODES
