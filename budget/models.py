"""Budget Data Models.

This module defines the Pydantic models for budget aggregation:
- EpisodeRecord / BudgetHeader / LocationRecord: reference tables
- BudgetLineItem: A rate × unit × time budget line
- BudgetSource: Everything the aggregator consumes
- CanonicalLocation: A budget location used as a matching target
- BudgetAggregate: The aggregated budget views for one sync run

Records arrive from a spreadsheet-style app export, so fields accept the
export's camelCase names (``locationId``, ``$rowID``) as aliases. Relation
fields may be single-element lists; the first element wins.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from models.canonical import parse_amount


def _first_relation(value):
    """Resolve a relation that may be a list of row IDs."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == "":
        return None
    return str(value)


def _as_text(value):
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


Relation = Annotated[Optional[str], BeforeValidator(_first_relation)]
Text = Annotated[Optional[str], BeforeValidator(_as_text)]


class BudgetBase(BaseModel):
    """Base model for budget source records."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Source Records
# =============================================================================

class EpisodeRecord(BudgetBase):
    """Episode table row ($rowID -> episode name such as "101")."""
    row_id: Text = Field(default=None, alias="$rowID")
    episode: Text = None


class BudgetHeader(BudgetBase):
    """Budget header row pointing at an episode."""
    row_id: Text = Field(default=None, alias="$rowID")
    episode_id: Relation = Field(default=None, alias="episodeId")
    name: Text = None


class LocationRecord(BudgetBase):
    """Location budget row.

    Attributes:
        row_id: Row identifier referenced by line items
        location_user_input / location_name / name: Display name candidates
        budget_id: Budget header this location belongs to
        expected_total: Source-provided total used for cross-checks
    """
    row_id: Text = Field(default=None, alias="$rowID")
    location_user_input: Text = Field(default=None, alias="locationUserInput")
    location_name: Text = Field(default=None, alias="locationName")
    name: Text = Field(default=None, alias="Name")
    budget_id: Relation = Field(default=None, alias="budgetId")
    expected_total: Optional[Any] = Field(default=None, alias="totalFromMake")

    @property
    def display_name(self) -> Optional[str]:
        for value in (self.location_user_input, self.location_name, self.name):
            if value and value.strip():
                return value.strip()
        return None


class BudgetLineItem(BudgetBase):
    """A single budget line: rate × unit × time.

    ``unit`` and ``time`` default to 1 only when absent, null or
    unparseable. A field explicitly set to 0 zeroes the subtotal.
    """
    row_id: Text = Field(default=None, alias="$rowID")
    category: Text = None
    location_id: Relation = Field(default=None, alias="locationId")
    episode_id: Relation = Field(default=None, alias="episodeId")
    budget_id: Relation = Field(default=None, alias="budgetId")
    rate: Optional[Any] = None
    unit: Optional[Any] = None
    time: Optional[Any] = None

    @staticmethod
    def _factor(value: Any) -> Decimal:
        parsed = parse_amount(value)
        return Decimal("1") if parsed is None else parsed

    def subtotal(self) -> Decimal:
        """Compute rate × unit × time; zero when the rate is zero or unparseable."""
        rate = parse_amount(self.rate)
        if rate is None or rate == 0:
            return Decimal("0")
        return rate * self._factor(self.unit) * self._factor(self.time)


class BudgetSource(BudgetBase):
    """All budget tables for one production."""
    episodes: List[EpisodeRecord] = Field(default_factory=list)
    budgets: List[BudgetHeader] = Field(default_factory=list)
    locations: List[LocationRecord] = Field(default_factory=list)
    line_items: List[BudgetLineItem] = Field(default_factory=list, alias="lineItems")


# =============================================================================
# Aggregates
# =============================================================================

class CanonicalLocation(BaseModel):
    """A budget location name with its aggregated budget."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Location name as it exists in the budget")
    total_budget: Decimal = Field(default=Decimal("0"), description="Sum across line items")
    episodes: List[str] = Field(default_factory=list, description="Episodes the location appears in")


class BudgetAggregate(BaseModel):
    """Aggregated budget views for one sync run.

    Attributes:
        by_location_episode: location -> episode -> amount
        by_episode_category: episode -> category -> amount
        by_category_location_episode: category -> location -> episode -> amount
        episode_totals: episode -> amount
        locations: Canonical locations (matching targets)
        skipped_line_items: Line items dropped for a zero/unparseable subtotal
        cross_checks: Locations whose computed total diverges from the
            source-provided expected total
        metadata: Aggregation counters
    """
    by_location_episode: Dict[str, Dict[str, Decimal]] = Field(default_factory=dict)
    by_episode_category: Dict[str, Dict[str, Decimal]] = Field(default_factory=dict)
    by_category_location_episode: Dict[str, Dict[str, Dict[str, Decimal]]] = Field(default_factory=dict)
    episode_totals: Dict[str, Decimal] = Field(default_factory=dict)
    locations: List[CanonicalLocation] = Field(default_factory=list)
    skipped_line_items: int = 0
    cross_checks: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, int] = Field(default_factory=dict)

    def location_total(self, name: str) -> Decimal:
        return sum(self.by_location_episode.get(name, {}).values(), Decimal("0"))

    def location_category_totals(self, name: str) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for category, by_location in self.by_category_location_episode.items():
            amount = sum(by_location.get(name, {}).values(), Decimal("0"))
            if amount:
                totals[category] = amount
        return totals
