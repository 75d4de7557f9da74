"""
Budget Aggregation Tests

Validates:
1. Line item subtotals (rate x unit x time, explicit zero)
2. Episode resolution through the reference chain
3. The three aggregate views and canonical locations
4. Expected-total cross-checks
5. Cent-exact redistribution of "all" budget
"""

import json
from decimal import Decimal

import pytest

from budget.aggregator import _split_evenly, aggregate_budget, load_budget_source, redistribute_unassigned
from budget.models import BudgetLineItem, BudgetSource
from budget.rules import normalize_category


@pytest.fixture
def source():
    """Two episodes, three locations, one orphan line item."""
    return BudgetSource.model_validate({
        "episodes": [
            {"$rowID": "e1", "episode": "101"},
            {"$rowID": "e2", "episode": "102"},
        ],
        "budgets": [
            {"$rowID": "b1", "episodeId": ["e1"]},
            {"$rowID": "b2", "episodeId": "e2"},
        ],
        "locations": [
            {"$rowID": "l1", "locationName": "Keller Residence", "budgetId": "b1", "totalFromMake": 1500},
            {"$rowID": "l2", "locationName": "Latchford House", "budgetId": "b2"},
            {"$rowID": "l3", "Name": "Griffith Park", "totalFromMake": 800},
        ],
        "lineItems": [
            {"category": "Location Fees", "locationId": "l1", "rate": 1000},
            {"category": "Security", "locationId": "l1", "episodeId": "e1", "rate": 250, "unit": 2, "time": 1},
            {"category": "site fees", "locationId": "l2", "rate": "$300.00", "unit": None, "time": "abc"},
            {"category": "Permits", "locationId": "l2", "rate": 100, "unit": 0},
            {"category": None, "locationId": "l9", "rate": 50},
        ],
    })


class TestLineItems:
    """rate x unit x time."""

    def test_missing_factors_default_to_one(self):
        assert BudgetLineItem(rate=10, time=3).subtotal() == Decimal("30")

    def test_explicit_zero_unit_zeroes_subtotal(self):
        assert BudgetLineItem(rate=100, unit=0).subtotal() == Decimal("0")

    def test_unparseable_rate_is_zero(self):
        assert BudgetLineItem(rate="abc", unit=2).subtotal() == Decimal("0")

    def test_unparseable_factor_defaults_to_one(self):
        assert BudgetLineItem(rate="$300.00", unit=None, time="abc").subtotal() == Decimal("300.00")


class TestCategories:

    def test_normalize_category(self):
        assert normalize_category("SITE FEES") == "Loc Fees"
        assert normalize_category("  Addl Labor ") == "Addl. Labor"
        assert normalize_category("Craft Service") == "Craft Service"
        assert normalize_category(None) == "Other"
        assert normalize_category("  ") == "Other"


class TestAggregation:
    """Aggregate views built from the fixture source."""

    def test_location_episode_view(self, source):
        agg = aggregate_budget(source)
        assert agg.by_location_episode["Keller Residence"] == {"101": Decimal("1500")}
        assert agg.by_location_episode["Latchford House"] == {"102": Decimal("300.00")}
        assert agg.by_location_episode["Unknown"] == {"all": Decimal("50")}

    def test_expected_total_without_line_items(self, source):
        """A location known only from its expected total is added as Loc Fees."""
        agg = aggregate_budget(source)
        assert agg.by_location_episode["Griffith Park"] == {"all": Decimal("800")}
        assert agg.by_episode_category["all"]["Loc Fees"] == Decimal("800")

    def test_episode_category_view(self, source):
        agg = aggregate_budget(source)
        assert agg.by_episode_category["101"] == {"Loc Fees": Decimal("1000"), "Security": Decimal("500")}
        assert agg.by_episode_category["102"] == {"Loc Fees": Decimal("300.00")}
        assert agg.by_episode_category["all"]["Other"] == Decimal("50")

    def test_category_location_episode_view(self, source):
        agg = aggregate_budget(source)
        assert agg.by_category_location_episode["Security"]["Keller Residence"]["101"] == Decimal("500")

    def test_episode_totals(self, source):
        agg = aggregate_budget(source)
        assert agg.episode_totals["101"] == Decimal("1500")
        assert agg.episode_totals["102"] == Decimal("300.00")
        assert agg.episode_totals["all"] == Decimal("850")

    def test_canonical_locations_exclude_unknown(self, source):
        agg = aggregate_budget(source)
        assert [loc.name for loc in agg.locations] == ["Griffith Park", "Keller Residence", "Latchford House"]
        keller = agg.locations[1]
        assert keller.total_budget == Decimal("1500")
        assert keller.episodes == ["101"]

    def test_skipped_and_counters(self, source):
        agg = aggregate_budget(source)
        assert agg.skipped_line_items == 1
        assert agg.metadata["line_items_with_direct_episode"] == 1
        assert agg.metadata["line_items_with_budget_episode"] == 2
        assert agg.metadata["line_items_without_episode"] == 1

    def test_no_cross_check_when_totals_agree(self, source):
        assert aggregate_budget(source).cross_checks == []

    def test_cross_check_divergence(self):
        """Computed total 50% below the expected total is reported."""
        src = BudgetSource.model_validate({
            "locations": [{"$rowID": "l1", "locationName": "Keller Residence", "totalFromMake": 1000}],
            "lineItems": [{"category": "Loc Fees", "locationId": "l1", "rate": 500}],
        })
        agg = aggregate_budget(src)
        assert len(agg.cross_checks) == 1
        assert agg.cross_checks[0]["location"] == "Keller Residence"
        assert agg.cross_checks[0]["divergence_pct"] == "50.00"

    def test_divergence_within_tolerance(self):
        src = BudgetSource.model_validate({
            "locations": [{"$rowID": "l1", "locationName": "Keller Residence", "totalFromMake": 1000}],
            "lineItems": [{"category": "Loc Fees", "locationId": "l1", "rate": 970}],
        })
        assert aggregate_budget(src).cross_checks == []


class TestRedistribution:
    """Spreading "all" budget over active episodes."""

    def test_split_is_cent_exact(self):
        shares = _split_evenly(Decimal("100"), 3)
        assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(shares) == Decimal("100")

    def test_spreads_all_budget(self, source):
        agg = redistribute_unassigned(aggregate_budget(source), ["101", "102", "unknown"])

        assert agg.by_location_episode["Griffith Park"] == {"101": Decimal("400.00"), "102": Decimal("400.00")}
        assert agg.by_location_episode["Unknown"] == {"101": Decimal("25.00"), "102": Decimal("25.00")}
        assert "all" not in agg.episode_totals
        assert agg.episode_totals["101"] == Decimal("1925")
        assert agg.episode_totals["102"] == Decimal("725")
        assert agg.by_episode_category["101"]["Loc Fees"] == Decimal("1400")

    def test_total_budget_is_preserved(self, source):
        before = aggregate_budget(source)
        after = redistribute_unassigned(before, ["101", "102"])
        assert sum(after.episode_totals.values()) == sum(before.episode_totals.values())

    def test_canonical_locations_gain_episodes(self, source):
        agg = redistribute_unassigned(aggregate_budget(source), ["101", "102"])
        griffith = next(loc for loc in agg.locations if loc.name == "Griffith Park")
        assert griffith.episodes == ["101", "102"]

    def test_no_active_episodes(self, source):
        agg = aggregate_budget(source)
        assert redistribute_unassigned(agg, ["unknown"]) is agg


class TestLoading:

    def test_missing_file(self, tmp_path):
        assert load_budget_source(tmp_path / "missing.json") is None
        assert load_budget_source(None) is None

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "budget.json"
        path.write_text("{not json")
        assert load_budget_source(path) is None

    def test_valid_file(self, tmp_path):
        path = tmp_path / "budget.json"
        path.write_text(json.dumps({"lineItems": [{"category": "Fire", "rate": 10}]}))
        loaded = load_budget_source(path)
        assert len(loaded.line_items) == 1
