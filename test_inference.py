"""
Inference Tests

Validates the three inference passes over a batch of matched transactions:
1. Date co-occurrence (episode, global, primary preference, review flag, fallback)
2. Vendor history tiers
3. Date-vendor triangulation
"""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal

import pytest

from inference.engine import (
    extract_date_token,
    infer_from_dates,
    is_inference_eligible,
    run_inference,
)
from inference.indices import build_date_location_index, build_vendor_location_index
from models.canonical import ConfidenceTier, DateRange, InferenceSource, Transaction


def make_txn(
    txn_id,
    episode="101",
    vendor="",
    amount="100",
    description="",
    candidate=None,
    dates=None,
    matched=None,
):
    date_range = DateRange(start=dates[0], end=dates[-1]) if dates else None
    return Transaction(
        txn_id=txn_id,
        episode=episode,
        vendor=vendor,
        amount=Decimal(amount),
        description=description,
        candidate_location=candidate,
        date_range=date_range,
        matched_location=matched,
    )


OCT_20 = date(2025, 10, 20)
OCT_21 = date(2025, 10, 21)


class TestEligibility:

    def test_eligible_candidates(self):
        assert is_inference_eligible(make_txn("a"))
        assert is_inference_eligible(make_txn("a", candidate="GUARDS"))
        assert not is_inference_eligible(make_txn("a", candidate="MELROSE"))
        assert not is_inference_eligible(make_txn("a", candidate="GUARDS", matched="Melrose Ave"))

    def test_date_token(self):
        assert extract_date_token("10/20,10/21 PARKING") == "10/20"
        assert extract_date_token("1/5 FIRE") == "01/05"
        assert extract_date_token("no date") is None
        assert extract_date_token(None) is None


class TestIndices:

    def test_index_built_from_explicit_matches_only(self):
        anchor = make_txn("a", matched="Latchford House", dates=[OCT_20, OCT_21])
        inferred_only = make_txn("b", dates=[OCT_20]).model_copy(update={"inferred_location": "Keller Residence"})
        index = build_date_location_index([anchor, inferred_only])
        assert index.episode_locations("101", [OCT_20]) == {"Latchford House"}
        assert index.primary("101") == "Latchford House"

    def test_index_is_read_only(self):
        index = build_date_location_index([make_txn("a", matched="Latchford House", dates=[OCT_20])])
        with pytest.raises(TypeError):
            index.global_dates[OCT_21] = frozenset()
        with pytest.raises(FrozenInstanceError):
            index.primary_locations = {}

    def test_vendor_tiers(self):
        txns = (
            [make_txn(f"a{i}", vendor="ALPHA", matched="Keller Residence") for i in range(4)]
            + [make_txn("a9", vendor="ALPHA", matched="Latchford House")]
            + [make_txn(f"b{i}", vendor="BRAVO", matched="Keller Residence") for i in range(3)]
            + [make_txn(f"b{i}x", vendor="BRAVO", matched="Latchford House") for i in range(2)]
            + [make_txn("c1", vendor="CHARLIE", matched="Keller Residence"),
               make_txn("c2", vendor="CHARLIE", matched="Latchford House")]
            + [make_txn(f"d{i}", vendor="DELTA", matched="Melrose Ave") for i in range(3)]
        )
        index = build_vendor_location_index(txns)
        assert index.profile("alpha").confidence == ConfidenceTier.MEDIUM
        assert index.profile("BRAVO").confidence == ConfidenceTier.LOW
        assert index.profile("CHARLIE").confidence is None
        assert index.profile("DELTA").confidence == ConfidenceTier.HIGH
        assert index.usable_count == 3


class TestDatePass:
    """Pass 1: what else happened on the same dates."""

    def test_single_episode_location_is_high(self):
        """A service-token row in ep 101 on 10/20-10/21 takes Latchford House."""
        anchor = make_txn("a", matched="Latchford House", dates=[OCT_20, OCT_21])
        target = make_txn("t", candidate="PARKING", dates=[OCT_20, OCT_21])

        result, stats = run_inference([anchor, target])

        located = result[1]
        assert located.inferred_location == "Latchford House"
        assert located.inference_confidence == ConfidenceTier.HIGH
        assert located.inference_source == InferenceSource.DATE_EPISODE
        assert located.inference_reason == "episode_date_match"
        assert stats.eligible == 1
        assert stats.date_episode == 1
        assert result[0] == anchor

    def test_global_match_is_medium(self):
        anchor = make_txn("a", matched="Latchford House", dates=[OCT_20])
        target = make_txn("t", episode="102", candidate="GUARDS", dates=[OCT_20])

        result, stats = run_inference([anchor, target])

        assert result[1].inferred_location == "Latchford House"
        assert result[1].inference_source == InferenceSource.DATE_GLOBAL
        assert result[1].inference_confidence == ConfidenceTier.MEDIUM
        assert stats.date_global == 1

    def test_multiple_locations_prefer_primary(self):
        anchors = [
            make_txn("a", matched="Latchford House", amount="500", dates=[OCT_20]),
            make_txn("b", matched="Keller Residence", amount="100", dates=[OCT_20]),
        ]
        target = make_txn("t", candidate="FIRE", dates=[OCT_20])

        result, stats = run_inference(anchors + [target])

        located = result[2]
        assert located.inferred_location == "Latchford House"
        assert located.inference_reason == "multiple_picked_primary"
        assert located.inference_confidence == ConfidenceTier.MEDIUM
        assert located.possible_locations == ["Keller Residence", "Latchford House"]
        assert stats.multiple_picked_primary == 1

    def test_multiple_locations_without_primary_need_review(self):
        anchors = [
            make_txn("big", matched="Buckley High School", amount="10000", dates=[date(2025, 11, 1)]),
            make_txn("a", matched="Latchford House", dates=[OCT_20]),
            make_txn("b", matched="Keller Residence", dates=[OCT_20]),
        ]
        target = make_txn("t", candidate="FIRE", dates=[OCT_20])

        result, stats = run_inference(anchors + [target])

        flagged = result[3]
        assert flagged.inferred_location is None
        assert flagged.needs_review is True
        assert flagged.possible_locations == ["Keller Residence", "Latchford House"]
        assert stats.needs_review == 1
        assert stats.remaining == 1

    def test_primary_fallback_is_low(self):
        anchor = make_txn("a", matched="Latchford House", dates=[OCT_20])
        target = make_txn("t", dates=[date(2025, 12, 1)])

        result, stats = run_inference([anchor, target])

        assert result[1].inferred_location == "Latchford House"
        assert result[1].inference_source == InferenceSource.EPISODE_PRIMARY_FALLBACK
        assert result[1].inference_confidence == ConfidenceTier.LOW
        assert stats.primary_fallback == 1

    def test_no_date_range_is_skipped(self):
        result, stats = run_inference([make_txn("t", candidate="GUARDS")])
        assert result[0].inferred_location is None
        assert stats.skipped_no_date_range == 1

    def test_nothing_known(self):
        index = build_date_location_index([])
        assert infer_from_dates(make_txn("t", dates=[OCT_20]), index) is None


class TestVendorPass:
    """Pass 2: vendor history."""

    def test_vendor_history(self):
        anchors = [make_txn(f"a{i}", vendor="ACME GUARDS", matched="Keller Residence") for i in range(3)]
        target = make_txn("t", vendor="Acme Guards", candidate="GUARDS")

        result, stats = run_inference(anchors + [target])

        assert result[3].inferred_location == "Keller Residence"
        assert result[3].inference_source == InferenceSource.VENDOR_HISTORY
        assert result[3].inference_confidence == ConfidenceTier.HIGH
        assert stats.vendor_history == 1
        assert stats.vendor_history_by_tier == {"high": 1}

    def test_vendor_pass_resolves_review_flag(self):
        anchors = [
            make_txn("big", matched="Buckley High School", amount="10000", dates=[date(2025, 11, 1)]),
            make_txn("a", vendor="ACME", matched="Latchford House", dates=[OCT_20]),
            make_txn("b", vendor="ACME", matched="Latchford House", dates=[date(2025, 10, 1)]),
            make_txn("c", vendor="ACME", matched="Latchford House", dates=[date(2025, 10, 2)]),
            make_txn("d", matched="Keller Residence", dates=[OCT_20]),
        ]
        target = make_txn("t", vendor="ACME", dates=[OCT_20])

        result, stats = run_inference(anchors + [target])

        located = result[5]
        assert located.inferred_location == "Latchford House"
        assert located.needs_review is False
        assert stats.needs_review == 0

    def test_earlier_pass_wins(self):
        """A transaction located by dates is not revisited by the vendor pass."""
        anchors = [
            make_txn("a", matched="Latchford House", dates=[OCT_20]),
        ] + [make_txn(f"v{i}", vendor="ACME", matched="Keller Residence") for i in range(3)]
        target = make_txn("t", vendor="ACME", candidate="GUARDS", dates=[OCT_20])

        result, stats = run_inference(anchors + [target])

        assert result[-1].inferred_location == "Latchford House"
        assert stats.vendor_history == 0


class TestDateVendorPass:
    """Pass 3: same vendor, same MM/DD token."""

    def test_propagates_within_group(self):
        anchor = make_txn("a", vendor="ACME", description="10/20 KELLER WALKTHROUGH", matched="Keller Residence")
        target = make_txn("t", vendor="ACME", description="10/20 GUARDS", candidate="GUARDS")

        result, stats = run_inference([anchor, target])

        assert result[1].inferred_location == "Keller Residence"
        assert result[1].inference_source == InferenceSource.DATE_VENDOR
        assert result[1].inference_confidence == ConfidenceTier.MEDIUM
        assert stats.date_vendor == 1

    def test_different_token_does_not_propagate(self):
        anchor = make_txn("a", vendor="ACME", description="10/21 KELLER WALKTHROUGH", matched="Keller Residence")
        target = make_txn("t", vendor="ACME", description="10/20 GUARDS", candidate="GUARDS")

        result, stats = run_inference([anchor, target])

        assert result[1].inferred_location is None
        assert stats.date_vendor == 0
