"""Per-run lookup indices for location inference.

Both indices are built once per sync run from the transactions that already
carry a confident location, then passed explicitly into the inference passes.
They are never cached between runs.
"""

import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Set

from extraction.dates import expand_date_range
from extraction.locations import is_service_token
from inference.models import DEFAULT_INFERENCE_CONFIG, InferenceConfig, VendorLocationProfile
from models.canonical import ConfidenceTier, Transaction


def vendor_key(vendor: Optional[str]) -> str:
    """Normalize a vendor name for grouping."""
    return re.sub(r"\s+", " ", (vendor or "").upper()).strip()


def _anchor_location(txn: Transaction) -> Optional[str]:
    """Location a transaction contributes to the indices, if any."""
    location = txn.matched_location
    if not location or is_service_token(location):
        return None
    return location


# =============================================================================
# Date -> Location Index
# =============================================================================

@dataclass(frozen=True)
class DateLocationIndex:
    """Which locations were in use on which dates.

    Attributes:
        by_episode: episode -> date -> locations
        global_dates: date -> locations across all episodes
        primary_locations: episode -> location with the highest summed |amount|
    """
    by_episode: Mapping[str, Mapping[date, FrozenSet[str]]] = field(default_factory=dict)
    global_dates: Mapping[date, FrozenSet[str]] = field(default_factory=dict)
    primary_locations: Mapping[str, str] = field(default_factory=dict)

    def episode_locations(self, episode: str, dates: Iterable[date]) -> Set[str]:
        by_date = self.by_episode.get(episode, {})
        found: Set[str] = set()
        for d in dates:
            found.update(by_date.get(d, ()))
        return found

    def global_locations(self, dates: Iterable[date]) -> Set[str]:
        found: Set[str] = set()
        for d in dates:
            found.update(self.global_dates.get(d, ()))
        return found

    def primary(self, episode: str) -> Optional[str]:
        return self.primary_locations.get(episode)


def build_date_location_index(
    transactions: Iterable[Transaction],
    max_range_days: int = DEFAULT_INFERENCE_CONFIG.max_range_days,
) -> DateLocationIndex:
    """Build the date index from explicitly matched transactions with a date range."""
    by_episode: Dict[str, Dict[date, Set[str]]] = defaultdict(lambda: defaultdict(set))
    global_dates: Dict[date, Set[str]] = defaultdict(set)
    spend: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: Decimal("0")))

    for txn in transactions:
        location = _anchor_location(txn)
        if location is None or txn.date_range is None:
            continue
        for d in expand_date_range(txn.date_range, max_range_days):
            by_episode[txn.episode][d].add(location)
            global_dates[d].add(location)
        spend[txn.episode][location] += abs(txn.amount)

    primary = {}
    for episode, totals in spend.items():
        # Highest spend wins; ties go to the alphabetically first name
        primary[episode] = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]

    return DateLocationIndex(
        by_episode=MappingProxyType({
            ep: MappingProxyType({d: frozenset(locs) for d, locs in dates.items()})
            for ep, dates in by_episode.items()
        }),
        global_dates=MappingProxyType({d: frozenset(locs) for d, locs in global_dates.items()}),
        primary_locations=MappingProxyType(primary),
    )


# =============================================================================
# Vendor -> Location Index
# =============================================================================

@dataclass(frozen=True)
class VendorLocationIndex:
    """Vendor location profiles for the current batch."""
    profiles: Mapping[str, VendorLocationProfile] = field(default_factory=dict)

    def profile(self, vendor: Optional[str]) -> Optional[VendorLocationProfile]:
        return self.profiles.get(vendor_key(vendor))

    @property
    def usable_count(self) -> int:
        return sum(1 for p in self.profiles.values() if p.usable)


def _tier(location_count: int, top_count: int, ratio: float, config: InferenceConfig) -> Optional[ConfidenceTier]:
    if location_count == 1 and top_count >= config.vendor_high_min_count:
        return ConfidenceTier.HIGH
    if ratio >= config.vendor_medium_ratio and top_count >= config.vendor_min_count:
        return ConfidenceTier.MEDIUM
    if ratio >= config.vendor_low_ratio and top_count >= config.vendor_min_count:
        return ConfidenceTier.LOW
    return None


def build_vendor_location_index(
    transactions: Iterable[Transaction],
    config: InferenceConfig = DEFAULT_INFERENCE_CONFIG,
) -> VendorLocationIndex:
    """Profile every vendor seen with an explicitly matched location."""
    histograms: Dict[str, Counter] = defaultdict(Counter)
    for txn in transactions:
        location = _anchor_location(txn)
        key = vendor_key(txn.vendor)
        if location is None or not key:
            continue
        histograms[key][location] += 1

    profiles = {}
    for key, counts in histograms.items():
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        top_location, top_count = ranked[0]
        total = sum(counts.values())
        ratio = top_count / total
        profiles[key] = VendorLocationProfile(
            vendor=key,
            location=top_location,
            count=top_count,
            total_appearances=total,
            ratio=round(ratio, 4),
            confidence=_tier(len(ranked), top_count, ratio, config),
            all_locations=ranked[:3],
        )

    return VendorLocationIndex(profiles=MappingProxyType(profiles))
