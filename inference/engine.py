"""Temporal and vendor location inference.

Exposes:
- infer_from_dates(txn, index, config) -> Optional[LocationInference]
- infer_from_vendor_history(txn, index) -> Optional[LocationInference]
- infer_from_date_vendor(transactions, config) -> Dict[txn_id, LocationInference]
- run_inference(transactions, config) -> (transactions, InferenceStats)

Only transactions without an explicit match whose candidate is empty or a
service token are eligible. Passes run in order and never revisit a
transaction an earlier pass already inferred.
"""

import re
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from core.observability.logging import get_logger
from extraction.dates import expand_date_range
from extraction.locations import is_service_token
from inference.indices import (
    DateLocationIndex,
    VendorLocationIndex,
    build_date_location_index,
    build_vendor_location_index,
    vendor_key,
)
from inference.models import (
    DEFAULT_INFERENCE_CONFIG,
    InferenceConfig,
    InferenceStats,
    LocationInference,
)
from models.canonical import ConfidenceTier, InferenceSource, Transaction


logger = get_logger(__name__)

DATE_TOKEN_RE = re.compile(r"(?<![\d/])(\d{1,2}/\d{1,2})(?![\d])")


def is_inference_eligible(txn: Transaction) -> bool:
    """No explicit match and no usable candidate (empty or a service token)."""
    if txn.matched_location:
        return False
    return not txn.candidate_location or is_service_token(txn.candidate_location)


def extract_date_token(description: Optional[str]) -> Optional[str]:
    """First short ``MM/DD`` token in a description, zero-padded."""
    match = DATE_TOKEN_RE.search(description or "")
    if not match:
        return None
    month, day = match.group(1).split("/")
    return f"{int(month):02d}/{int(day):02d}"


# =============================================================================
# Pass 1: Date Co-occurrence
# =============================================================================

def infer_from_dates(
    txn: Transaction,
    index: DateLocationIndex,
    config: InferenceConfig = DEFAULT_INFERENCE_CONFIG,
) -> Optional[LocationInference]:
    """Infer a location from what else happened on the transaction's dates.

    Lookup order: the transaction's own episode, then all episodes. Several
    candidates resolve to the episode's primary location when it is among
    them, otherwise the transaction is flagged for review. No hit at all
    falls back to the episode's primary location.

    Returns:
        LocationInference, or None when the transaction has no date range or
        nothing at all could be suggested
    """
    if txn.date_range is None:
        return None

    dates = expand_date_range(txn.date_range, config.max_range_days)
    possible = index.episode_locations(txn.episode, dates)
    if len(possible) == 1:
        return LocationInference(
            location=next(iter(possible)),
            source=InferenceSource.DATE_EPISODE,
            reason="episode_date_match",
            confidence=ConfidenceTier.HIGH,
        )

    if not possible:
        possible = index.global_locations(dates)
        if len(possible) == 1:
            return LocationInference(
                location=next(iter(possible)),
                source=InferenceSource.DATE_GLOBAL,
                reason="global_date_match",
                confidence=ConfidenceTier.MEDIUM,
            )

    primary = index.primary(txn.episode)
    if len(possible) > 1:
        options = sorted(possible)
        if primary and primary in possible:
            return LocationInference(
                location=primary,
                source=InferenceSource.DATE_EPISODE,
                reason="multiple_picked_primary",
                confidence=ConfidenceTier.MEDIUM,
                possible_locations=options,
            )
        return LocationInference(
            location=None,
            source=InferenceSource.NONE,
            reason="multiple_locations",
            possible_locations=options,
            needs_review=True,
        )

    if primary:
        return LocationInference(
            location=primary,
            source=InferenceSource.EPISODE_PRIMARY_FALLBACK,
            reason="episode_primary_fallback",
            confidence=ConfidenceTier.LOW,
        )
    return None


# =============================================================================
# Pass 2: Vendor History
# =============================================================================

def infer_from_vendor_history(txn: Transaction, index: VendorLocationIndex) -> Optional[LocationInference]:
    """Infer the vendor's dominant location when its profile is usable."""
    profile = index.profile(txn.vendor)
    if profile is None or not profile.usable:
        return None
    return LocationInference(
        location=profile.location,
        source=InferenceSource.VENDOR_HISTORY,
        reason=f"vendor_history ({profile.count}/{profile.total_appearances})",
        confidence=profile.confidence,
        possible_locations=[loc for loc, _ in profile.all_locations] if len(profile.all_locations) > 1 else [],
    )


# =============================================================================
# Pass 3: Date-Vendor Triangulation
# =============================================================================

def _valid_anchor(location: Optional[str], config: InferenceConfig) -> bool:
    return bool(location) and len(location) >= config.min_propagated_location_length and not is_service_token(location)


def infer_from_date_vendor(
    transactions: Sequence[Transaction],
    config: InferenceConfig = DEFAULT_INFERENCE_CONFIG,
) -> Dict[str, LocationInference]:
    """Propagate locations within vendor + description-date groups.

    Transactions sharing a vendor and a ``MM/DD`` token in their description
    are assumed to be the same booking. When any of them carries a valid
    location, siblings without one receive it.

    Returns:
        Mapping of txn_id to the inference for each sibling that gained a location
    """
    groups: Dict[Tuple[str, str], List[Transaction]] = defaultdict(list)
    for txn in transactions:
        token = extract_date_token(txn.description)
        key = vendor_key(txn.vendor)
        if token and key:
            groups[(key, token)].append(txn)

    results: Dict[str, LocationInference] = {}
    for (vendor, token), members in groups.items():
        anchors = Counter(
            t.resolved_location for t in members if _valid_anchor(t.resolved_location, config)
        )
        if not anchors:
            continue
        location = sorted(anchors.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]
        for txn in members:
            if txn.resolved_location or not is_inference_eligible(txn):
                continue
            results[txn.txn_id] = LocationInference(
                location=location,
                source=InferenceSource.DATE_VENDOR,
                reason=f"date_vendor_match ({vendor} {token})",
                confidence=ConfidenceTier.MEDIUM,
            )
    return results


# =============================================================================
# Orchestration
# =============================================================================

def run_inference(
    transactions: Sequence[Transaction],
    config: InferenceConfig = DEFAULT_INFERENCE_CONFIG,
) -> Tuple[List[Transaction], InferenceStats]:
    """Run the three inference passes over a batch.

    Args:
        transactions: Transactions after location matching
        config: Inference configuration

    Returns:
        (transactions with inference patches applied, per-pass stats);
        input order is preserved
    """
    date_index = build_date_location_index(transactions, config.max_range_days)
    vendor_index = build_vendor_location_index(transactions, config)
    stats = InferenceStats(
        vendors_profiled=len(vendor_index.profiles),
        vendors_usable=vendor_index.usable_count,
    )

    result = list(transactions)
    eligible = [i for i, t in enumerate(result) if is_inference_eligible(t)]
    stats.eligible = len(eligible)

    # Pass 1
    for i in eligible:
        txn = result[i]
        if txn.date_range is None:
            stats.skipped_no_date_range += 1
            continue
        inference = infer_from_dates(txn, date_index, config)
        if inference is None:
            stats.no_date_match += 1
            continue
        result[i] = txn.apply(inference)
        if inference.needs_review:
            continue
        if inference.reason == "multiple_picked_primary":
            stats.multiple_picked_primary += 1
        elif inference.source == InferenceSource.DATE_EPISODE:
            stats.date_episode += 1
        elif inference.source == InferenceSource.DATE_GLOBAL:
            stats.date_global += 1
        else:
            stats.primary_fallback += 1

    # Pass 2
    by_tier: Counter = Counter()
    for i in eligible:
        txn = result[i]
        if txn.inferred_location:
            continue
        inference = infer_from_vendor_history(txn, vendor_index)
        if inference is None:
            continue
        result[i] = txn.apply(inference)
        stats.vendor_history += 1
        by_tier[inference.confidence.value] += 1
    stats.vendor_history_by_tier = dict(by_tier)

    # Pass 3
    positions = {result[i].txn_id: i for i in eligible}
    for txn_id, inference in infer_from_date_vendor(result, config).items():
        i = positions[txn_id]
        result[i] = result[i].apply(inference)
        stats.date_vendor += 1

    # Review flags cleared by passes 2 and 3 no longer count
    stats.remaining = sum(1 for i in eligible if not result[i].inferred_location)
    stats.needs_review = sum(1 for i in eligible if result[i].needs_review)

    logger.info(
        f"Inference complete: {stats.eligible - stats.remaining}/{stats.eligible} eligible transactions located",
        extra_fields=stats.to_dict(),
    )
    return result, stats
