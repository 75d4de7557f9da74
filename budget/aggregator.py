"""Budget aggregation.

Exposes:
- aggregate_budget(source) -> BudgetAggregate
- redistribute_unassigned(aggregate, active_episodes) -> BudgetAggregate
- load_budget_source(path) -> Optional[BudgetSource]

Line items are summed into three views (location/episode,
episode/category, category/location/episode) plus per-episode totals.
Budget tagged "all" (no resolvable episode) is spread across the episodes with
ledger activity before matching, since it changes the per-episode
denominators used in variance percentages.
"""

import json
from collections import defaultdict
from decimal import Decimal, ROUND_DOWN
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from budget.models import BudgetAggregate, BudgetSource, CanonicalLocation
from budget.rules import (
    ALL_EPISODES,
    CROSS_CHECK_TOLERANCE,
    MISSING_LINE_ITEM_CATEGORY,
    UNKNOWN_LOCATION,
    EpisodeResolver,
    normalize_category,
)
from core.observability.logging import get_logger
from models.canonical import parse_amount


logger = get_logger(__name__)

CENT = Decimal("0.01")


def _nested():
    return defaultdict(lambda: Decimal("0"))


def _plain(mapping) -> Dict:
    """Convert nested defaultdicts into plain dicts."""
    if isinstance(mapping, dict):
        return {k: _plain(v) for k, v in mapping.items()}
    return mapping


def build_canonical_locations(by_location_episode: Dict[str, Dict[str, Decimal]]) -> List[CanonicalLocation]:
    """Build matching targets from the location/episode view."""
    locations = []
    for name in sorted(by_location_episode):
        if name == UNKNOWN_LOCATION:
            continue
        episodes = by_location_episode[name]
        locations.append(CanonicalLocation(
            name=name,
            total_budget=sum(episodes.values(), Decimal("0")),
            episodes=sorted(ep for ep in episodes if ep != ALL_EPISODES),
        ))
    return locations


# =============================================================================
# Aggregation
# =============================================================================

def aggregate_budget(
    source: BudgetSource,
    tolerance: Decimal = CROSS_CHECK_TOLERANCE,
) -> BudgetAggregate:
    """Aggregate budget line items into the reconciliation views.

    Args:
        source: Budget tables (episodes, budget headers, locations, line items)
        tolerance: Relative divergence from a location's expected total that
            is reported as a cross-check warning

    Returns:
        BudgetAggregate with all views, canonical locations and counters
    """
    resolver = EpisodeResolver(source)
    location_names = {
        loc.row_id: loc.display_name for loc in source.locations if loc.row_id and loc.display_name
    }

    by_location_episode = defaultdict(_nested)
    by_episode_category = defaultdict(_nested)
    by_category_location_episode = defaultdict(lambda: defaultdict(_nested))

    skipped = 0
    with_direct = 0
    with_budget = 0
    without_episode = 0

    for item in source.line_items:
        amount = item.subtotal()
        if amount == 0:
            skipped += 1
            continue

        location = location_names.get(item.location_id) or UNKNOWN_LOCATION
        episode, how = resolver.resolve(item)
        if how == EpisodeResolver.DIRECT:
            with_direct += 1
        elif how == EpisodeResolver.VIA_BUDGET:
            with_budget += 1
        else:
            without_episode += 1

        category = normalize_category(item.category)
        by_location_episode[location][episode] += amount
        by_episode_category[episode][category] += amount
        by_category_location_episode[category][location][episode] += amount

    # Cross-check computed totals against source-provided expected totals
    cross_checks = []
    for loc in source.locations:
        expected = parse_amount(loc.expected_total)
        name = loc.display_name
        if expected is None or expected <= 0 or not name:
            continue

        calculated = sum(by_location_episode.get(name, {}).values(), Decimal("0"))
        if name not in by_location_episode:
            episode = resolver.location_episode(loc.row_id)
            by_location_episode[name][episode] += expected
            by_episode_category[episode][MISSING_LINE_ITEM_CATEGORY] += expected
            by_category_location_episode[MISSING_LINE_ITEM_CATEGORY][name][episode] += expected
            logger.info(f"Added location {name} from expected total (no line items)",
                        extra_fields={"episode": episode, "amount": str(expected)})
            continue

        divergence = abs(expected - calculated) / expected
        if divergence > tolerance:
            cross_checks.append({
                "location": name,
                "expected_total": str(expected),
                "calculated_total": str(calculated),
                "divergence_pct": str((divergence * 100).quantize(CENT)),
            })

    episode_totals: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for episodes in by_location_episode.values():
        for episode, amount in episodes.items():
            episode_totals[episode] += amount

    plain_locations = _plain(by_location_episode)
    aggregate = BudgetAggregate(
        by_location_episode=plain_locations,
        by_episode_category=_plain(by_episode_category),
        by_category_location_episode=_plain(by_category_location_episode),
        episode_totals=dict(episode_totals),
        locations=build_canonical_locations(plain_locations),
        skipped_line_items=skipped,
        cross_checks=cross_checks,
        metadata={
            "location_budget_count": len(source.locations),
            "line_item_count": len(source.line_items),
            "line_items_with_amount": len(source.line_items) - skipped,
            "line_items_with_direct_episode": with_direct,
            "line_items_with_budget_episode": with_budget,
            "line_items_without_episode": without_episode,
            "episode_count": len(source.episodes),
            "budget_count": len(source.budgets),
        },
    )

    logger.info(
        f"Aggregated budget: {len(aggregate.locations)} locations, {len(episode_totals)} episode groups",
        extra_fields={"skipped_line_items": skipped, "cross_check_warnings": len(cross_checks)},
    )
    return aggregate


# =============================================================================
# Redistribution of "all" Budget
# =============================================================================

def _split_evenly(amount: Decimal, parts: int) -> List[Decimal]:
    """Split an amount into equal cent shares; the last share takes the remainder."""
    share = (amount / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [amount - share * (parts - 1)]


def _spread(by_episode: Dict[str, Decimal], episodes: List[str]) -> Dict[str, Decimal]:
    result = {k: v for k, v in by_episode.items() if k != ALL_EPISODES}
    unassigned = by_episode.get(ALL_EPISODES)
    if unassigned is None:
        return result
    for episode, share in zip(episodes, _split_evenly(unassigned, len(episodes))):
        result[episode] = result.get(episode, Decimal("0")) + share
    return result


def redistribute_unassigned(
    aggregate: BudgetAggregate,
    active_episodes: Iterable[str],
) -> BudgetAggregate:
    """Spread "all"-tagged budget evenly across episodes with ledger activity.

    Args:
        aggregate: Aggregate produced by aggregate_budget
        active_episodes: Episodes that have transactions in the current batch

    Returns:
        A new BudgetAggregate; the input is returned unchanged when there are
        no active episodes
    """
    episodes = sorted({ep for ep in active_episodes if ep and ep not in (ALL_EPISODES, "unknown")})
    if not episodes:
        return aggregate

    by_location_episode = {
        location: _spread(by_episode, episodes)
        for location, by_episode in aggregate.by_location_episode.items()
    }

    # episode -> category view: move the "all" column category by category
    by_episode_category: Dict[str, Dict[str, Decimal]] = {
        ep: dict(cats) for ep, cats in aggregate.by_episode_category.items() if ep != ALL_EPISODES
    }
    for category, amount in aggregate.by_episode_category.get(ALL_EPISODES, {}).items():
        for episode, share in zip(episodes, _split_evenly(amount, len(episodes))):
            bucket = by_episode_category.setdefault(episode, {})
            bucket[category] = bucket.get(category, Decimal("0")) + share

    by_category_location_episode = {
        category: {
            location: _spread(by_episode, episodes)
            for location, by_episode in by_location.items()
        }
        for category, by_location in aggregate.by_category_location_episode.items()
    }

    episode_totals: Dict[str, Decimal] = {}
    for by_episode in by_location_episode.values():
        for episode, amount in by_episode.items():
            episode_totals[episode] = episode_totals.get(episode, Decimal("0")) + amount

    moved = aggregate.episode_totals.get(ALL_EPISODES, Decimal("0"))
    logger.info(f"Redistributed {moved} of unassigned budget across {len(episodes)} episodes")

    return aggregate.model_copy(update={
        "by_location_episode": by_location_episode,
        "by_episode_category": by_episode_category,
        "by_category_location_episode": by_category_location_episode,
        "episode_totals": episode_totals,
        "locations": build_canonical_locations(by_location_episode),
    })


# =============================================================================
# Loading
# =============================================================================

def load_budget_source(path: Optional[Path]) -> Optional[BudgetSource]:
    """Load budget tables from JSON, returning None when unavailable."""
    if path is None:
        return None
    path = Path(path)
    if not path.exists():
        logger.warning(f"Budget source not found: {path}")
        return None
    try:
        return BudgetSource.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(f"Budget source unreadable ({path.name}): {e}")
        return None
