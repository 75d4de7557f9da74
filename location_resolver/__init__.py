"""Location Resolver - Joins ledger location candidates to budget locations.

This package matches free-text ledger locations against canonical budget
location names based on:
- Alias table entries (authoritative)
- Exact, typo-corrected, substring and first-word comparisons
- Known proper-noun keywords and description re-extraction
- Dice bigram similarity as a last resort

Usage:
    from location_resolver import LocationMatcher, load_alias_table

    matcher = LocationMatcher(aggregate.locations, load_alias_table())
    match = matcher.match("Kellner's House")
    if match:
        txn = txn.apply(match)
    else:
        reason = matcher.classify_unmapped("Kellner's House")
"""

from location_resolver.models import (
    LocationAlias,
    LocationAliasTable,
    LocationMatch,
    MatchType,
    MatchingConfig,
    DEFAULT_MATCHING_CONFIG,
)
from location_resolver.resolver import LocationMatcher, classify_unmapped, extract_description_keyword
from location_resolver.normalize import normalize_location_name, dice_coefficient
from location_resolver.db import (
    init_location_alias_db,
    add_location_alias,
    get_location_alias,
    list_location_aliases,
    delete_location_alias,
    load_alias_table,
    seed_sample_aliases,
)

__all__ = [
    # Models
    "LocationAlias",
    "LocationAliasTable",
    "LocationMatch",
    "MatchType",
    "MatchingConfig",
    "DEFAULT_MATCHING_CONFIG",
    # Matcher
    "LocationMatcher",
    "classify_unmapped",
    "extract_description_keyword",
    # Normalization
    "normalize_location_name",
    "dice_coefficient",
    # Database
    "init_location_alias_db",
    "add_location_alias",
    "get_location_alias",
    "list_location_aliases",
    "delete_location_alias",
    "load_alias_table",
    "seed_sample_aliases",
]
