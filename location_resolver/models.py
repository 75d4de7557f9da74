"""Location Resolver Data Models.

This module defines the Pydantic models for location matching:
- LocationAlias: Mapping from a ledger location spelling to a budget location
- LocationAliasTable: All alias entries plus service-charge patterns
- LocationMatch: The result of matching one candidate (a Transaction patch)
- MatchingConfig: Thresholds for the similarity-based stages
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from location_resolver.normalize import normalize_location_name
from models.canonical import InferenceSource, UnmappedReason


SERVICE_CHARGE = "SERVICE_CHARGE"
PENDING_PREFIX = "PENDING:"


class MatchType(str, Enum):
    """How the location was matched."""
    MAPPING = "mapping"                          # Alias table hit
    MAPPING_FUZZY = "mapping_fuzzy"              # Alias target matched by similarity
    EXACT = "exact"                              # Case-insensitive equality
    ALIAS = "alias"                              # Equality after typo correction
    SUBSTRING = "substring"                      # Containment either direction
    FIRST_WORD = "first_word"                    # First meaningful word equal
    FIRST_WORD_PARTIAL = "first_word_partial"    # First word found in the other name
    ALIAS_FIRST_WORD = "alias_first_word"        # First word equal after typo + stemming
    KEYWORD = "keyword"                          # Shared known proper-noun fragment
    DESCRIPTION_KEYWORD = "description_keyword"  # Retry with keyword from description
    FUZZY = "fuzzy"                              # Dice bigram similarity


# Fixed confidence per stage; the fuzzy stage reports its raw score instead
MATCH_CONFIDENCE: Dict[MatchType, float] = {
    MatchType.MAPPING: 0.98,
    MatchType.MAPPING_FUZZY: 0.95,
    MatchType.EXACT: 1.0,
    MatchType.ALIAS: 0.95,
    MatchType.SUBSTRING: 0.9,
    MatchType.FIRST_WORD: 0.85,
    MatchType.FIRST_WORD_PARTIAL: 0.8,
    MatchType.ALIAS_FIRST_WORD: 0.8,
    MatchType.KEYWORD: 0.75,
}

DESCRIPTION_STRONG_CONFIDENCE = 0.82
DESCRIPTION_WEAK_CONFIDENCE = 0.78


class LocationAlias(BaseModel):
    """Mapping from a ledger location spelling to a budget location.

    ``budget_location`` is either a canonical budget name, the
    ``SERVICE_CHARGE`` sentinel, or ``PENDING:<name>`` for a location that has
    not been added to the budget yet. Sentinel entries never produce a match.

    Attributes:
        id: Database row ID
        production_id: Production/show identifier
        ledger_location: Location as written in the ledger
        budget_location: Target budget location or sentinel
        aliases: Other ledger spellings that map to the same target
        created_by: Who created this alias (user or system)
        created_at: When this alias was created
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    production_id: str = Field(default="default", description="Production identifier")
    ledger_location: str = Field(..., description="Ledger spelling")
    budget_location: str = Field(..., description="Budget location or sentinel")
    aliases: List[str] = Field(default_factory=list)
    created_by: str = Field(default="system", description="Who created this alias")
    created_at: Optional[datetime] = None

    @property
    def is_service_charge(self) -> bool:
        return self.budget_location.strip().upper() == SERVICE_CHARGE

    @property
    def is_pending(self) -> bool:
        return self.budget_location.strip().upper().startswith(PENDING_PREFIX)

    @property
    def is_sentinel(self) -> bool:
        return self.is_service_charge or self.is_pending

    def spellings(self) -> List[str]:
        return [self.ledger_location] + list(self.aliases)


class LocationAliasTable(BaseModel):
    """Alias entries and service-charge patterns for one production.

    Authoritative above every automatic matching strategy.
    """
    entries: List[LocationAlias] = Field(default_factory=list)
    service_charge_patterns: List[str] = Field(default_factory=list)

    def lookup(self, candidate: str) -> Optional[LocationAlias]:
        """Find the entry whose ledger spelling or alias normalizes to the candidate."""
        key = normalize_location_name(candidate)
        if not key:
            return None
        for entry in self.entries:
            if any(normalize_location_name(s) == key for s in entry.spellings()):
                return entry
        return None

    def matches_service_charge_pattern(self, candidate: str) -> bool:
        key = normalize_location_name(candidate)
        if not key:
            return False
        for pattern in self.service_charge_patterns:
            norm = normalize_location_name(pattern)
            if norm and f" {norm} " in f" {key} ":
                return True
        return False

    @classmethod
    def from_dict(cls, data: Any) -> "LocationAliasTable":
        """Build a table from a JSON-style document.

        Accepts a list of entries, ``{"entries": [...], "serviceChargeLocations": [...]}``
        or a flat ``{"mappings": {ledger: budget}}`` document.
        """
        if isinstance(data, list):
            return cls(entries=[LocationAlias.model_validate(e) for e in data])

        entries = [LocationAlias.model_validate(e) for e in data.get("entries", [])]
        for ledger, budget in (data.get("mappings") or {}).items():
            entries.append(LocationAlias(ledger_location=ledger, budget_location=budget, created_by="json"))
        patterns = data.get("service_charge_patterns") or data.get("serviceChargeLocations") or []
        return cls(entries=entries, service_charge_patterns=list(patterns))

    @classmethod
    def from_json_file(cls, path: Path) -> "LocationAliasTable":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


class LocationMatch(BaseModel):
    """Result of matching one candidate against the canonical locations.

    Applied to a Transaction with ``Transaction.apply``.
    """
    model_config = ConfigDict(frozen=True)

    location: str = Field(..., description="Canonical budget location")
    confidence: float = Field(..., ge=0.0, le=1.0)
    match_type: MatchType
    candidate: str = Field(default="", description="Candidate as extracted")
    reasons: List[str] = Field(default_factory=list)

    def to_update(self) -> Dict[str, Any]:
        return {
            "matched_location": self.location,
            "match_confidence": self.confidence,
            "match_type": self.match_type.value,
            "inference_source": InferenceSource.EXPLICIT,
            "unmapped_reason": None,
        }


class UnmappedLocation(BaseModel):
    """Outcome for a candidate that matched no canonical location."""
    model_config = ConfigDict(frozen=True)

    reason: UnmappedReason

    def to_update(self) -> Dict[str, Any]:
        return {"unmapped_reason": self.reason}


# =============================================================================
# Matching Configuration
# =============================================================================

class MatchingConfig(BaseModel):
    """Configuration for the location matching cascade."""
    alias_similarity_threshold: float = Field(
        default=0.8,
        description="Min similarity for an alias target that is not an exact canonical name",
    )
    fuzzy_threshold: float = Field(
        default=0.5,
        description="Dice score a fuzzy match must exceed",
    )
    min_first_word_length: int = Field(default=4, description="Min length of a first meaningful word")
    min_substring_length: int = Field(default=4, description="Min length of the shorter name in containment")


DEFAULT_MATCHING_CONFIG = MatchingConfig()
