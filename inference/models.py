"""Inference Data Models.

This module defines the Pydantic models for location inference:
- InferenceConfig: Date bound and vendor tiering thresholds
- LocationInference: The result of inferring one transaction (a Transaction patch)
- VendorLocationProfile: A vendor's location histogram summarized into a tier
- InferenceStats: Per-pass counters
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from extraction.dates import MAX_RANGE_DAYS
from models.canonical import ConfidenceTier, InferenceSource


class InferenceConfig(BaseModel):
    """Configuration for the inference passes.

    The vendor tiers follow a fixed rule: high when a vendor was only ever seen
    at one location at least ``vendor_high_min_count`` times; medium when the
    dominant location holds ``vendor_medium_ratio`` of appearances; low at
    ``vendor_low_ratio``. Medium and low also need ``vendor_min_count``.
    """
    max_range_days: int = Field(default=MAX_RANGE_DAYS, description="Longest accepted date range")
    vendor_high_min_count: int = Field(default=3)
    vendor_medium_ratio: float = Field(default=0.8)
    vendor_low_ratio: float = Field(default=0.6)
    vendor_min_count: int = Field(default=2)
    min_propagated_location_length: int = Field(
        default=4,
        description="Shortest location the date-vendor pass will propagate",
    )


DEFAULT_INFERENCE_CONFIG = InferenceConfig()


class LocationInference(BaseModel):
    """Result of one inference attempt.

    ``location`` is None when the attempt flagged the transaction for review
    instead of inferring.
    """
    model_config = ConfigDict(frozen=True)

    location: Optional[str] = None
    source: InferenceSource = InferenceSource.NONE
    reason: str = ""
    confidence: Optional[ConfidenceTier] = None
    possible_locations: List[str] = Field(default_factory=list)
    needs_review: bool = False

    def to_update(self) -> Dict[str, Any]:
        return {
            "inferred_location": self.location,
            "inference_source": self.source,
            "inference_reason": self.reason,
            "inference_confidence": self.confidence,
            "possible_locations": list(self.possible_locations),
            "needs_review": self.needs_review,
        }


class VendorLocationProfile(BaseModel):
    """Where a vendor has been seen in the current batch.

    Attributes:
        vendor: Normalized vendor key
        location: Dominant location
        count: Appearances at the dominant location
        total_appearances: Appearances at any location
        ratio: count / total_appearances
        confidence: Tier, None when the vendor is too spread out to use
        all_locations: Top three (location, count) pairs
    """
    model_config = ConfigDict(frozen=True)

    vendor: str
    location: str
    count: int
    total_appearances: int
    ratio: float
    confidence: Optional[ConfidenceTier] = None
    all_locations: List[Tuple[str, int]] = Field(default_factory=list)

    @property
    def usable(self) -> bool:
        return self.confidence is not None


class InferenceStats(BaseModel):
    """Counters for each inference pass."""
    eligible: int = 0
    skipped_no_date_range: int = 0
    date_episode: int = 0
    date_global: int = 0
    multiple_picked_primary: int = 0
    needs_review: int = 0
    primary_fallback: int = 0
    no_date_match: int = 0
    vendor_history: int = 0
    vendor_history_by_tier: Dict[str, int] = Field(default_factory=dict)
    date_vendor: int = 0
    remaining: int = 0
    vendors_profiled: int = 0
    vendors_usable: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
