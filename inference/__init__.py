"""Inference - Assigns locations to transactions that lack one.

Three ordered passes over a batch:
- Date co-occurrence within the episode, then across episodes
- Vendor history
- Vendor + description-date triangulation

Usage:
    from inference import run_inference

    transactions, stats = run_inference(transactions)
"""

from inference.models import (
    InferenceConfig,
    DEFAULT_INFERENCE_CONFIG,
    InferenceStats,
    LocationInference,
    VendorLocationProfile,
)
from inference.indices import (
    DateLocationIndex,
    VendorLocationIndex,
    build_date_location_index,
    build_vendor_location_index,
)
from inference.engine import (
    infer_from_dates,
    infer_from_date_vendor,
    infer_from_vendor_history,
    is_inference_eligible,
    run_inference,
)

__all__ = [
    "InferenceConfig",
    "DEFAULT_INFERENCE_CONFIG",
    "InferenceStats",
    "LocationInference",
    "VendorLocationProfile",
    "DateLocationIndex",
    "VendorLocationIndex",
    "build_date_location_index",
    "build_vendor_location_index",
    "infer_from_dates",
    "infer_from_date_vendor",
    "infer_from_vendor_history",
    "is_inference_eligible",
    "run_inference",
]
