"""Canonical ledger data models.

These models represent extracted ledger data in a standardized format that is
independent of the accounting system that produced the export (spreadsheet
rows or GL 505 report text).

A Transaction is created once by extraction and never re-parsed. Each pipeline
stage returns an explicit patch (location match, inference, overhead
classification) that is applied with ``Transaction.apply`` to produce a new
record.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle various input formats from spreadsheet/PDF extraction)
# =============================================================================

def parse_amount(value) -> Optional[Decimal]:
    """Parse a money amount from various formats.

    Accepts strings with $, commas and accounting-style parentheses for
    negatives. Returns None for blank or unparseable input instead of raising.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        result = Decimal(str(value))
        return result if result.is_finite() else None
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "").strip()
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            result = Decimal(s)
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


def _parse_decimal(value):
    """Parse decimal for model fields, defaulting unparseable input to zero."""
    if value is None:
        return Decimal("0")
    parsed = parse_amount(value)
    return parsed if parsed is not None else Decimal("0")


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


def _parse_text(value):
    """Coerce cell values to stripped strings."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# Annotated types for automatic parsing
DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]
TextValue = Annotated[str, BeforeValidator(_parse_text)]


# =============================================================================
# Enums
# =============================================================================

class InferenceSource(str, Enum):
    """Where a transaction's location came from."""
    EXPLICIT = "explicit"
    DATE_EPISODE = "date-episode"
    DATE_GLOBAL = "date-global"
    VENDOR_HISTORY = "vendor-history"
    DATE_VENDOR = "date-vendor"
    EPISODE_PRIMARY_FALLBACK = "episode-primary-fallback"
    NONE = "none"


class ConfidenceTier(str, Enum):
    """Categorical confidence attached to inferred locations."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OverheadType(str, Enum):
    """Overhead buckets for transactions not tied to a single location."""
    PAYROLL = "payroll"
    GENERAL = "general"


class UnmappedReason(str, Enum):
    """Why a transaction could not be joined to a canonical location."""
    SERVICE_CHARGE = "service_charge"      # Alias sentinel or service-charge pattern
    PENDING_LOCATION = "pending_location"  # Alias entry marked PENDING:<name>
    NO_BUDGET_MATCH = "no_budget_match"    # Candidate matched no canonical name
    NEEDS_REVIEW = "needs_review"          # Several date candidates, none preferred
    NO_LOCATION = "no_location"            # Nothing extracted or inferred


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


class TransactionPatch(Protocol):
    """A stage result that knows which Transaction fields it may set."""

    def to_update(self) -> Dict[str, Any]:
        ...


# =============================================================================
# Ledger Models
# =============================================================================

class DateRange(CanonicalBase):
    """Calendar date range extracted from a description.

    Payroll-style entries (``MM/DD/YY :`` prefix) are single days with
    ``is_payroll`` set.
    """
    start: DateValue
    end: DateValue
    is_payroll: bool = False
    raw: str = ""

    @property
    def days(self) -> int:
        return (self.end - self.start).days


class Transaction(CanonicalBase):
    """A single ledger transaction as it moves through the sync pipeline."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    txn_id: str = Field(..., description="Stable transaction identifier")
    description: TextValue = ""
    vendor: TextValue = ""
    amount: DecimalValue = Decimal("0")
    account_code: Optional[str] = Field(default=None, description="GL account (e.g. '6304')")
    trans_number: Optional[str] = None
    episode: str = Field(default="unknown", description="Episode tag, 'unknown' when absent")
    source_file: Optional[str] = None
    sheet: Optional[str] = None
    report_date: Optional[DateValue] = None
    location_code: Optional[str] = Field(default=None, description="Raw location/set column")
    candidate_location: Optional[str] = Field(default=None, description="Extracted candidate or service token")
    date_range: Optional[DateRange] = None
    category: Optional[str] = None
    content_hash: Optional[str] = None

    # Location matching
    matched_location: Optional[str] = None
    match_confidence: Optional[float] = None
    match_type: Optional[str] = None

    # Inference
    inferred_location: Optional[str] = None
    inference_source: InferenceSource = InferenceSource.NONE
    inference_reason: Optional[str] = None
    inference_confidence: Optional[ConfidenceTier] = None
    possible_locations: List[str] = Field(default_factory=list)
    needs_review: bool = False

    # Classification
    overhead_type: Optional[OverheadType] = None
    unmapped_reason: Optional[UnmappedReason] = None

    @property
    def resolved_location(self) -> Optional[str]:
        """Explicitly matched location, else the inferred one."""
        return self.matched_location or self.inferred_location

    @property
    def gl_code(self) -> Optional[str]:
        """Four-digit GL code from the account, else from the transaction number."""
        if self.account_code and re.fullmatch(r"\d{4}", self.account_code):
            return self.account_code
        if self.trans_number and re.match(r"\d{4}", self.trans_number):
            return self.trans_number[:4]
        return None

    def apply(self, patch: TransactionPatch) -> "Transaction":
        """Return a new transaction with a stage patch applied."""
        return self.model_copy(update=patch.to_update())


class LedgerFile(CanonicalBase):
    """All transactions parsed from one ledger export."""
    filename: str
    episode: Optional[str] = None
    account: Optional[str] = None
    report_date: Optional[DateValue] = None
    transactions: List[Transaction] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PurchaseOrder(CanonicalBase):
    """A purchase order, used only for the committed-spend summary."""
    po_number: TextValue = ""
    vendor: TextValue = ""
    description: TextValue = ""
    amount: DecimalValue = Decimal("0")
    status: TextValue = "unknown"
    po_date: Optional[str] = None
    department: Optional[str] = None
    episode: Optional[str] = None
    category: Optional[str] = None
