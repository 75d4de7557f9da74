"""Artifact references passed between sync activities.

Activities return references to stored JSON instead of the payload itself,
keeping Temporal history small: a parsed ledger is one DataReference, a
finished run is one SyncReport pointing at the full reconciliation JSON.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class DataReference(BaseModel):
    """Location and SHA256 of one stored JSON artifact."""
    storage_uri: str = Field(..., description="Absolute path of the artifact file")
    content_hash: str = Field(..., description="SHA256 of the stored bytes")
    content_type: str = Field(default="application/json")
    size_bytes: int = Field(..., description="Stored size in bytes")
    stored_at: datetime = Field(default_factory=datetime.utcnow)


class SyncReport(BaseModel):
    """What the sync workflow returns to its caller.

    The full per-location report stays in the artifact behind ``report_ref``;
    this carries only the status, the checks and the headline numbers.
    """
    sync_run_id: str
    status: str = Field(..., description="PASS, WARN or FAIL")
    checks: list[dict] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict, description="SpendSummary as JSON")
    metrics: dict = Field(default_factory=dict, description="Transaction, location and error counts")
    report_ref: Optional[DataReference] = None
