"""Extraction activities for the ledger sync pipeline.

Temporal activities that parse ledger exports and store them as artifacts,
so the reconcile activity receives references instead of payloads.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from temporalio import activity

from extraction.dates import MAX_RANGE_DAYS
from extraction.ledger import LedgerParseError
from extraction.runner import load_ledger_file
from storage.artifacts import DEFAULT_ARTIFACT_ROOT, artifact_path, put_json


@dataclass
class ParseLedgerInput:
    """Input for parse_ledger_file activity.

    Attributes:
        sync_run_id: Sync run the artifact belongs to
        ledger_path: Absolute path to the ledger export
        artifact_root: Root directory for run artifacts
        max_range_days: Longest accepted description date range
    """
    sync_run_id: str
    ledger_path: str
    artifact_root: str = str(DEFAULT_ARTIFACT_ROOT)
    max_range_days: int = MAX_RANGE_DAYS


@dataclass
class ParseLedgerOutput:
    """Output from parse_ledger_file activity.

    A file that fails to parse produces an error instead of a reference;
    the workflow carries on with the remaining files.
    """
    filename: str
    ledger_ref: Optional[dict] = None  # Serialized DataReference
    transaction_count: int = 0
    episode: Optional[str] = None
    error: Optional[str] = None


@activity.defn
async def parse_ledger_file(input: ParseLedgerInput) -> ParseLedgerOutput:
    """Parse one ledger export and persist the LedgerFile artifact."""
    path = Path(input.ledger_path)
    activity.logger.info(f"Parsing ledger {path.name} for {input.sync_run_id}")

    try:
        ledger = load_ledger_file(path, input.max_range_days)
    except (LedgerParseError, OSError, ValueError, RuntimeError) as e:
        activity.logger.warning(f"Failed to parse ledger {path.name}: {e}")
        return ParseLedgerOutput(filename=path.name, error=str(e))

    target = artifact_path(Path(input.artifact_root), input.sync_run_id, f"ledger_{path.stem}")
    ref = put_json(ledger, target)

    activity.logger.info(f"Parsed {path.name}: {len(ledger.transactions)} transactions")

    return ParseLedgerOutput(
        filename=path.name,
        ledger_ref=ref.model_dump(mode="json"),
        transaction_count=len(ledger.transactions),
        episode=ledger.episode,
    )
