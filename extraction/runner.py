"""Extraction runner for ledger and purchase-order exports.

Exposes high-level functions for turning files on disk into canonical models:
- load_ledger_file(path) -> LedgerFile
- extract_ledgers(paths) -> (ledgers, errors)
- load_purchase_orders(path) -> List[PurchaseOrder]

PDF text comes from PyMuPDF and spreadsheets from openpyxl; no layout
analysis or OCR is attempted.
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import fitz
from openpyxl import load_workbook

from core.observability.logging import get_logger
from extraction.dates import MAX_RANGE_DAYS
from extraction.ledger import LedgerParseError, is_gl505_text, parse_gl505_text, parse_ledger_rows
from extraction.purchase_orders import parse_purchase_order_rows
from models.canonical import LedgerFile, PurchaseOrder


logger = get_logger(__name__)

SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}
TEXT_SUFFIXES = {".txt"}


# =============================================================================
# File Readers
# =============================================================================

def read_pdf_text(path: Path) -> str:
    """Concatenate the text layer of every page in a PDF."""
    with fitz.open(path) as doc:
        return "\n".join(page.get_text("text") for page in doc)


def read_workbook_rows(path: Path) -> Dict[str, List[List[Any]]]:
    """Read every sheet of a workbook as lists of cell values."""
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        return {
            sheet.title: [list(row) for row in sheet.iter_rows(values_only=True)]
            for sheet in workbook.worksheets
        }
    finally:
        workbook.close()


def read_csv_rows(path: Path) -> List[List[str]]:
    with path.open(newline="", encoding="utf-8-sig") as f:
        return [row for row in csv.reader(f)]


# =============================================================================
# Ledger Loading
# =============================================================================

def load_ledger_file(path: Path, max_range_days: int = MAX_RANGE_DAYS) -> LedgerFile:
    """Load and parse one ledger export.

    Args:
        path: Path to a .pdf, .xlsx, .csv or .txt ledger export
        max_range_days: Longest accepted description date range

    Returns:
        Parsed LedgerFile

    Raises:
        LedgerParseError: If the file type is unsupported or the text is not
            a recognizable ledger report
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".pdf" or suffix in TEXT_SUFFIXES:
        text = read_pdf_text(path) if suffix == ".pdf" else path.read_text(encoding="utf-8")
        if not is_gl505_text(text):
            raise LedgerParseError(f"{path.name}: not a general ledger report")
        return parse_gl505_text(text, path.name, max_range_days)

    if suffix in SPREADSHEET_SUFFIXES:
        return parse_ledger_rows(read_workbook_rows(path), path.name, max_range_days)

    if suffix == ".csv":
        return parse_ledger_rows({path.stem: read_csv_rows(path)}, path.name, max_range_days)

    raise LedgerParseError(f"{path.name}: unsupported ledger file type '{suffix}'")


def extract_ledgers(
    paths: Sequence[Path],
    max_range_days: int = MAX_RANGE_DAYS,
) -> Tuple[List[LedgerFile], List[Dict[str, str]]]:
    """Parse several ledger files, collecting per-file failures.

    A file that fails to load is reported in the error list and the remaining
    files still parse.

    Returns:
        Tuple of (parsed ledgers, [{"filename", "error"}])
    """
    ledgers: List[LedgerFile] = []
    errors: List[Dict[str, str]] = []
    for path in paths:
        path = Path(path)
        try:
            ledger = load_ledger_file(path, max_range_days)
        except (LedgerParseError, OSError, ValueError, RuntimeError) as e:
            logger.warning(f"Failed to parse ledger {path.name}: {e}")
            errors.append({"filename": path.name, "error": str(e)})
            continue
        logger.info(
            f"Parsed {path.name}: {len(ledger.transactions)} transactions",
            extra_fields={"episode": ledger.episode, "account": ledger.account},
        )
        ledgers.append(ledger)
    return ledgers, errors


# =============================================================================
# Purchase Orders
# =============================================================================

def load_purchase_orders(path: Optional[Path]) -> List[PurchaseOrder]:
    """Load purchase orders, degrading to an empty list when unavailable."""
    if path is None:
        return []
    path = Path(path)
    if not path.exists():
        logger.warning(f"Purchase-order source not found: {path}")
        return []

    try:
        suffix = path.suffix.lower()
        if suffix == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
            return [PurchaseOrder.model_validate(item) for item in data]
        if suffix in SPREADSHEET_SUFFIXES:
            sheets = read_workbook_rows(path)
            first = next(iter(sheets.values()), [])
            return parse_purchase_order_rows(first)
        return parse_purchase_order_rows(read_csv_rows(path))
    except (OSError, ValueError) as e:
        logger.warning(f"Purchase-order source unreadable ({path.name}): {e}")
        return []
