"""Ledger text extractors.

Turns one ledger export into a LedgerFile of Transaction records:
- parse_ledger_filename(name) -> LedgerFileInfo
- parse_ledger_rows(sheets, filename) -> LedgerFile   (spreadsheet exports)
- parse_gl505_text(text, filename) -> LedgerFile      (GL 505 report text)
- dedupe_transactions(transactions) -> (kept, removed_count)

Malformed dates, amounts or descriptions never abort a file: the field is
left empty and the row continues through the pipeline.
"""

import hashlib
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from extraction.dates import MAX_RANGE_DAYS, extract_date_range
from extraction.locations import extract_location_candidate
from models.canonical import LedgerFile, Transaction, parse_amount


# =============================================================================
# Configuration
# =============================================================================

ACCOUNT_CATEGORIES = {
    "6304": "Security",
    "6305": "Police",
    "6307": "Fire",
    "6342": "Loc Fees",
    "PR": "Equipment/Labor",
}

# 6342 covers several budget categories; keywords pick the right one
SUBCATEGORY_KEYWORDS_6342 = {
    "Permits": ["permit", "permits", "license", "film la", "filming permit"],
    "Rentals": ["tent", "tents", "table", "tables", "chair", "chairs", "restroom",
                "hvac", "dumpster", "air scrubber", "generator", "heater"],
    "Loc Fees": ["layout", "maps", "survey", "scout"],
}

FILENAME_RE = re.compile(r"^(\d{3})\s+(\d{4}(?:-\d{4})?)\s+(\d{6})\.(pdf|xlsx|xlsm|csv|txt)$", re.IGNORECASE)

HEADER_SCAN_ROWS = 10


class LedgerParseError(ValueError):
    """Raised when a ledger export cannot be read at all."""


@dataclass
class LedgerFileInfo:
    """Metadata encoded in a ledger filename ("101 6304 011626.pdf")."""
    episode: str
    account: str
    report_date: Optional[date]


# =============================================================================
# Helpers
# =============================================================================

def parse_ledger_filename(filename: str) -> Optional[LedgerFileInfo]:
    """Parse episode, account and report date from a ledger filename.

    Examples:
        >>> parse_ledger_filename("101 6304 011626.pdf")
        LedgerFileInfo(episode='101', account='6304', report_date=datetime.date(2026, 1, 16))
    """
    m = FILENAME_RE.match(Path(filename).name.strip())
    if not m:
        return None
    episode, account, stamp = m.group(1), m.group(2), m.group(3)
    try:
        report_date = date(2000 + int(stamp[4:6]), int(stamp[0:2]), int(stamp[2:4]))
    except ValueError:
        report_date = None
    return LedgerFileInfo(episode=episode, account=account, report_date=report_date)


def categorize_account(account_code: Optional[str], description: str = "") -> str:
    """Derive a budget category from a GL account code.

    Account 6342 is split into Permits / Rentals / Loc Fees by keyword.
    """
    if not account_code:
        return "Unknown"
    code = account_code[:4] if re.match(r"\d{4}", account_code) else account_code
    if code == "6342" and description:
        lowered = description.lower()
        for category, keywords in SUBCATEGORY_KEYWORDS_6342.items():
            if any(kw in lowered for kw in keywords):
                return category
    return ACCOUNT_CATEGORIES.get(code, "Unknown")


def compute_content_hash(
    description: str,
    vendor: str,
    trans_number: Optional[str],
    amount: Decimal,
    episode: str,
    account: Optional[str],
) -> str:
    """Hash the identifying fields of a transaction for de-duplication."""
    payload = "|".join([
        description.upper().strip(),
        vendor.upper().strip(),
        (trans_number or "").strip(),
        str(amount.quantize(Decimal("0.01"))),
        episode,
        account or "",
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def _candidate_for(description: str, location_code: str) -> Optional[str]:
    """Extracted candidate, else the raw location code when it is not numeric."""
    extracted = extract_location_candidate(description)
    if extracted:
        return extracted
    if location_code and not location_code.isdigit():
        return location_code.upper()
    return None


def _build_transaction(
    txn_id: str,
    description: str,
    vendor: str,
    amount: Decimal,
    location_code: str,
    trans_number: str,
    episode: str,
    account: Optional[str],
    report_date: Optional[date],
    source_file: str,
    sheet: Optional[str] = None,
    max_range_days: int = MAX_RANGE_DAYS,
) -> Transaction:
    reference_year = report_date.year if report_date else None
    return Transaction(
        txn_id=txn_id,
        description=description,
        vendor=vendor,
        amount=amount,
        account_code=account,
        trans_number=trans_number or None,
        episode=episode or "unknown",
        source_file=source_file,
        sheet=sheet,
        report_date=report_date,
        location_code=location_code or None,
        candidate_location=_candidate_for(description, location_code),
        date_range=extract_date_range(description, reference_year, max_range_days),
        category=categorize_account(account, description),
        content_hash=compute_content_hash(description, vendor, trans_number, amount, episode, account),
    )


def _cell(row: Sequence[Any], index: int) -> str:
    if index < 0 or index >= len(row) or row[index] is None:
        return ""
    value = row[index]
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _find_column(headers: List[str], *needles: str, exact: bool = False) -> int:
    for i, header in enumerate(headers):
        if exact and header in needles:
            return i
        if not exact and any(n in header for n in needles):
            return i
    return -1


def _find_header_row(rows: Sequence[Sequence[Any]]) -> int:
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        if not row:
            continue
        for cell in row:
            if isinstance(cell, str) and any(k in cell.lower() for k in ("location", "vendor", "amount")):
                return i
    return -1


# =============================================================================
# Spreadsheet Rows
# =============================================================================

def parse_ledger_rows(
    sheets: Dict[str, Sequence[Sequence[Any]]],
    filename: str,
    max_range_days: int = MAX_RANGE_DAYS,
) -> LedgerFile:
    """Parse spreadsheet rows (one list of rows per sheet) into transactions.

    The header row is located within the first 10 rows of each sheet. Rows
    with neither vendor nor description (totals) and rows with a zero or
    unparseable amount are skipped.

    Args:
        sheets: Mapping of sheet name to its raw rows
        filename: Source filename, used for episode/account/report date
        max_range_days: Longest accepted description date range

    Returns:
        LedgerFile with parsed transactions
    """
    info = parse_ledger_filename(filename)
    episode = info.episode if info else "unknown"
    account = info.account if info else None
    report_date = info.report_date if info else None
    stem = Path(filename).stem

    ledger = LedgerFile(filename=filename, episode=episode, account=account, report_date=report_date)
    transactions: List[Transaction] = []

    for sheet_name, rows in sheets.items():
        header_index = _find_header_row(rows)
        if header_index < 0:
            ledger.errors.append(f"{sheet_name}: no header row found")
            continue

        headers = [str(h or "").lower().strip() for h in rows[header_index]]
        location_col = _find_column(headers, "locationcode", "location", "set")
        vendor_col = _find_column(headers, "vendorname", "vendor", "payee")
        amount_col = _find_column(headers, "amount", "total")
        trans_col = _find_column(headers, "trans", "po", "number")
        desc_col = _find_column(headers, "description", "memo", "desc", exact=True)
        episode_col = _find_column(headers, "episode", "ep", "epi", exact=True)
        account_col = _find_column(headers, "account", "acct", "gl", exact=True)

        for offset, row in enumerate(rows[header_index + 1:], start=header_index + 1):
            if not row:
                continue
            vendor = _cell(row, vendor_col)
            description = _cell(row, desc_col)
            if not vendor and not description:
                continue

            amount = parse_amount(row[amount_col]) if 0 <= amount_col < len(row) else None
            if amount is None or amount == 0:
                continue

            row_episode = _cell(row, episode_col) or episode
            row_account = _cell(row, account_col) or account
            transactions.append(_build_transaction(
                txn_id=f"{stem}:{sheet_name}:{offset}",
                description=description,
                vendor=vendor,
                amount=amount,
                location_code=_cell(row, location_col),
                trans_number=_cell(row, trans_col),
                episode=row_episode,
                account=row_account,
                report_date=report_date,
                source_file=filename,
                sheet=sheet_name,
                max_range_days=max_range_days,
            ))

    ledger.transactions = transactions
    return ledger


# =============================================================================
# GL 505 Report Text
# =============================================================================

ACCOUNT_HEADER_RE = re.compile(r"Acct:\s*(\d{4})\s*-\s*(.+)")

GL_LINE_RE = re.compile(
    r"^(?P<account>\d{4})\s+"
    r"(?:(?P<lo>[A-Z]{2})\s+)?"
    r"(?P<episode>\d{3})\s+"
    r"(?P<set>\S+)\s+"
    r"(?:[A-Z]{2}\s+){0,3}"
    r"(?P<description>\S.*?)\s{2,}"
    r"(?P<vendor>\S.*?)\s{2,}"
    r"(?P<trans>\d{3,})\s+"
    r"(?:[A-Z]{2}\s+)?"
    r"(?P<posted>\d{1,2}/\d{1,2}/\d{4})\s+"
    r"(?P<amount>\(?-?\$?[\d,]+\.\d{2}\)?)\s*$"
)

LOOSE_EPISODE_RE = re.compile(r"\b(10[1-9]|1[1-9][0-9])\b")
LOOSE_AMOUNT_RE = re.compile(r"\(?-?[\d,]+\.\d{2}\)?$")
LOOSE_POSTED_RE = re.compile(r"(\d{2}/\d{2}/\d{4})")
LOOSE_DESCRIPTION_RE = re.compile(
    r"(\d{1,2}/\d{1,2}[-/,]?\d{0,2}/?\d{0,2}\s+[A-Z][A-Z0-9\s:,\-\.'\"/]+?)(?=\s{2,})"
)


def is_gl505_text(text: str) -> bool:
    """Detect GL 505 general-ledger report text."""
    return "General Ledger" in text or "GL 505" in text or bool(re.search(r"Acct:\s*\d{4}", text))


def _posted_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    month, day, year = value.split("/")
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def _parse_gl_line(line: str) -> Optional[Dict[str, str]]:
    """Split one GL 505 detail line into named fields."""
    m = GL_LINE_RE.match(line)
    if m:
        return {k: (v or "").strip() for k, v in m.groupdict().items()}

    # Column spacing drifts between report versions; fall back to anchors
    parts = re.split(r"\s{2,}", line)
    if len(parts) < 5:
        return None
    amount = LOOSE_AMOUNT_RE.search(line)
    if not amount:
        return None
    episode = LOOSE_EPISODE_RE.search(line)
    posted = LOOSE_POSTED_RE.search(line)
    description = LOOSE_DESCRIPTION_RE.search(line)
    return {
        "account": parts[0][:4],
        "episode": episode.group(1) if episode else "",
        "set": "",
        "description": description.group(1).strip() if description else "",
        "vendor": parts[-4].strip() if len(parts) >= 6 else "",
        "trans": "",
        "posted": posted.group(1) if posted else "",
        "amount": amount.group(0),
    }


def parse_gl505_text(
    text: str,
    filename: str,
    max_range_days: int = MAX_RANGE_DAYS,
) -> LedgerFile:
    """Parse GL 505 report text into transactions.

    Detail lines are grouped under ``Acct: NNNN - NAME`` headers and start
    with the account code. Zero and unparseable amounts are skipped; lines
    that cannot be split are recorded in ``errors``.
    """
    info = parse_ledger_filename(filename)
    report_date = info.report_date if info else None
    stem = Path(filename).stem

    ledger = LedgerFile(
        filename=filename,
        episode=info.episode if info else None,
        account=info.account if info else None,
        report_date=report_date,
    )
    transactions: List[Transaction] = []
    current_account: Optional[str] = None

    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        header = ACCOUNT_HEADER_RE.search(line)
        if header:
            current_account = header.group(1)
            continue
        if not current_account or not line or line.startswith(("Account", "GL 505")):
            continue
        if not line.startswith(current_account):
            continue

        fields = _parse_gl_line(line)
        if fields is None:
            ledger.errors.append(f"line {line_no}: unrecognized layout")
            continue

        amount = parse_amount(fields["amount"])
        if amount is None or amount == 0:
            continue

        line_date = report_date or _posted_date(fields.get("posted"))
        episode = fields.get("episode") or (info.episode if info else "unknown")
        transactions.append(_build_transaction(
            txn_id=f"{stem}:{line_no}",
            description=fields.get("description", ""),
            vendor=fields.get("vendor", ""),
            amount=amount,
            location_code=fields.get("set", ""),
            trans_number=fields.get("trans", ""),
            episode=episode,
            account=current_account,
            report_date=line_date,
            source_file=filename,
            max_range_days=max_range_days,
        ))

    ledger.transactions = transactions
    return ledger


# =============================================================================
# De-duplication
# =============================================================================

def dedupe_transactions(transactions: Iterable[Transaction]) -> Tuple[List[Transaction], int]:
    """Drop transactions re-exported in more than one ledger file.

    Identical rows inside a single file are kept; a hash already seen in a
    different source file is dropped.

    Returns:
        Tuple of (kept transactions, number removed)
    """
    first_source: Dict[str, str] = {}
    kept: List[Transaction] = []
    removed = 0
    for txn in transactions:
        key = txn.content_hash or txn.txn_id
        source = txn.source_file or ""
        owner = first_source.setdefault(key, source)
        if owner != source:
            removed += 1
            continue
        kept.append(txn)
    return kept, removed
