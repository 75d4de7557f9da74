"""Date-range extraction from ledger descriptions.

Description fields carry service dates in several shapes:

    "11/22/25 : SMITH, J : REGULAR 1.0X"   -> payroll single day (year from token)
    "11/14-11/21 SECURITY:LE DOME"         -> explicit range
    "12/03-05 GUARDS"                      -> same-month range
    "10/20,10/21 PARKING: LATCHFORD"       -> two-date range
    "10/20 FIRE"                           -> single day

The first pattern that matches wins. Ranges longer than the sanity bound (or
ending before they start) collapse to a single day so a malformed match
cannot fan out across months of lookup keys.
"""

import re
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple

from models.canonical import DateRange


# Sanity bound on a range; overridable through InferenceConfig.max_range_days
MAX_RANGE_DAYS = 60

PAYROLL_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})\s*:")
FULL_RANGE_RE = re.compile(r"(\d{1,2})/(\d{1,2})-(\d{1,2})/(\d{1,2})")
SAME_MONTH_RANGE_RE = re.compile(r"(\d{1,2})/(\d{1,2})-(\d{1,2})(?!\d)")
COMMA_RANGE_RE = re.compile(r"(\d{1,2})/(\d{1,2}),(\d{1,2})/(\d{1,2})")
SINGLE_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:\s|$)")


def _make_date(year: int, month: str, day: str) -> Optional[date]:
    """Build a date, returning None for impossible calendar values."""
    try:
        return date(year, int(month), int(day))
    except ValueError:
        return None


def _bounded(
    start: date,
    end: date,
    raw: str,
    max_days: int,
    is_payroll: bool = False,
) -> DateRange:
    """Build a DateRange, collapsing out-of-bound spans to the start day."""
    span = (end - start).days
    if span < 0 or span > max_days:
        end = start
    return DateRange(start=start, end=end, is_payroll=is_payroll, raw=raw)


# =============================================================================
# Pattern Strategies
# =============================================================================

def _payroll_date(desc: str, year: int, max_days: int) -> Optional[DateRange]:
    m = PAYROLL_DATE_RE.match(desc)
    if not m:
        return None
    token_year = int(m.group(3))
    if len(m.group(3)) == 2:
        token_year += 2000
    day = _make_date(token_year, m.group(1), m.group(2))
    if day is None:
        return None
    return DateRange(start=day, end=day, is_payroll=True, raw=m.group(0).rstrip(": ").strip())


def _full_range(desc: str, year: int, max_days: int) -> Optional[DateRange]:
    m = FULL_RANGE_RE.search(desc)
    if not m:
        return None
    start = _make_date(year, m.group(1), m.group(2))
    end = _make_date(year, m.group(3), m.group(4))
    if start is None or end is None:
        return None
    return _bounded(start, end, m.group(0), max_days)


def _same_month_range(desc: str, year: int, max_days: int) -> Optional[DateRange]:
    m = SAME_MONTH_RANGE_RE.search(desc)
    if not m:
        return None
    start = _make_date(year, m.group(1), m.group(2))
    end = _make_date(year, m.group(1), m.group(3))
    if start is None or end is None:
        return None
    return _bounded(start, end, m.group(0), max_days)


def _comma_range(desc: str, year: int, max_days: int) -> Optional[DateRange]:
    m = COMMA_RANGE_RE.search(desc)
    if not m:
        return None
    start = _make_date(year, m.group(1), m.group(2))
    end = _make_date(year, m.group(3), m.group(4))
    if start is None or end is None:
        return None
    return _bounded(start, end, m.group(0), max_days)


def _single_date(desc: str, year: int, max_days: int) -> Optional[DateRange]:
    m = SINGLE_DATE_RE.match(desc)
    if not m:
        return None
    day = _make_date(year, m.group(1), m.group(2))
    if day is None:
        return None
    return DateRange(start=day, end=day, raw=m.group(0).strip())


DateStrategy = Callable[[str, int, int], Optional[DateRange]]

# Evaluated in order, first match wins
DATE_STRATEGIES: Tuple[DateStrategy, ...] = (
    _payroll_date,
    _full_range,
    _same_month_range,
    _comma_range,
    _single_date,
)


# =============================================================================
# Public API
# =============================================================================

def extract_date_range(
    description: Optional[str],
    reference_year: Optional[int] = None,
    max_days: int = MAX_RANGE_DAYS,
) -> Optional[DateRange]:
    """Extract a start/end date range from a transaction description.

    Args:
        description: Free-text description field
        reference_year: Year for MM/DD tokens (from the file's report date);
            defaults to the current year
        max_days: Longest accepted span; longer spans collapse to one day

    Returns:
        DateRange, or None when no date token is found or the token is not
        a real calendar date
    """
    if not description:
        return None
    desc = description.strip()
    year = reference_year or date.today().year

    for strategy in DATE_STRATEGIES:
        result = strategy(desc, year, max_days)
        if result is not None:
            return result
    return None


def expand_date_range(date_range: Optional[DateRange], max_days: int = MAX_RANGE_DAYS) -> List[date]:
    """Expand a range into individual calendar dates for lookup tables.

    Spans outside ``[0, max_days]`` collapse to the start date alone, so the
    result never holds more than ``max_days + 1`` entries.
    """
    if date_range is None:
        return []
    span = (date_range.end - date_range.start).days
    if span < 0 or span > max_days:
        return [date_range.start]
    return [date_range.start + timedelta(days=i) for i in range(span + 1)]
