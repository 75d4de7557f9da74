"""Location-candidate extraction from ledger descriptions.

Description fields interleave location, dates, pay type and vendor with no
fixed schema. Extraction is an ordered cascade of pure strategy functions,
narrowest and most reliable first; the first strategy that yields a value
wins.

Examples:
    'LOC FEE:"VILLAGE THEATER"(FOX)'                -> VILLAGE THEATER
    "GALLERIA MALL LOCATION FEE"                    -> GALLERIA MALL
    "11/07-11/08 BG HOLD/BLOCK DRVWAY:MELROSE (102)" -> MELROSE
    "12/04-06 GUARDS"                               -> GUARDS (service token)
    "MEAL PENALTY NON UNION"                        -> "" (nothing)
"""

import re
from typing import Callable, Optional, Tuple


# =============================================================================
# Vocabulary
# =============================================================================

# Bare descriptions that name a production-wide service rather than a place
PRODUCTION_OVERHEAD_PATTERNS = [
    re.compile(r"^FIRE\s*(?:\(\d+\))?$"),
    re.compile(r"^FIRE\s*SAFETY"),
    re.compile(r"^PERMITS?\s*(?:\(\d+\))?$"),
    re.compile(r"^POLICE\s*(?:\(\d+\))?$"),
    re.compile(r"^MEDIC\s*(?:\(\d+\))?$"),
    re.compile(r"^GUARDS?\s*$"),
    re.compile(r"^MAPS?\s*(?:\(\d+\))?$"),
    re.compile(r"^SECURITY\s*$"),
]

# Descriptions that are only a category label
CATEGORY_ONLY = {
    "LOCATION SECURITY",
    "SECURITY SERVICES",
    "POLICE SERVICES",
    "FIRE SERVICES",
    "PERMIT FEE",
    "LOCATION FEE",
    "FEE",
}

# Service companies; word boundaries keep "SITE REP" from matching "EP"
SERVICE_COMPANY_PATTERNS = [
    re.compile(r"\bPPS\b"),
    re.compile(r"\bPERMIT PLACE\b"),
    re.compile(r"\bENTERTAINMENT PARTNERS\b"),
    re.compile(r"\bEP OPERATIONS\b"),
    re.compile(r"\bCAST & CREW\b"),
    re.compile(r"\bPAYROLL SERVICES\b"),
]

PAY_TYPE_PATTERNS = [
    re.compile(r"^REGULAR\s*\d*\.?\d*X?$"),
    re.compile(r"^OVERTIME\s*\d*\.?\d*X?$"),
    re.compile(r"^OT\s*\d*\.?\d*X?$"),
    re.compile(r"^DOUBLE\s*TIME"),
    re.compile(r"^GOLDEN\s*TIME"),
    re.compile(r"^MEAL\s*PENALTY"),
    re.compile(r"^KIT\s*RENTAL"),
    re.compile(r"^BOX\s*RENTAL"),
    re.compile(r"^CAR\s*ALLOWANCE"),
    re.compile(r"^MILEAGE"),
    re.compile(r"^PER\s*DIEM"),
    re.compile(r"^HOLIDAY\s*PAY"),
    re.compile(r"^SICK\s*PAY"),
    re.compile(r"^VACATION\s*PAY"),
    re.compile(r"^\d+\.?\d*X$"),
    re.compile(r"^FLAT\s*RATE"),
    re.compile(r"^DAILY\s*RATE"),
    re.compile(r"^WEEKLY\s*RATE"),
]

# Tokens extracted in place of a location; never matched against the budget
SERVICE_TYPES = frozenset({
    "GUARDS", "GUARD", "FIRE", "FIRE SAFETY", "PERMITS", "PERMIT", "POLICE",
    "MEDIC", "SECURITY", "CLEANING SERVICE", "HMU STATION", "DIR CHAIRS",
    "TENTS", "TENT", "TABLES", "TABLE", "CHAIRS", "CHAIR", "DUMPSTERS",
    "DUMPSTER", "CIG CANS", "CIG CAN", "MAPS", "MAP", "PERMIT SVC",
    "AIR QUALITY", "REMOVE", "RESTORE", "DEL", "PU", "SITE REP",
    "BASECAMP", "PARKING", "DRIVING",
})

NETWORK_SUFFIX_RE = re.compile(r"\((?:FOX|BRUIN|NBC|CBS|ABC|WB)\)$", re.IGNORECASE)
EPISODE_SUFFIX_RE = re.compile(r"\s*\(\d+\)\s*$")
LEADING_DATE_RE = re.compile(r"^\d+/\d+[\-/]?\d*\s+")


# =============================================================================
# Helpers
# =============================================================================

def is_service_token(value: Optional[str]) -> bool:
    """Check whether a candidate is a service-type token rather than a place.

    Slash compounds made only of service words (``TENTS/TABLES/CHAIRS``)
    count as service tokens too.
    """
    if not value:
        return False
    token = re.sub(r"\s+", " ", value.upper().strip())
    if token in SERVICE_TYPES:
        return True
    if "/" in token:
        parts = [p.strip() for p in token.split("/") if p.strip()]
        return bool(parts) and all(p in SERVICE_TYPES for p in parts)
    return False


def is_pay_type(value: str) -> bool:
    """Check whether a string is a pay type or rate code."""
    s = value.strip().upper()
    return any(p.search(s) for p in PAY_TYPE_PATTERNS)


def clean_location(value: Optional[str]) -> str:
    """Strip quotes, episode suffixes and network parentheticals."""
    if not value:
        return ""
    cleaned = value.strip()
    cleaned = re.sub(r"^[\"']+|[\"']+$", "", cleaned)
    cleaned = EPISODE_SUFFIX_RE.sub("", cleaned)
    cleaned = NETWORK_SUFFIX_RE.sub("", cleaned)
    return cleaned.strip()


def _accept(raw: Optional[str], min_length: int = 3) -> Optional[str]:
    """Clean a raw capture and reject labels, pay types and short strings."""
    loc = clean_location(raw)
    if len(loc) < min_length or loc in CATEGORY_ONLY or is_pay_type(loc):
        return None
    return loc


def _collapse(value: str) -> str:
    return re.sub(r"\s+", " ", value.upper()).strip()


# =============================================================================
# Strategies (ordered; each takes the uppercased description)
# =============================================================================

def _quoted(desc: str) -> Optional[str]:
    # LOC FEE:"VILLAGE THEATER"(FOX) -> VILLAGE THEATER
    m = re.search(r"[\"']([A-Z][A-Z0-9\s\-'\.]+)[\"']", desc)
    return _accept(m.group(1)) if m else None


def _location_fee_suffix(desc: str) -> Optional[str]:
    # GALLERIA MALL LOCATION FEE -> GALLERIA MALL
    m = re.search(r"(\d+/\d+[\-/]?\d*\s+)?([A-Z][A-Z0-9\s\-'\.]+?)\s+(?:LOCATION\s+FEE|LOC\s+FEE)", desc)
    return _accept(m.group(2)) if m else None


def _cleaning_suffix(desc: str) -> Optional[str]:
    # PALACE THEATER CLEANING -> PALACE THEATER
    m = re.search(r"(\d+/\d+[\-/]?\d*\s+)?([A-Z][A-Z0-9\s\-'\.]+?)\s+(?:DEEP\s+CLEAN|CLEANING)", desc)
    return _accept(m.group(2)) if m else None


def _inconvenience_fee(desc: str) -> Optional[str]:
    m = re.search(r"INCON(?:VENIENCE)?\s+FEE[:\s]+[\"']?([A-Z][A-Z0-9\s\-'\.]+?)[\"']?(?:\s*\(|$)", desc)
    return _accept(m.group(1)) if m else None


def _site_rep_prefix(desc: str) -> Optional[str]:
    # SITE REP/ADDL PARK/WATER:GALLERIA, EXTRA PREP DAY:BRENTWOOD
    m = re.search(r"(?:SITE\s*REP|EXTRA\s*PREP\s*DAY|PREP\s*DAY)[^:]*:\s*([A-Z0-9][A-Z0-9\s\-'\.]+)", desc)
    return _accept(m.group(1)) if m else None


def _parking_basecamp(desc: str) -> Optional[str]:
    m = re.search(r"(?:VIP\s+)?(?:PARKING|BASECAMP)[:\s]+[\"']?([A-Z][A-Z0-9\s\-'\.]+?)[\"']?(?:\s*\(|$)", desc)
    return _accept(m.group(1)) if m else None


def _crew_prefix(desc: str) -> Optional[str]:
    # PREP/STRK CREW PRKG:LATCHFORD
    m = re.search(r"(?:PREP|STRK|CREW|PRKG)[/\w\s]*[:\s]+([A-Z][A-Z0-9\s\-'\.]+?)(?:\s*\(|$)", desc)
    return _accept(m.group(1)) if m else None


def _trailing_colon(desc: str) -> Optional[str]:
    # REMOVE/REPLACE LIGHTS:LATCHFORD, I/E 3RD FLOOR PARKING
    m = re.search(r":\s*(?:I/E\s+)?([A-Z0-9][A-Z0-9\s\-'\./]+?)(?:\s*\(\d+\))?$", desc)
    return _accept(m.group(1)) if m else None


def _service_suffix(desc: str) -> Optional[str]:
    # BUCKLEY HS SECURITY -> BUCKLEY HS
    for svc in ("SECURITY", "GUARDS", "PERMIT"):
        m = re.search(r"([A-Z][A-Z0-9\s\-']+)\s+" + svc, desc)
        if m:
            loc = LEADING_DATE_RE.sub("", m.group(1).strip()).strip()
            accepted = _accept(loc)
            if accepted:
                return accepted
    return None


def _dash_keyword(desc: str) -> Optional[str]:
    # FILMING - SYCAMORE PARK
    m = re.search(r"(?:PERMIT|FEE|FILMING|LOCATION)\s*-\s*([A-Z][A-Z0-9\s'\.]+)$", desc)
    if not m:
        return None
    loc = clean_location(m.group(1))
    return loc if loc and not is_pay_type(loc) else None


def _at_location(desc: str) -> Optional[str]:
    # CATERING @ WESTWOOD VILLAGE
    m = re.search(r"(?:\bAT|@)\s+([A-Z][A-Z0-9\s\-'\.]+)", desc)
    if not m:
        return None
    loc = clean_location(m.group(1))
    return loc if loc and not is_pay_type(loc) else None


def _bg_hold_driveway(desc: str) -> Optional[str]:
    m = re.search(r"(?:BG\s*HOLD|BLOCK\s*DRVWAY|DRIVEWAY)[^:]*:\s*([A-Z][A-Z0-9\s\-'\.]+)", desc)
    return _accept(m.group(1)) if m else None


def _permits_colon(desc: str) -> Optional[str]:
    # PERMITS:MELROSE AVE, but never a bare FIRE
    m = re.search(r"PERMITS?[:\s]+([A-Z][A-Z0-9\s\-'\.]+?)(?:\s*:|$)", desc)
    if not m:
        return None
    loc = _accept(m.group(1), min_length=4)
    if loc and loc != "FIRE":
        return loc
    return None


def _equipment_colon(desc: str) -> Optional[str]:
    # VARIOUS AMBASSADORS:WESTWOOD
    m = re.search(r"(?:AMBASSADORS?|TENTS?|TABLES?|CHAIRS?|DUMPSTERS?)[^:]*:\s*([A-Z][A-Z0-9\s\-'\.]+)", desc)
    return _accept(m.group(1)) if m else None


def _invoice_suffix(desc: str) -> Optional[str]:
    # DRIVING INVOICE #2 -> DRIVING
    m = re.search(r"(\d+/\d+[/\-]?\d*\s+)?([A-Z][A-Z0-9\s\-'\.]+)\s+INVOICE", desc)
    return _accept(m.group(2), min_length=4) if m else None


def _bare_basecamp_after_date(desc: str) -> Optional[str]:
    # 10/17,10/20 BASECAMP/PARKING -> BASECAMP
    m = re.search(r"\d+/\d+[,/\-\d]*\s+(BASECAMP|PARKING|DRIVING)", desc)
    return m.group(1) if m else None


def _bare_service_after_date(desc: str) -> Optional[str]:
    # 12/04-06 GUARDS -> GUARDS
    m = re.search(r"\d+/\d+[/\-]?\d*\s+(GUARDS?|FIRE|POLICE|MEDIC|PERMITS?)\s*$", desc)
    return m.group(1) if m else None


def _service_then_location(desc: str) -> Optional[str]:
    # 11/12-11/15 PERMITS(102)"MELROSE" -> MELROSE
    m = re.search(r"\d+/\d+[/\-\d]*\s+(?:PERMITS?|FIRE|GUARDS?|POLICE|MEDIC)[\s\(\d\)]*[\"']?([A-Z][A-Z0-9\s\-'\.]+)", desc)
    return _accept(m.group(1)) if m else None


def _equipment_after_date(desc: str) -> Optional[str]:
    m = re.search(
        r"\d+/\d+[/\-\d]*\s+(CLEANING\s*SERVICE|HMU\s*STATION|DIR\s*CHAIRS|TENTS|TABLES|CHAIRS|"
        r"DUMPSTERS?|MAPS?|PERMIT\s*SVC|AIR\s*QUALITY|REMOVE/RESTORE|DEL/PU|SITE\s*REP)",
        desc,
    )
    return _collapse(m.group(1)) if m else None


def _compound_equipment_after_date(desc: str) -> Optional[str]:
    m = re.search(
        r"\d+/\d+[/\-\d]*\s+[\d\)]*\s*(TENTS?/TABLES?/CHAIRS?|DUMPSTERS?/CIG\s*CANS?|HMU\s*STATION/DIR\s*CHAIRS)",
        desc,
    )
    return _collapse(m.group(1)) if m else None


LocationStrategy = Callable[[str], Optional[str]]

LOCATION_STRATEGIES: Tuple[LocationStrategy, ...] = (
    _quoted,
    _location_fee_suffix,
    _cleaning_suffix,
    _inconvenience_fee,
    _site_rep_prefix,
    _parking_basecamp,
    _crew_prefix,
    _trailing_colon,
    _service_suffix,
    _dash_keyword,
    _at_location,
    _bg_hold_driveway,
    _permits_colon,
    _equipment_colon,
    _invoice_suffix,
    _bare_basecamp_after_date,
    _bare_service_after_date,
    _service_then_location,
    _equipment_after_date,
    _compound_equipment_after_date,
)


# =============================================================================
# Public API
# =============================================================================

def extract_location_candidate(description: Optional[str]) -> str:
    """Extract a candidate location (or service token) from a description.

    Args:
        description: Free-text description field

    Returns:
        Candidate location string, a service-type token such as ``FIRE``,
        or an empty string when nothing location-like is present
    """
    if not description or not isinstance(description, str):
        return ""

    desc = description.upper().strip()

    for pattern in PRODUCTION_OVERHEAD_PATTERNS:
        if pattern.search(desc):
            return re.sub(r"\s*\(\d+\)\s*", "", desc).strip()

    if desc in CATEGORY_ONLY:
        return ""

    if any(p.search(desc) for p in SERVICE_COMPANY_PATTERNS):
        return ""

    for strategy in LOCATION_STRATEGIES:
        result = strategy(desc)
        if result:
            return result
    return ""
