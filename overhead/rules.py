"""
Overhead Rules

Pattern tables that identify spend not tied to any single location:
payroll lines, payroll-service vendors and production-wide fees.
"""

import re
from typing import Optional


# =============================================================================
# Payroll
# =============================================================================

PAYROLL_PATTERNS = [
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}\s*:\s*[A-Z]+,?\s*[A-Z]?\s*:", re.IGNORECASE),
    re.compile(r"REGULAR\s*\d*\.?\d*X", re.IGNORECASE),
    re.compile(r"OVERTIME\s*\d*\.?\d*X", re.IGNORECASE),
    re.compile(r"DOUBLE\s*TIME", re.IGNORECASE),
    re.compile(r"GOLDEN\s*TIME", re.IGNORECASE),
    re.compile(r"MEAL\s*PENALTY", re.IGNORECASE),
    re.compile(r"KIT\s*RENTAL", re.IGNORECASE),
    re.compile(r"BOX\s*RENTAL", re.IGNORECASE),
    re.compile(r"\w+\s*ALLOWANCE", re.IGNORECASE),
    re.compile(r"MILEAGE", re.IGNORECASE),
    re.compile(r"PER\s*DIEM", re.IGNORECASE),
    re.compile(r"HOLIDAY\s*PAY", re.IGNORECASE),
    re.compile(r"SICK\s*PAY", re.IGNORECASE),
    re.compile(r"VACATION\s*PAY", re.IGNORECASE),
]

PAYROLL_VENDORS = [
    "ENTERTAINMENT PARTNERS",
    "EP OPERATIONS",
    "CAST & CREW",
    "PAYROLL SERVICES",
    "ADP",
    "PAYCHEX",
]

# Payroll booked to these GL codes is location labor (officers, firefighters,
# site personnel) and stays location spend
LOCATION_LABOR_CODES = frozenset({"6304", "6305", "6307", "6342"})


# =============================================================================
# General Overhead
# =============================================================================

OVERHEAD_PATTERNS = [
    re.compile(r"^PERMIT\s*FEE$", re.IGNORECASE),
    re.compile(r"^FIRE\s*(?:SAFETY)?$", re.IGNORECASE),
    re.compile(r"^POLICE$", re.IGNORECASE),
    re.compile(r"^MEDIC$", re.IGNORECASE),
    re.compile(r"^SECURITY$", re.IGNORECASE),
    re.compile(r"^GUARDS?$", re.IGNORECASE),
    re.compile(r"GENERAL\s*LIABILITY", re.IGNORECASE),
    re.compile(r"WORKERS?\s*COMP", re.IGNORECASE),
    re.compile(r"INSURANCE", re.IGNORECASE),
]


def matches_payroll_description(description: Optional[str]) -> bool:
    text = (description or "").strip()
    return any(p.search(text) for p in PAYROLL_PATTERNS)


def matches_payroll_vendor(vendor: Optional[str]) -> bool:
    text = re.sub(r"\s+", " ", (vendor or "").upper())
    return any(re.search(rf"\b{re.escape(v)}\b", text) for v in PAYROLL_VENDORS)


def matches_overhead_description(description: Optional[str]) -> bool:
    text = (description or "").strip()
    return any(p.search(text) for p in OVERHEAD_PATTERNS)


def is_location_labor(gl_code: Optional[str]) -> bool:
    return gl_code in LOCATION_LABOR_CODES
