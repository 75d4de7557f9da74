"""Location Name Normalization Utilities.

This module provides functions to normalize location names for consistent
matching. The normalization process:
1. Converts to uppercase
2. Drops possessive 's
3. Replaces punctuation with spaces
4. Collapses whitespace

Examples:
    "Kellner's House"     → "KELLNER HOUSE"
    "Melrose Ave. (101)"  → "MELROSE AVE 101"
    "  keller  residence" → "KELLER RESIDENCE"
"""

import re
from collections import Counter
from typing import List


# Known misspellings and long forms seen in ledger descriptions
TYPO_ALIASES = {
    "KELLNER": "KELLER",
    "KELLAR": "KELLER",
    "BUCKLY": "BUCKLEY",
    "BUCKELY": "BUCKLEY",
    "MELROS": "MELROSE",
    "LATCHFROD": "LATCHFORD",
    "RESIDANCE": "RESIDENCE",
    "AVENUE": "AVE",
    "STREET": "ST",
    "BOULEVARD": "BLVD",
}

# Proper-noun fragments that identify a location on their own
KNOWN_KEYWORDS = (
    "KELLER",
    "BUCKLEY",
    "MELROSE",
    "LATCHFORD",
    "GRIFFITH",
    "TOPANGA",
    "MALIBU",
    "PASADENA",
    "VENICE",
    "BURBANK",
    "ENCINO",
    "SILVERLAKE",
)

# Words skipped when looking for the first meaningful word
STOP_WORDS = {
    "THE", "A", "AN", "OF", "AT", "ON", "IN", "AND",
    "LOC", "LOCATION", "INT", "EXT", "SET",
}


def normalize_location_name(name: str) -> str:
    """Normalize a location name for matching.

    Args:
        name: Raw location name from a ledger or budget

    Returns:
        Normalized name string

    Examples:
        >>> normalize_location_name("Kellner's House")
        'KELLNER HOUSE'
    """
    if not name:
        return ""
    text = name.upper().strip()
    text = re.sub(r"['’]S\b", "", text)
    text = re.sub(r"[^A-Z0-9]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def apply_typo_aliases(normalized: str) -> str:
    """Replace known misspellings word by word."""
    return " ".join(TYPO_ALIASES.get(word, word) for word in normalized.split())


def first_meaningful_word(normalized: str) -> str:
    """First word that is not a stop word or a bare number."""
    for word in normalized.split():
        if word in STOP_WORDS or word.isdigit():
            continue
        return word
    return ""


def stem_word(word: str) -> str:
    """Strip a plural/possessive trailing S ("KELLERS" → "KELLER")."""
    if len(word) > 4 and word.endswith("S") and not word.endswith("SS"):
        return word[:-1]
    return word


def shared_keywords(a: str, b: str) -> List[str]:
    """Known keywords present in both normalized names."""
    words_a = set(a.split())
    words_b = set(b.split())
    return [kw for kw in KNOWN_KEYWORDS if kw in words_a and kw in words_b]


def _bigrams(text: str) -> Counter:
    compact = text.replace(" ", "")
    return Counter(compact[i:i + 2] for i in range(len(compact) - 1))


def dice_coefficient(a: str, b: str) -> float:
    """Sørensen-Dice similarity over character bigrams, 0.0 to 1.0.

    Spaces are ignored so "MELROSE AVE" and "MELROSEAVE" score 1.0.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    bigrams_a = _bigrams(a)
    bigrams_b = _bigrams(b)
    total = sum(bigrams_a.values()) + sum(bigrams_b.values())
    if total == 0:
        return 0.0
    overlap = sum((bigrams_a & bigrams_b).values())
    return 2.0 * overlap / total
