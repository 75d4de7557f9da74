"""Location Matcher Algorithm.

This module implements the cascade that joins a ledger location candidate to a
canonical budget location:
1. Checks the alias table (authoritative, fast path)
2. Tries exact, typo-corrected, substring and first-word comparisons
3. Tries shared proper-noun keywords and a keyword re-extracted from the
   transaction description
4. Falls back to Dice bigram similarity

Matching is greedy per candidate: the first stage that succeeds wins, so the
stages are ordered by the confidence they report.
"""

import re
from typing import Callable, List, Optional, Sequence, Tuple, Union

from budget.models import CanonicalLocation
from extraction.locations import is_service_token
from location_resolver.models import (
    DEFAULT_MATCHING_CONFIG,
    DESCRIPTION_STRONG_CONFIDENCE,
    DESCRIPTION_WEAK_CONFIDENCE,
    MATCH_CONFIDENCE,
    PENDING_PREFIX,
    LocationAliasTable,
    LocationMatch,
    MatchType,
    MatchingConfig,
)
from location_resolver.normalize import (
    KNOWN_KEYWORDS,
    apply_typo_aliases,
    dice_coefficient,
    first_meaningful_word,
    normalize_location_name,
    shared_keywords,
    stem_word,
)
from models.canonical import UnmappedReason


LEADING_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}(?:[-,/]\d{1,2}(?:/\d{1,2})?)?\s*")

# Stages whose hit in a description retry counts as strong evidence
_STRONG_STAGES = {MatchType.MAPPING, MatchType.MAPPING_FUZZY, MatchType.EXACT, MatchType.ALIAS, MatchType.SUBSTRING}


def extract_description_keyword(description: Optional[str]) -> str:
    """Re-extract a location keyword from a full transaction description.

    Colon-delimited descriptions carry the location in a middle segment:
    ``PERMITS:MELROSE AVE:FIRE`` yields ``MELROSE AVE`` (the trailing GL
    category segment is skipped). Otherwise the first known proper-noun
    keyword found in the description is returned.

    Args:
        description: Transaction description

    Returns:
        Keyword, or "" when nothing usable is found
    """
    if not description:
        return ""
    text = description.upper().strip()
    segments = [s.strip() for s in text.split(":") if s.strip()]

    if len(segments) >= 3:
        picks = segments[1:-1]
    elif len(segments) == 2:
        picks = [segments[1], segments[0]]
    else:
        picks = []

    for segment in picks:
        segment = LEADING_DATE_RE.sub("", segment).strip()
        if len(segment) >= 3 and not is_service_token(segment):
            return segment

    words = set(apply_typo_aliases(normalize_location_name(text)).split())
    for keyword in KNOWN_KEYWORDS:
        if keyword in words:
            return keyword
    return ""


class _Target:
    """Precomputed comparison forms of one canonical location."""

    __slots__ = ("name", "norm", "typo", "words", "first")

    def __init__(self, name: str):
        self.name = name
        self.norm = normalize_location_name(name)
        self.typo = apply_typo_aliases(self.norm)
        self.words = self.norm.split()
        self.first = first_meaningful_word(self.norm)


Hit = Tuple[_Target, MatchType, str]
Stage = Callable[["LocationMatcher", str], Optional[Hit]]


class LocationMatcher:
    """Matches ledger location candidates to canonical budget locations.

    Pure and idempotent: the same candidate always yields the same match for a
    given set of locations and alias table.

    Example:
        matcher = LocationMatcher(aggregate.locations, alias_table)
        match = matcher.match("Kellner's House")
        if match:
            txn = txn.apply(match)
    """

    def __init__(
        self,
        locations: Sequence[Union[CanonicalLocation, str]],
        alias_table: Optional[LocationAliasTable] = None,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    ):
        """Initialize the matcher.

        Args:
            locations: Canonical locations (or plain names) to match against
            alias_table: Alias entries and service-charge patterns
            config: Matching thresholds
        """
        names = [loc.name if isinstance(loc, CanonicalLocation) else loc for loc in locations]
        self.targets: List[_Target] = [_Target(n) for n in dict.fromkeys(names) if n and n.strip()]
        self._by_norm = {t.norm: t for t in self.targets}
        self.alias_table = alias_table or LocationAliasTable()
        self.config = config

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def match(self, candidate: Optional[str], description: Optional[str] = None) -> Optional[LocationMatch]:
        """Match a candidate location.

        Args:
            candidate: Location candidate extracted from the transaction
            description: Full transaction description, enables the
                description-keyword retry

        Returns:
            LocationMatch, or None when no stage succeeds
        """
        norm = normalize_location_name(candidate or "")
        if not norm or not self.targets:
            return None

        for stage in self.NAME_STAGES:
            hit = stage(self, norm)
            if hit:
                target, match_type, reason = hit
                return self._result(target, match_type, MATCH_CONFIDENCE[match_type], candidate, [reason])

        if description:
            result = self._match_description_keyword(norm, candidate, description)
            if result:
                return result

        return self._match_fuzzy(norm, candidate)

    def classify_unmapped(self, candidate: Optional[str]) -> UnmappedReason:
        """Explain why a candidate produced no match."""
        return classify_unmapped(candidate, self.alias_table)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _stage_alias_table(self, norm: str) -> Optional[Hit]:
        entry = self.alias_table.lookup(norm)
        if entry is None or entry.is_sentinel:
            return None

        target_norm = normalize_location_name(entry.budget_location)
        target = self._by_norm.get(target_norm)
        if target:
            return target, MatchType.MAPPING, f"Alias table: '{entry.ledger_location}' -> '{target.name}'"

        best, score = self._most_similar(target_norm)
        if best and score >= self.config.alias_similarity_threshold:
            return best, MatchType.MAPPING_FUZZY, (
                f"Alias target '{entry.budget_location}' ~ '{best.name}' ({score:.2f})"
            )
        return None

    def _stage_exact(self, norm: str) -> Optional[Hit]:
        target = self._by_norm.get(norm)
        if target:
            return target, MatchType.EXACT, "Exact match"
        return None

    def _stage_typo_alias(self, norm: str) -> Optional[Hit]:
        typo = apply_typo_aliases(norm)
        raw_first = first_meaningful_word(norm)
        cand_first = first_meaningful_word(typo)
        for target in self.targets:
            if typo == norm and target.typo == target.norm:
                continue
            if typo == target.typo:
                return target, MatchType.ALIAS, f"Typo-corrected match '{typo}'"
            if self._contains(typo, target.typo):
                return target, MatchType.ALIAS, f"Typo-corrected containment '{typo}'"
            target_first = first_meaningful_word(target.typo)
            corrected = cand_first != raw_first or target_first != target.first
            if (
                corrected
                and len(cand_first) >= self.config.min_first_word_length
                and cand_first == target_first
            ):
                return target, MatchType.ALIAS, f"Typo-corrected first word '{cand_first}'"
        return None

    def _stage_substring(self, norm: str) -> Optional[Hit]:
        hits = [t for t in self.targets if self._contains(norm, t.norm)]
        if hits:
            best = self._rank(norm, hits)
            return best, MatchType.SUBSTRING, f"Containment '{norm}' / '{best.norm}'"
        return None

    def _stage_first_word(self, norm: str) -> Optional[Hit]:
        first = first_meaningful_word(norm)
        if len(first) < self.config.min_first_word_length:
            return None

        equal = [t for t in self.targets if t.first == first]
        if equal:
            return self._rank(norm, equal), MatchType.FIRST_WORD, f"First word '{first}'"

        words = norm.split()
        partial = [
            t for t in self.targets
            if first in t.words
            or (len(t.first) >= self.config.min_first_word_length and t.first in words)
        ]
        if partial:
            return self._rank(norm, partial), MatchType.FIRST_WORD_PARTIAL, f"First word '{first}' in name"
        return None

    def _stage_alias_first_word(self, norm: str) -> Optional[Hit]:
        first = stem_word(first_meaningful_word(apply_typo_aliases(norm)))
        if len(first) < self.config.min_first_word_length:
            return None
        hits = [t for t in self.targets if stem_word(first_meaningful_word(t.typo)) == first]
        if hits:
            return self._rank(norm, hits), MatchType.ALIAS_FIRST_WORD, f"Stemmed first word '{first}'"
        return None

    def _stage_keyword(self, norm: str) -> Optional[Hit]:
        typo = apply_typo_aliases(norm)
        for target in self.targets:
            shared = shared_keywords(typo, target.typo)
            if shared:
                return target, MatchType.KEYWORD, f"Shared keyword '{shared[0]}'"
        return None

    NAME_STAGES: Tuple[Stage, ...] = (
        _stage_alias_table,
        _stage_exact,
        _stage_typo_alias,
        _stage_substring,
        _stage_first_word,
        _stage_alias_first_word,
        _stage_keyword,
    )

    def _match_description_keyword(
        self,
        norm: str,
        candidate: Optional[str],
        description: str,
    ) -> Optional[LocationMatch]:
        keyword = normalize_location_name(extract_description_keyword(description))
        if not keyword or keyword == norm:
            return None
        for stage in self.NAME_STAGES:
            hit = stage(self, keyword)
            if hit:
                target, inner_type, reason = hit
                confidence = (
                    DESCRIPTION_STRONG_CONFIDENCE if inner_type in _STRONG_STAGES
                    else DESCRIPTION_WEAK_CONFIDENCE
                )
                return self._result(
                    target,
                    MatchType.DESCRIPTION_KEYWORD,
                    confidence,
                    candidate,
                    [f"Description keyword '{keyword}'", f"{inner_type.value}: {reason}"],
                )
        return None

    def _match_fuzzy(self, norm: str, candidate: Optional[str]) -> Optional[LocationMatch]:
        best, score = self._most_similar(norm)
        if best is None or score <= self.config.fuzzy_threshold:
            return None
        return self._result(
            best, MatchType.FUZZY, round(score, 4), candidate,
            [f"Dice similarity {score:.2f} with '{best.name}'"],
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _contains(self, a: str, b: str) -> bool:
        shorter = a if len(a) <= len(b) else b
        longer = b if shorter is a else a
        if len(shorter) < self.config.min_substring_length:
            return False
        return shorter in longer

    def _rank(self, norm: str, targets: List[_Target]) -> _Target:
        """Best of several equally-typed hits: highest similarity, then name."""
        return sorted(targets, key=lambda t: (-dice_coefficient(norm, t.norm), t.name))[0]

    def _most_similar(self, norm: str) -> Tuple[Optional[_Target], float]:
        best, best_score = None, 0.0
        for target in self.targets:
            score = dice_coefficient(norm, target.norm)
            if score > best_score:
                best, best_score = target, score
        return best, best_score

    @staticmethod
    def _result(
        target: _Target,
        match_type: MatchType,
        confidence: float,
        candidate: Optional[str],
        reasons: List[str],
    ) -> LocationMatch:
        return LocationMatch(
            location=target.name,
            confidence=confidence,
            match_type=match_type,
            candidate=candidate or "",
            reasons=reasons,
        )


def classify_unmapped(candidate: Optional[str], alias_table: Optional[LocationAliasTable] = None) -> UnmappedReason:
    """Classify a candidate that matched no canonical location.

    Returns:
        service_charge for the alias sentinel or a service-charge pattern,
        pending_location for a ``PENDING:`` alias entry, else no_budget_match
    """
    table = alias_table or LocationAliasTable()
    entry = table.lookup(candidate or "")
    if entry is not None:
        if entry.is_service_charge:
            return UnmappedReason.SERVICE_CHARGE
        if entry.budget_location.strip().upper().startswith(PENDING_PREFIX):
            return UnmappedReason.PENDING_LOCATION
    if table.matches_service_charge_pattern(candidate or ""):
        return UnmappedReason.SERVICE_CHARGE
    return UnmappedReason.NO_BUDGET_MATCH
