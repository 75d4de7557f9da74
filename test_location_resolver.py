"""
Location Resolver Tests

Validates the matching cascade against canonical budget locations:
1. Alias table entries win over every automatic strategy
2. Exact, typo-corrected, substring and first-word stages
3. Description keyword retry and fuzzy fallback
4. Sentinel aliases and unmapped classification
5. Alias persistence in SQLite and JSON
"""

import json

import pytest

from location_resolver.db import (
    add_location_alias,
    add_service_charge_pattern,
    delete_location_alias,
    get_location_alias,
    init_location_alias_db,
    list_location_aliases,
    load_alias_table,
    seed_sample_aliases,
)
from location_resolver.models import LocationAlias, LocationAliasTable, MatchType
from location_resolver.normalize import dice_coefficient, normalize_location_name, stem_word
from location_resolver.resolver import LocationMatcher, classify_unmapped, extract_description_keyword
from models.canonical import InferenceSource, Transaction, UnmappedReason


LOCATIONS = ["Keller Residence", "Latchford House", "Melrose Ave", "Buckley High School"]


@pytest.fixture
def matcher():
    return LocationMatcher(LOCATIONS)


@pytest.fixture
def alias_table():
    return LocationAliasTable(
        entries=[
            LocationAlias(ledger_location="KELLNERS", budget_location="Keller Residence"),
            LocationAlias(ledger_location="THE OLD PLACE", budget_location="Latchford House"),
            LocationAlias(ledger_location="BHS", budget_location="Buckley High Schl"),
            LocationAlias(ledger_location="STAGE 5", budget_location="SERVICE_CHARGE"),
            LocationAlias(ledger_location="GRIFFITH OBSERVATORY", budget_location="PENDING:Griffith Observatory"),
        ],
        service_charge_patterns=["OFFICE"],
    )


class TestNormalization:

    def test_normalize_location_name(self):
        assert normalize_location_name("Kellner's House") == "KELLNER HOUSE"
        assert normalize_location_name("Melrose Ave. (101)") == "MELROSE AVE 101"
        assert normalize_location_name("  keller  residence") == "KELLER RESIDENCE"
        assert normalize_location_name("") == ""

    def test_dice_ignores_spaces(self):
        assert dice_coefficient("MELROSE AVE", "MELROSEAVE") == 1.0
        assert dice_coefficient("ZZQX", "MELROSE AVE") == 0.0
        assert dice_coefficient("", "A") == 0.0

    def test_stem_word(self):
        assert stem_word("KELLERS") == "KELLER"
        assert stem_word("BOSS") == "BOSS"
        assert stem_word("ABS") == "ABS"


class TestMatchingStages:
    """Each stage of the cascade, in order."""

    def test_exact(self, matcher):
        match = matcher.match("keller residence")
        assert match.location == "Keller Residence"
        assert match.match_type == MatchType.EXACT
        assert match.confidence == 1.0

    def test_typo_alias(self, matcher):
        """Kellner's House corrects to KELLER and matches Keller Residence."""
        match = matcher.match("Kellner's House")
        assert match.location == "Keller Residence"
        assert match.match_type == MatchType.ALIAS
        assert match.confidence == 0.95

    def test_substring(self, matcher):
        match = matcher.match("LATCHFORD")
        assert match.location == "Latchford House"
        assert match.match_type == MatchType.SUBSTRING
        assert match.confidence == 0.9

    def test_first_word(self, matcher):
        match = matcher.match("MELROSE PLACE")
        assert match.location == "Melrose Ave"
        assert match.match_type == MatchType.FIRST_WORD
        assert match.confidence == 0.85

    def test_first_word_partial(self, matcher):
        match = matcher.match("NEAR BUCKLEY")
        assert match.location == "Buckley High School"
        assert match.match_type == MatchType.FIRST_WORD_PARTIAL

    def test_alias_first_word(self, matcher):
        match = matcher.match("KELLERS PLACE")
        assert match.location == "Keller Residence"
        assert match.match_type == MatchType.ALIAS_FIRST_WORD

    def test_keyword(self, matcher):
        match = matcher.match("THE BIG MELROSE LOT")
        assert match.location == "Melrose Ave"
        assert match.match_type == MatchType.KEYWORD
        assert match.confidence == 0.75

    def test_description_keyword(self, matcher):
        match = matcher.match("ZZQX", "PERMITS:MELROSE AVE:FIRE")
        assert match.location == "Melrose Ave"
        assert match.match_type == MatchType.DESCRIPTION_KEYWORD
        assert match.confidence == 0.82

    def test_fuzzy(self, matcher):
        match = matcher.match("LATCHFRD HSE")
        assert match.location == "Latchford House"
        assert match.match_type == MatchType.FUZZY
        assert 0.5 < match.confidence < 0.8

    def test_no_match(self, matcher):
        assert matcher.match("ZZQX") is None
        assert matcher.match("") is None
        assert matcher.match(None) is None

    def test_no_locations(self):
        assert LocationMatcher([]).match("Keller Residence") is None

    def test_idempotent(self, matcher):
        assert matcher.match("Kellner's House") == matcher.match("Kellner's House")


class TestAliasTable:
    """Alias entries are authoritative."""

    def test_mapping(self, alias_table):
        matcher = LocationMatcher(LOCATIONS, alias_table)
        match = matcher.match("Kellners")
        assert match.location == "Keller Residence"
        assert match.match_type == MatchType.MAPPING
        assert match.confidence == 0.98

    def test_mapping_overrides_automatic_stages(self, alias_table):
        matcher = LocationMatcher(LOCATIONS, alias_table)
        match = matcher.match("The Old Place")
        assert match.location == "Latchford House"
        assert match.match_type == MatchType.MAPPING

    def test_mapping_to_misspelled_target(self, alias_table):
        matcher = LocationMatcher(LOCATIONS, alias_table)
        match = matcher.match("BHS")
        assert match.location == "Buckley High School"
        assert match.match_type == MatchType.MAPPING_FUZZY
        assert match.confidence == 0.95

    def test_sentinels_never_match(self, alias_table):
        matcher = LocationMatcher(LOCATIONS, alias_table)
        assert matcher.match("Stage 5") is None
        assert matcher.classify_unmapped("Stage 5") == UnmappedReason.SERVICE_CHARGE
        assert matcher.classify_unmapped("Griffith Observatory") == UnmappedReason.PENDING_LOCATION

    def test_service_charge_pattern(self, alias_table):
        assert classify_unmapped("PRODUCTION OFFICE", alias_table) == UnmappedReason.SERVICE_CHARGE
        assert classify_unmapped("RANDOM PLACE", alias_table) == UnmappedReason.NO_BUDGET_MATCH
        assert classify_unmapped("RANDOM PLACE") == UnmappedReason.NO_BUDGET_MATCH

    def test_from_dict(self):
        table = LocationAliasTable.from_dict({
            "mappings": {"KELLNERS": "Keller Residence"},
            "serviceChargeLocations": ["STAGE"],
        })
        assert table.lookup("kellners").budget_location == "Keller Residence"
        assert table.service_charge_patterns == ["STAGE"]

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "aliases.json"
        path.write_text(json.dumps([{"ledger_location": "MELROSE", "budget_location": "Melrose Ave"}]))
        table = LocationAliasTable.from_json_file(path)
        assert table.lookup("Melrose").budget_location == "Melrose Ave"


class TestMatchPatch:

    def test_apply_to_transaction(self, matcher):
        txn = Transaction(txn_id="t1", candidate_location="Kellner's House")
        located = txn.apply(matcher.match(txn.candidate_location))
        assert located.matched_location == "Keller Residence"
        assert located.match_type == "alias"
        assert located.inference_source == InferenceSource.EXPLICIT
        assert txn.matched_location is None


class TestDescriptionKeyword:

    def test_middle_segment(self):
        assert extract_description_keyword("PERMITS:MELROSE AVE:FIRE") == "MELROSE AVE"

    def test_two_segments(self):
        assert extract_description_keyword("10/20 PARKING: LATCHFORD") == "LATCHFORD"

    def test_known_keyword(self):
        assert extract_description_keyword("SECURITY FOR KELLNER HOUSE") == "KELLER"

    def test_nothing(self):
        assert extract_description_keyword("") == ""
        assert extract_description_keyword("MEAL PENALTY") == ""


class TestAliasDatabase:
    """SQLite persistence of aliases and patterns."""

    @pytest.fixture
    def db_path(self, tmp_path):
        path = tmp_path / "aliases.db"
        init_location_alias_db(path)
        return path

    def test_add_and_get(self, db_path):
        saved = add_location_alias(
            LocationAlias(ledger_location="Kellner's", budget_location="Keller Residence", aliases=["KELLAR HOUSE"]),
            db_path,
        )
        assert saved.id is not None
        assert saved.created_at is not None

        found = get_location_alias("kellner's", db_path=db_path)
        assert found.budget_location == "Keller Residence"
        assert found.aliases == ["KELLAR HOUSE"]

    def test_replace_same_spelling(self, db_path):
        add_location_alias(LocationAlias(ledger_location="MELROSE", budget_location="Melrose Ave"), db_path)
        add_location_alias(LocationAlias(ledger_location="Melrose", budget_location="Melrose Place"), db_path)
        aliases = list_location_aliases(db_path=db_path)
        assert len(aliases) == 1
        assert aliases[0].budget_location == "Melrose Place"

    def test_delete(self, db_path):
        add_location_alias(LocationAlias(ledger_location="MELROSE", budget_location="Melrose Ave"), db_path)
        assert delete_location_alias("melrose", db_path=db_path) is True
        assert delete_location_alias("melrose", db_path=db_path) is False
        assert get_location_alias("MELROSE", db_path=db_path) is None

    def test_productions_are_separate(self, db_path):
        add_location_alias(
            LocationAlias(production_id="show-a", ledger_location="MELROSE", budget_location="Melrose Ave"),
            db_path,
        )
        assert list_location_aliases("show-b", db_path) == []
        assert len(list_location_aliases("show-a", db_path)) == 1

    def test_load_alias_table(self, db_path):
        add_location_alias(LocationAlias(ledger_location="MELROSE", budget_location="Melrose Ave"), db_path)
        add_service_charge_pattern("office", db_path=db_path)
        table = load_alias_table(db_path=db_path)
        assert len(table.entries) == 1
        assert table.service_charge_patterns == ["OFFICE"]

    def test_missing_database_yields_empty_table(self, tmp_path):
        table = load_alias_table(db_path=tmp_path / "missing.db")
        assert table.entries == []
        assert table.service_charge_patterns == []

    def test_seed_and_match(self, tmp_path):
        path = tmp_path / "seeded.db"
        counts = seed_sample_aliases(db_path=path)
        assert counts == {"aliases": 4, "patterns": 3}

        table = load_alias_table(db_path=path)
        matcher = LocationMatcher(LOCATIONS, table)
        assert matcher.match("Kellner House").match_type == MatchType.MAPPING
        assert matcher.classify_unmapped("Production Office") == UnmappedReason.SERVICE_CHARGE
