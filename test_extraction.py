"""
Extraction Tests

Covers the ledger text extractors:
1. Date ranges from descriptions (payroll, ranges, bound collapse)
2. Location candidates and service tokens
3. Ledger filenames, account categories, spreadsheet rows and GL 505 text
4. Cross-file de-duplication
5. Purchase-order rows
"""

from datetime import date
from decimal import Decimal

import pytest

from extraction.dates import expand_date_range, extract_date_range
from extraction.ledger import (
    categorize_account,
    dedupe_transactions,
    is_gl505_text,
    parse_gl505_text,
    parse_ledger_filename,
    parse_ledger_rows,
)
from extraction.locations import clean_location, extract_location_candidate, is_service_token
from models.canonical import Transaction


class TestDateRanges:
    """Date-range extraction from description text."""

    def test_payroll_date_uses_token_year(self):
        """MM/DD/YY : prefix is a payroll day in the token's year."""
        dr = extract_date_range("11/22/25 : SMITH, J : REGULAR 1.0X", reference_year=2024)
        assert dr.start == date(2025, 11, 22)
        assert dr.end == date(2025, 11, 22)
        assert dr.is_payroll is True

    def test_full_range(self):
        dr = extract_date_range("11/14-11/21 SECURITY:LE DOME", reference_year=2025)
        assert dr.start == date(2025, 11, 14)
        assert dr.end == date(2025, 11, 21)
        assert dr.is_payroll is False

    def test_same_month_range(self):
        dr = extract_date_range("12/03-05 GUARDS", reference_year=2025)
        assert (dr.start, dr.end) == (date(2025, 12, 3), date(2025, 12, 5))

    def test_comma_range(self):
        dr = extract_date_range("10/20,10/21 PARKING: LATCHFORD", reference_year=2025)
        assert (dr.start, dr.end) == (date(2025, 10, 20), date(2025, 10, 21))

    def test_single_date(self):
        dr = extract_date_range("10/20 FIRE", reference_year=2025)
        assert dr.start == dr.end == date(2025, 10, 20)

    def test_impossible_date_is_absent(self):
        """A token that is not a real calendar date yields no range."""
        assert extract_date_range("02/30 FIRE", reference_year=2025) is None

    def test_no_date_token(self):
        assert extract_date_range("LOCATION FEE", reference_year=2025) is None
        assert extract_date_range(None) is None
        assert extract_date_range("") is None

    def test_range_over_bound_collapses_to_start(self):
        """Spans longer than the sanity bound become a single day."""
        dr = extract_date_range("01/01-05/01 SECURITY:SOMEWHERE", reference_year=2025)
        assert dr.start == dr.end == date(2025, 1, 1)

    def test_reversed_range_collapses_to_start(self):
        dr = extract_date_range("11/21-11/14 SECURITY:SOMEWHERE", reference_year=2025)
        assert dr.start == dr.end == date(2025, 11, 21)

    def test_custom_bound(self):
        dr = extract_date_range("11/01-11/21 GUARDS", reference_year=2025, max_days=7)
        assert dr.end == dr.start

    def test_expand_range(self):
        dr = extract_date_range("12/03-05 GUARDS", reference_year=2025)
        assert expand_date_range(dr) == [date(2025, 12, 3), date(2025, 12, 4), date(2025, 12, 5)]

    def test_expand_missing_range(self):
        assert expand_date_range(None) == []


class TestLocationCandidates:
    """Candidate location extraction."""

    @pytest.mark.parametrize("description,expected", [
        ('LOC FEE:"VILLAGE THEATER"(FOX)', "VILLAGE THEATER"),
        ("GALLERIA MALL LOCATION FEE", "GALLERIA MALL"),
        ("11/07-11/08 BG HOLD/BLOCK DRVWAY:MELROSE (102)", "MELROSE"),
        ("11/14-11/21 SECURITY:KELLER RESIDENCE", "KELLER RESIDENCE"),
        ("12/04-06 GUARDS", "GUARDS"),
        ("FIRE (102)", "FIRE"),
    ])
    def test_extracts_candidate(self, description, expected):
        assert extract_location_candidate(description) == expected

    @pytest.mark.parametrize("description", [
        "MEAL PENALTY NON UNION",
        "ENTERTAINMENT PARTNERS",
        "PERMIT FEE",
        "",
        None,
    ])
    def test_no_candidate(self, description):
        """Pay types, payroll companies and category labels yield nothing."""
        assert extract_location_candidate(description) == ""

    def test_lowercase_description(self):
        assert extract_location_candidate("galleria mall location fee") == "GALLERIA MALL"

    def test_service_tokens(self):
        assert is_service_token("GUARDS")
        assert is_service_token("fire")
        assert is_service_token("TENTS/TABLES/CHAIRS")
        assert not is_service_token("MELROSE")
        assert not is_service_token("TENTS/MELROSE")
        assert not is_service_token(None)

    def test_clean_location(self):
        assert clean_location("MELROSE AVE (101)") == "MELROSE AVE"
        assert clean_location("VILLAGE THEATER(FOX)") == "VILLAGE THEATER"
        assert clean_location(None) == ""


class TestLedgerFiles:
    """Ledger filename parsing, categories and row parsing."""

    def test_parse_filename(self):
        info = parse_ledger_filename("101 6304 011626.pdf")
        assert info.episode == "101"
        assert info.account == "6304"
        assert info.report_date == date(2026, 1, 16)

    def test_parse_filename_rejects_other_names(self):
        assert parse_ledger_filename("ledger.pdf") is None

    @pytest.mark.parametrize("suffix", ["pdf", "xlsx", "xlsm", "csv", "txt"])
    def test_parse_filename_loadable_types(self, suffix):
        assert parse_ledger_filename(f"101 6304 011626.{suffix}").episode == "101"

    @pytest.mark.parametrize("suffix", ["xls", "jpg"])
    def test_parse_filename_unloadable_types(self, suffix):
        """Only file types the loader can read carry ledger metadata."""
        assert parse_ledger_filename(f"101 6304 011626.{suffix}") is None

    def test_categorize_account(self):
        assert categorize_account("6304") == "Security"
        assert categorize_account("6307") == "Fire"
        assert categorize_account("6342", "FILMING PERMIT") == "Permits"
        assert categorize_account("6342", "TENTS/TABLES") == "Rentals"
        assert categorize_account("6342", "LOCATION FEE") == "Loc Fees"
        assert categorize_account("9999") == "Unknown"
        assert categorize_account(None) == "Unknown"

    def test_parse_rows(self):
        """Header found below a title row; totals and zero rows skipped."""
        sheets = {
            "Sheet1": [
                ["Detail Report - Episode 101"],
                ["Location", "Vendor", "Amount", "Trans#", "Description"],
                ["KELLER", "ACME SECURITY", "1,250.00", "123", "11/14-11/21 SECURITY:KELLER RESIDENCE"],
                [None, None, "5000.00", None, None],
                ["", "X", "0", "", "nothing"],
            ]
        }
        ledger = parse_ledger_rows(sheets, "101 6304 011626.xlsx")

        assert ledger.errors == []
        assert len(ledger.transactions) == 1
        txn = ledger.transactions[0]
        assert txn.txn_id == "101 6304 011626:Sheet1:2"
        assert txn.amount == Decimal("1250.00")
        assert txn.episode == "101"
        assert txn.account_code == "6304"
        assert txn.category == "Security"
        assert txn.vendor == "ACME SECURITY"
        assert txn.trans_number == "123"
        assert txn.candidate_location == "KELLER RESIDENCE"
        assert txn.date_range.start == date(2026, 11, 14)
        assert txn.content_hash

    def test_sheet_without_header(self):
        ledger = parse_ledger_rows({"Notes": [["a", "b"]]}, "101 6304 011626.xlsx")
        assert ledger.transactions == []
        assert ledger.errors == ["Notes: no header row found"]

    def test_location_code_fallback(self):
        """A non-numeric location column is used when the description has no candidate."""
        sheets = {"S": [
            ["Location", "Vendor", "Amount", "Description"],
            ["TOPANGA", "ACME", "10.00", "MEAL PENALTY NON UNION"],
            ["1234", "ACME", "10.00", "MEAL PENALTY NON UNION"],
        ]}
        ledger = parse_ledger_rows(sheets, "101 6304 011626.xlsx")
        assert [t.candidate_location for t in ledger.transactions] == ["TOPANGA", None]


class TestGL505Text:
    """General-ledger report text."""

    REPORT = "\n".join([
        "GL 505 General Ledger",
        "Acct: 6304 - SECURITY",
        "6304 101 KELLER 11/14-11/21 SECURITY:KELLER  ACME SECURITY  12345 11/25/2025 1,250.00",
        "6304 garbage",
    ])

    def test_detects_report(self):
        assert is_gl505_text(self.REPORT)
        assert not is_gl505_text("just some text")

    def test_parse_lines(self):
        ledger = parse_gl505_text(self.REPORT, "101 6304 011626.pdf")

        assert len(ledger.transactions) == 1
        txn = ledger.transactions[0]
        assert txn.account_code == "6304"
        assert txn.episode == "101"
        assert txn.amount == Decimal("1250.00")
        assert txn.vendor == "ACME SECURITY"
        assert txn.trans_number == "12345"
        assert txn.location_code == "KELLER"
        assert txn.candidate_location == "KELLER"
        assert txn.txn_id == "101 6304 011626:3"

    def test_unrecognized_line_is_recorded(self):
        ledger = parse_gl505_text(self.REPORT, "101 6304 011626.pdf")
        assert ledger.errors == ["line 4: unrecognized layout"]


class TestDeduplication:
    """Cross-file duplicate removal."""

    def _txn(self, txn_id, source):
        return Transaction(txn_id=txn_id, description="X", amount=Decimal("10"), content_hash="h1", source_file=source)

    def test_drops_duplicates_from_other_files(self):
        kept, removed = dedupe_transactions([self._txn("a", "f1"), self._txn("b", "f2")])
        assert [t.txn_id for t in kept] == ["a"]
        assert removed == 1

    def test_keeps_duplicates_within_one_file(self):
        kept, removed = dedupe_transactions([self._txn("a", "f1"), self._txn("b", "f1")])
        assert len(kept) == 2
        assert removed == 0


class TestPurchaseOrders:
    """Purchase-order rows feed committed spend only."""

    ROWS = [
        ["PO #", "Vendor", "Description", "Amount", "Status"],
        ["PO-1", "ACME", "EP101 security guards", "1,000.00", "Open"],
        ["PO-2", "B", "Episode 102 tent rental", "500", "Closed"],
        [None, None, None, None, None],
    ]

    def test_parse_rows(self):
        from extraction.purchase_orders import parse_purchase_order_rows

        orders = parse_purchase_order_rows(self.ROWS)
        assert len(orders) == 2
        assert orders[0].po_number == "PO-1"
        assert orders[0].amount == Decimal("1000.00")
        assert orders[0].episode == "101"
        assert orders[0].category == "Security"
        assert orders[1].episode == "102"
        assert orders[1].category == "Equipment"

    def test_summary_counts_open_orders_as_committed(self):
        from extraction.purchase_orders import parse_purchase_order_rows, summarize_purchase_orders

        summary = summarize_purchase_orders(parse_purchase_order_rows(self.ROWS))
        assert summary["count"] == 2
        assert summary["total_amount"] == Decimal("1500.00")
        assert summary["committed_amount"] == Decimal("1000.00")

    def test_missing_source(self, tmp_path):
        from extraction.runner import load_purchase_orders

        assert load_purchase_orders(None) == []
        assert load_purchase_orders(tmp_path / "missing.csv") == []
