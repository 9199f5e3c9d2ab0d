"""
tests/test_roster_extractor.py — Roster HTML Extraction Tests
==============================================================
"""

from __future__ import annotations

from conftest import roster_html

from rollcall.services.roster_extractor import (
    SKIP_BAD_ID,
    SKIP_DUPLICATE_ID,
    SKIP_TOO_FEW_CELLS,
    ExtractionLedger,
    RosterEntry,
    extract_roster,
)


class TestExtractRoster:

    def test_extracts_rows_in_order(self):
        html = roster_html([
            ("12345678", "Ada Lovelace", "2024-09-01"),
            ("23456789", "Alan Turing", "2024-09-02"),
        ])
        assert extract_roster(html) == [
            RosterEntry(12345678, "Ada Lovelace"),
            RosterEntry(23456789, "Alan Turing"),
        ]

    def test_single_cell_row_is_skipped_not_fatal(self):
        html = roster_html([
            ("10000001", "One"),
            ("10000002", "Two"),
            ("broken row",),
            ("10000004", "Four"),
            ("10000005", "Five"),
        ])
        ledger = ExtractionLedger()
        entries = extract_roster(html, ledger)

        assert [e.external_id for e in entries] == [10000001, 10000002, 10000004, 10000005]
        assert ledger.rows_seen == 5
        assert ledger.rows_extracted == 4
        assert ledger.skipped[SKIP_TOO_FEW_CELLS] == 1

    def test_non_numeric_and_negative_ids_skipped(self):
        html = roster_html([
            ("abc", "Nope"),
            ("-5", "Negative"),
            ("", "Blank"),
            ("10000001", "Valid"),
        ])
        ledger = ExtractionLedger()
        entries = extract_roster(html, ledger)

        assert entries == [RosterEntry(10000001, "Valid")]
        assert ledger.skipped[SKIP_BAD_ID] == 3

    def test_whitespace_is_trimmed(self):
        html = roster_html([("  10000001\n", "\n  Grace   Hopper  ")])
        assert extract_roster(html) == [RosterEntry(10000001, "Grace Hopper")]

    def test_duplicate_ids_keep_first(self):
        html = roster_html([("10000001", "First"), ("10000001", "Second")])
        ledger = ExtractionLedger()
        assert extract_roster(html, ledger) == [RosterEntry(10000001, "First")]
        assert ledger.skipped[SKIP_DUPLICATE_ID] == 1

    def test_missing_table_yields_empty(self):
        html = "<html><body><p>Sorry you're not authenticated</p></body></html>"
        assert extract_roster(html) == []

    def test_other_tables_ignored(self):
        html = (
            '<table id="something-else"><tbody><tr><td>1</td><td>x</td></tr></tbody></table>'
            + roster_html([("10000001", "Real")])
        )
        assert extract_roster(html) == [RosterEntry(10000001, "Real")]

    def test_header_row_not_counted(self):
        ledger = ExtractionLedger()
        extract_roster(roster_html([("10000001", "Only")]), ledger)
        assert ledger.rows_seen == 1
        assert ledger.rows_skipped == 0
