"""
rollcall.services.roster_extractor — Roster Table Parsing
==========================================================

Turns the roster page HTML into an ordered list of :class:`RosterEntry`.

The page is not under our control, so extraction is forgiving: a row
that doesn't look like ``<td>id</td><td>name</td>…`` is skipped and
counted in the :class:`ExtractionLedger` rather than failing the whole
page.  One broken row must never hide hundreds of valid members from
reconciliation.  A page with no roster table yields an empty list, which
the sync loop treats as "cookie didn't work".
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from rollcall.constants import ROSTER_ROW_SELECTOR

logger = logging.getLogger(__name__)

# Skip reasons recorded in the ledger
SKIP_TOO_FEW_CELLS = "too_few_cells"
SKIP_BAD_ID = "bad_id"
SKIP_EMPTY_NAME = "empty_name"
SKIP_DUPLICATE_ID = "duplicate_id"


@dataclass(frozen=True, slots=True)
class RosterEntry:
    """One member as listed on the roster page right now."""
    external_id: int
    display_name: str


@dataclass
class ExtractionLedger:
    """Counts of what happened to each ``<tr>`` in one extraction."""
    rows_seen: int = 0
    rows_extracted: int = 0
    skipped: Counter = field(default_factory=Counter)

    @property
    def rows_skipped(self) -> int:
        return sum(self.skipped.values())

    def skip(self, row_index: int, reason: str) -> None:
        self.skipped[reason] += 1
        logger.warning("Skipping roster row %d: %s", row_index, reason)


def _parse_external_id(text: str) -> int | None:
    """Return *text* as a non-negative integer, or ``None``."""
    text = text.strip()
    if not text.isascii() or not text.isdigit():
        return None
    return int(text)


def extract_roster(
    html: str, ledger: ExtractionLedger | None = None,
) -> list[RosterEntry]:
    """Extract roster entries from *html* in document order.

    Parameters
    ----------
    html:
        Raw roster page body.
    ledger:
        Optional ledger to fill in; pass one when the caller wants the
        skip counts (the sync loop logs them).
    """
    if ledger is None:
        ledger = ExtractionLedger()

    soup = BeautifulSoup(html, "html.parser")
    entries: list[RosterEntry] = []
    seen_ids: set[int] = set()

    for idx, tr in enumerate(soup.select(ROSTER_ROW_SELECTOR), start=1):
        ledger.rows_seen += 1
        cells = tr.find_all("td", recursive=False)
        if len(cells) < 2:
            ledger.skip(idx, SKIP_TOO_FEW_CELLS)
            continue

        external_id = _parse_external_id(cells[0].get_text())
        if external_id is None:
            ledger.skip(idx, SKIP_BAD_ID)
            continue

        display_name = " ".join(cells[1].get_text().split())
        if not display_name:
            ledger.skip(idx, SKIP_EMPTY_NAME)
            continue

        if external_id in seen_ids:
            ledger.skip(idx, SKIP_DUPLICATE_ID)
            continue

        seen_ids.add(external_id)
        entries.append(RosterEntry(external_id=external_id, display_name=display_name))
        ledger.rows_extracted += 1

    if ledger.rows_skipped:
        logger.warning(
            "Roster extraction skipped %d/%d rows: %s",
            ledger.rows_skipped, ledger.rows_seen, dict(ledger.skipped),
        )
    logger.info("Extracted %d roster entries", len(entries))
    return entries
