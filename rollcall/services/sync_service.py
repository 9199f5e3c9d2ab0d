"""
rollcall.services.sync_service — Bootstrap & Scheduled Roster Sync
===================================================================

Drives the fetch → extract → reconcile pipeline.

Startup (:meth:`RosterSync.bootstrap`)::

    TryStoredCookie ──ok, ≥1 rows──────────────────────────▶ Reconciled
          │ no cookie / logged out / 0 rows
          ▼
    TrySeedCookie   ──ok, ≥1 rows──────────────────────────▶ Reconciled
          │ anything else
          ▼
    BootstrapFailed ◀── HTTP or network error at TryStoredCookie,
                        or the database is unreachable at any step

BootstrapFailed stops the process; an operator needs to supply a fresh
INITIAL_SESSION_COOKIE or bring the roster site back.  A transport failure
with a saved cookie never touches the store, since the server being down
says nothing about whether the cookie is still good.

Scheduled ticks (:meth:`RosterSync.tick`) reuse whatever cookie is in the
store.  A tick never overlaps another; any failure skips the tick without
touching the membership table, and the next tick starts from scratch.
An empty roster is always treated as a failure: the real roster is never
empty, and reconciling against nothing would offboard every member.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine

from rollcall.constants import ROSTER_SYNC_TASK, SESSION_COOKIE_NAME
from rollcall.database.engine import run_db
from rollcall.errors import (
    AuthenticationExpired,
    BootstrapFailed,
    ReconciliationUnavailable,
    RollcallError,
    TransportFailure,
)
from rollcall.services.reconciliation_service import ReconcileResult, reconcile_roster
from rollcall.services.roster_extractor import ExtractionLedger, RosterEntry, extract_roster
from rollcall.services.roster_fetcher import (
    FetchSuccess,
    FetchTransportFailure,
    FetchUnauthenticated,
    RosterFetcher,
)
from rollcall.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class SyncState(enum.StrEnum):
    TRY_STORED_COOKIE = "try_stored_cookie"
    TRY_SEED_COOKIE = "try_seed_cookie"
    RECONCILED = "reconciled"
    FATAL = "fatal"


class EmptyRoster(RollcallError):
    """The roster page parsed to zero members."""


@dataclass
class TickOutcome:
    """What one scheduled tick did."""
    reconciled: bool
    result: ReconcileResult | None = None
    error: str | None = None
    skipped_overlap: bool = False
    ledger: ExtractionLedger = field(default_factory=ExtractionLedger)


class RosterSync:
    """Owns the fetcher and serialises every pass over the roster.

    Parameters
    ----------
    engine:
        Membership store engine.
    store:
        Session cookie store shared by bootstrap and every tick.
    fetcher:
        Authenticated fetcher built on *store*.
    roster_url:
        Page to scrape.
    seed_cookie:
        Operator-supplied fallback cookie value, used once at startup.
    """

    def __init__(
        self,
        engine: Engine,
        store: SessionStore,
        fetcher: RosterFetcher,
        roster_url: str,
        seed_cookie: str,
    ) -> None:
        self.engine = engine
        self.store = store
        self.fetcher = fetcher
        self.roster_url = roster_url
        self.seed_cookie = seed_cookie
        self.state: SyncState | None = None
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------
    # One pass
    # -------------------------------------------------------------------
    async def _scrape(self, ledger: ExtractionLedger) -> list[RosterEntry]:
        """Fetch and extract the roster, raising on anything but ≥1 row."""
        outcome = await self.fetcher.fetch(self.roster_url)
        if isinstance(outcome, FetchTransportFailure):
            raise TransportFailure(outcome.reason, outcome.status_code)
        if isinstance(outcome, FetchUnauthenticated):
            raise AuthenticationExpired("Session cookie not providing authenticated access")

        assert isinstance(outcome, FetchSuccess)
        entries = extract_roster(outcome.html, ledger)
        if not entries:
            raise EmptyRoster("Roster page contained no members")
        logger.info("Scraped %d members", len(entries))
        return entries

    async def _sync_once(self, ledger: ExtractionLedger) -> ReconcileResult:
        entries = await self._scrape(ledger)
        return await run_db(reconcile_roster, self.engine, entries)

    # -------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------
    async def bootstrap(self) -> ReconcileResult:
        """Run the first sync, falling back to the seed cookie once.

        Only a logged-out page or an empty roster moves on to the seed
        cookie.  A transport failure leaves the stored cookie in place and
        stops here.

        Raises
        ------
        BootstrapFailed
            If the roster could not be read and reconciled.
        """
        async with self._lock:
            try:
                return await self._bootstrap()
            except ReconciliationUnavailable as exc:
                self.state = SyncState.FATAL
                logger.error("Membership store unavailable at startup: %s", exc)
                raise BootstrapFailed(str(exc)) from exc

    async def _bootstrap(self) -> ReconcileResult:
        stored = await run_db(self.store.get_value, self.roster_url)
        if stored is not None:
            self.state = SyncState.TRY_STORED_COOKIE
            logger.info("Trying saved session cookie")
            try:
                result = await self._sync_once(ExtractionLedger())
            except (AuthenticationExpired, EmptyRoster) as exc:
                logger.warning("Saved session cookie failed: %s", exc)
            except TransportFailure as exc:
                self.state = SyncState.FATAL
                logger.error("Roster unreachable at startup: %s", exc)
                raise BootstrapFailed(f"Roster unreachable: {exc}") from exc
            else:
                self.state = SyncState.RECONCILED
                return result

        self.state = SyncState.TRY_SEED_COOKIE
        logger.info("Trying initial session cookie")
        await run_db(
            self.store.seed, self.roster_url, SESSION_COOKIE_NAME, self.seed_cookie,
        )
        try:
            result = await self._sync_once(ExtractionLedger())
        except (TransportFailure, AuthenticationExpired, EmptyRoster) as exc:
            self.state = SyncState.FATAL
            logger.error("Initial session cookie failed: %s", exc)
            raise BootstrapFailed(
                "Failed to scrape members with known cookies, try obtaining another one"
            ) from exc

        self.state = SyncState.RECONCILED
        return result

    # -------------------------------------------------------------------
    # Scheduled tick
    # -------------------------------------------------------------------
    async def tick(self) -> TickOutcome:
        """Run one scheduled sync, or skip if the previous one is still running."""
        if self._lock.locked():
            logger.warning("Previous roster sync still running; skipping this tick")
            return TickOutcome(reconciled=False, skipped_overlap=True)

        async with self._lock:
            ledger = ExtractionLedger()
            try:
                result = await self._sync_once(ledger)
            except RollcallError as exc:
                logger.error(
                    "Roster sync tick skipped: %s", exc,
                    extra={"task": ROSTER_SYNC_TASK},
                )
                return TickOutcome(reconciled=False, error=str(exc), ledger=ledger)
            return TickOutcome(reconciled=True, result=result, ledger=ledger)
