"""
tests/test_sync_service.py — Bootstrap & Scheduled Tick Tests
==============================================================

End-to-end over the real session store, extractor and reconciler, with
the roster site mocked by respx.  The fake site answers according to the
``Cookie`` header it receives.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import respx
from conftest import ROSTER_URL, add_member, roster_html
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from rollcall.constants import NOT_AUTHENTICATED_MARKER, SESSION_COOKIE_NAME
from rollcall.database.models import Membership
from rollcall.errors import BootstrapFailed, RollcallError
from rollcall.services.roster_fetcher import FetchSuccess, RosterFetcher
from rollcall.services.session_store import SessionStore, origin_of
from rollcall.services.sync_service import RosterSync, SyncState

ORIGIN = origin_of(ROSTER_URL)
SEED = "seed-cookie"
ROSTER = roster_html([
    ("10000001", "Ada"),
    ("10000002", "Bob"),
    ("10000003", "Cy"),
])
LOGGED_OUT = f"<html><body>{NOT_AUTHENTICATED_MARKER}</body></html>"
_LOCKED = OperationalError("SELECT", {}, Exception("database is locked"))


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _site(valid: dict[str, httpx.Response]):
    """Fake roster site: response chosen by the Cookie header."""
    def handler(request: httpx.Request) -> httpx.Response:
        return valid.get(request.headers.get("cookie"), httpx.Response(200, text=LOGGED_OUT))
    return handler


def _run(db_engine, action: str):
    """Run ``bootstrap`` or ``tick`` on a fresh RosterSync.

    Returns ``(result, state)``; a raised RollcallError is returned as the
    result so tests can inspect the final state too.
    """
    store = SessionStore(db_engine)

    async def go():
        async with httpx.AsyncClient() as client:
            sync = RosterSync(
                engine=db_engine,
                store=store,
                fetcher=RosterFetcher(store, client=client),
                roster_url=ROSTER_URL,
                seed_cookie=SEED,
            )
            try:
                result = await getattr(sync, action)()
            except RollcallError as exc:
                result = exc
            return result, sync.state
    return run_async(go())


def _member_ids(engine) -> list[int]:
    with Session(engine) as s:
        return sorted(s.scalars(select(Membership.external_id)).all())


class TestBootstrap:

    @respx.mock
    def test_stored_cookie_works(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "stored")
        respx.get(ROSTER_URL).mock(side_effect=_site({
            "su_session=stored": httpx.Response(200, text=ROSTER),
        }))

        result, state = _run(db_engine, "bootstrap")

        assert result.inserted == 3
        assert state is SyncState.RECONCILED
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, "stored")

    @respx.mock
    def test_expired_cookie_falls_back_to_seed(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "expired")
        route = respx.get(ROSTER_URL).mock(side_effect=_site({
            f"su_session={SEED}": httpx.Response(
                200, text=ROSTER,
                headers=[("set-cookie", "su_session=issued-by-server; Path=/")],
            ),
        }))

        result, state = _run(db_engine, "bootstrap")

        assert route.call_count == 2
        assert result.inserted == 3
        assert _member_ids(db_engine) == [10000001, 10000002, 10000003]
        assert state is SyncState.RECONCILED
        # The server's new cookie replaces the seed value
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, "issued-by-server")

    @respx.mock
    def test_no_stored_cookie_goes_straight_to_seed(self, db_engine):
        route = respx.get(ROSTER_URL).mock(side_effect=_site({
            f"su_session={SEED}": httpx.Response(200, text=ROSTER),
        }))

        result, state = _run(db_engine, "bootstrap")

        assert route.call_count == 1
        assert result.inserted == 3
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, SEED)

    @respx.mock
    def test_empty_roster_with_stored_cookie_retries_seed(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "stored")
        respx.get(ROSTER_URL).mock(side_effect=_site({
            "su_session=stored": httpx.Response(200, text="<html><body>no table</body></html>"),
            f"su_session={SEED}": httpx.Response(200, text=ROSTER),
        }))

        result, _ = _run(db_engine, "bootstrap")
        assert result.inserted == 3

    @respx.mock
    def test_both_cookies_fail_is_fatal(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "expired")
        respx.get(ROSTER_URL).mock(side_effect=_site({}))

        error, state = _run(db_engine, "bootstrap")

        assert isinstance(error, BootstrapFailed)
        assert state is SyncState.FATAL
        assert _member_ids(db_engine) == []

    @respx.mock
    def test_server_error_keeps_stored_cookie(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "good")
        route = respx.get(ROSTER_URL).mock(return_value=httpx.Response(503))

        error, state = _run(db_engine, "bootstrap")

        assert isinstance(error, BootstrapFailed)
        assert state is SyncState.FATAL
        # No seed attempt: one request, and the saved cookie is still there
        assert route.call_count == 1
        assert route.calls.last.request.headers["cookie"] == "su_session=good"
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, "good")

    @respx.mock
    def test_network_error_keeps_stored_cookie(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "good")
        route = respx.get(ROSTER_URL).mock(side_effect=httpx.ConnectError("refused"))

        error, state = _run(db_engine, "bootstrap")

        assert isinstance(error, BootstrapFailed)
        assert state is SyncState.FATAL
        assert route.call_count == 1
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, "good")

    @respx.mock
    def test_login_redirect_falls_back_to_seed(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "expired")
        respx.get(ROSTER_URL).mock(side_effect=_site({
            "su_session=expired": httpx.Response(302, headers=[("location", "/login")]),
            f"su_session={SEED}": httpx.Response(200, text=ROSTER),
        }))
        respx.get(f"{ORIGIN}/login").mock(return_value=httpx.Response(200, text=LOGGED_OUT))

        result, state = _run(db_engine, "bootstrap")

        assert result.inserted == 3
        assert state is SyncState.RECONCILED

    @respx.mock(assert_all_called=False)
    def test_unreachable_store_is_fatal(self, db_engine):
        route = respx.get(ROSTER_URL).mock(return_value=httpx.Response(200, text=ROSTER))

        with patch("rollcall.services.session_store.get_session", side_effect=_LOCKED):
            error, state = _run(db_engine, "bootstrap")

        assert isinstance(error, BootstrapFailed)
        assert state is SyncState.FATAL
        assert route.call_count == 0

    @respx.mock
    def test_seed_with_empty_roster_is_fatal(self, db_engine):
        add_member(db_engine, 10000009, "Existing")
        respx.get(ROSTER_URL).mock(side_effect=_site({
            f"su_session={SEED}": httpx.Response(200, text=roster_html([])),
        }))

        error, state = _run(db_engine, "bootstrap")

        assert isinstance(error, BootstrapFailed)
        assert state is SyncState.FATAL

        # Nothing was reconciled against the empty roster
        assert _member_ids(db_engine) == [10000009]


class TestTick:

    @respx.mock
    def test_tick_reconciles(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "live")
        add_member(db_engine, 10000009, "Gone")
        add_member(db_engine, 10000008, "Bound", platform_identity=42)
        respx.get(ROSTER_URL).mock(side_effect=_site({
            "su_session=live": httpx.Response(200, text=ROSTER),
        }))

        outcome, _ = _run(db_engine, "tick")

        assert outcome.reconciled
        assert outcome.result.inserted == 3
        assert outcome.result.deleted == 1
        assert outcome.result.flagged == 1
        assert _member_ids(db_engine) == [10000001, 10000002, 10000003, 10000008]

    @respx.mock
    def test_expired_cookie_skips_tick_without_seeding(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "expired")
        add_member(db_engine, 10000009, "Kept")
        route = respx.get(ROSTER_URL).mock(side_effect=_site({
            f"su_session={SEED}": httpx.Response(200, text=ROSTER),
        }))

        outcome, _ = _run(db_engine, "tick")

        assert not outcome.reconciled
        assert "authenticated" in outcome.error
        assert route.call_count == 1
        assert _member_ids(db_engine) == [10000009]
        assert SessionStore(db_engine).get(ORIGIN) == (SESSION_COOKIE_NAME, "expired")

    @respx.mock
    def test_transport_failure_skips_tick(self, db_engine):
        add_member(db_engine, 10000009, "Kept")
        respx.get(ROSTER_URL).mock(return_value=httpx.Response(500))

        outcome, _ = _run(db_engine, "tick")

        assert not outcome.reconciled
        assert _member_ids(db_engine) == [10000009]

    @respx.mock(assert_all_called=False)
    def test_unreachable_store_skips_tick(self, db_engine):
        add_member(db_engine, 10000009, "Kept")
        respx.get(ROSTER_URL).mock(return_value=httpx.Response(200, text=ROSTER))

        with patch("rollcall.services.session_store.get_session", side_effect=_LOCKED):
            outcome, _ = _run(db_engine, "tick")

        assert not outcome.reconciled
        assert "unavailable" in outcome.error
        assert _member_ids(db_engine) == [10000009]

    @respx.mock
    def test_empty_roster_skips_tick(self, db_engine):
        SessionStore(db_engine).set(ORIGIN, SESSION_COOKIE_NAME, "live")
        add_member(db_engine, 10000009, "Kept")
        respx.get(ROSTER_URL).mock(side_effect=_site({
            "su_session=live": httpx.Response(200, text=roster_html([("only-one-cell",)])),
        }))

        outcome, _ = _run(db_engine, "tick")

        assert not outcome.reconciled
        assert outcome.ledger.rows_skipped == 1
        assert _member_ids(db_engine) == [10000009]

    def test_overlapping_tick_is_skipped(self, db_engine):
        store = SessionStore(db_engine)

        class SlowFetcher:
            calls = 0

            async def fetch(self, url):
                SlowFetcher.calls += 1
                await asyncio.sleep(0.05)
                return FetchSuccess(html=ROSTER)

        async def go():
            sync = RosterSync(db_engine, store, SlowFetcher(), ROSTER_URL, SEED)
            return await asyncio.gather(sync.tick(), sync.tick())

        first, second = run_async(go())

        assert first.reconciled
        assert second.skipped_overlap
        assert SlowFetcher.calls == 1
        assert _member_ids(db_engine) == [10000001, 10000002, 10000003]
