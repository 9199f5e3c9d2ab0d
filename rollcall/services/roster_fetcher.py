"""
rollcall.services.roster_fetcher — Authenticated Roster Fetch
==============================================================

Issues the GET against the roster page, following any redirects, and
sorts the final answer into one of three outcomes:

- :class:`FetchSuccess` — 2xx with roster HTML.
- :class:`FetchUnauthenticated` — 2xx, but the page says we are logged
  out (the session cookie expired).
- :class:`FetchTransportFailure` — network error or non-2xx status.

The ``Cookie`` header is rebuilt from the :class:`SessionStore` on every
request and redirect hop, and any ``Set-Cookie`` in a response is written
straight back, whatever the outcome.  httpx's own cookie jar is never
consulted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from rollcall.constants import NOT_AUTHENTICATED_MARKER
from rollcall.database.engine import run_db
from rollcall.services.session_store import (
    CookieProvider,
    cookie_header,
    store_set_cookie_headers,
)

logger = logging.getLogger(__name__)

USER_AGENT = "rollcall/0.1 (+roster sync)"
MAX_REDIRECTS = 5


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FetchSuccess:
    html: str


@dataclass(frozen=True, slots=True)
class FetchUnauthenticated:
    status_code: int


@dataclass(frozen=True, slots=True)
class FetchTransportFailure:
    reason: str
    status_code: int | None = None


FetchResult = FetchSuccess | FetchUnauthenticated | FetchTransportFailure


def is_unauthenticated_body(body: str) -> bool:
    """True if *body* is the roster site's "not logged in" page."""
    return NOT_AUTHENTICATED_MARKER in body


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------
class RosterFetcher:
    """HTTP client wrapper that authenticates from a cookie store.

    Parameters
    ----------
    store:
        Anything implementing :class:`CookieProvider`.  Its methods are
        synchronous and are called through ``run_db``.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one).  When
        omitted the fetcher owns its client and closes it in :meth:`aclose`.
    timeout:
        Per-request timeout in seconds for an owned client.
    """

    def __init__(
        self,
        store: CookieProvider,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
    ) -> None:
        self.store = store
        self._owns_client = client is None
        # Redirects are followed by hand in fetch(); httpx strips an explicit
        # Cookie header on every hop.
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        """Send one hop with the stored cookie and absorb its Set-Cookie."""
        url = str(request.url)
        cookie = await run_db(cookie_header, self.store, url)
        if cookie is None:
            request.headers.pop("Cookie", None)
        else:
            request.headers["Cookie"] = cookie

        # Cookies are managed by the store; clear the client jar so it
        # never adds a second, stale Cookie header.
        self.client.cookies.clear()
        resp = await self.client.send(request, follow_redirects=False)

        set_cookies = resp.headers.get_list("set-cookie")
        if set_cookies:
            await run_db(store_set_cookie_headers, self.store, url, set_cookies)
        return resp

    async def fetch(self, url: str) -> FetchResult:
        """GET *url* and classify the final response.

        Up to :data:`MAX_REDIRECTS` redirects are followed.  A logged-out
        session is usually bounced to a login page that carries the marker.
        """
        try:
            resp = await self._send(self.client.build_request("GET", url))
            hops = 0
            while resp.next_request is not None:
                if hops == MAX_REDIRECTS:
                    logger.warning("Roster fetch exceeded %d redirects", MAX_REDIRECTS)
                    return FetchTransportFailure(
                        reason=f"Too many redirects (last status {resp.status_code})",
                        status_code=resp.status_code,
                    )
                hops += 1
                resp = await self._send(resp.next_request)
        except httpx.HTTPError as exc:
            logger.warning("Roster fetch failed: %s", exc)
            return FetchTransportFailure(reason=f"{type(exc).__name__}: {exc}")

        if not resp.is_success:
            logger.warning("Roster fetch returned HTTP %d", resp.status_code)
            return FetchTransportFailure(
                reason=f"Failed to fetch roster, status code: {resp.status_code}",
                status_code=resp.status_code,
            )

        body = resp.text
        if is_unauthenticated_body(body):
            logger.warning("Roster page reports the session is not authenticated")
            return FetchUnauthenticated(status_code=resp.status_code)

        return FetchSuccess(html=body)
