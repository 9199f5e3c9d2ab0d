"""
rollcall.services.session_store — Persisted Session Cookie
===========================================================

The roster site has no token refresh: it simply hands out a new
``Set-Cookie`` now and then, and the only way to stay logged in is to
keep whatever it sent last.  :class:`SessionStore` keeps exactly one
cookie per origin in the ``session_cookies`` table.

The fetcher depends only on the two-method capability below, so tests
can swap in any object with ``get``/``set``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol
from urllib.parse import urlsplit

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from rollcall.database.engine import get_session
from rollcall.database.models import SessionCookie
from rollcall.errors import ReconciliationUnavailable

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class CookieProvider(Protocol):
    """What the fetcher needs from a cookie store."""

    def get(self, origin: str) -> tuple[str, str] | None: ...

    def set(self, origin: str, name: str, value: str) -> None: ...


def origin_of(url: str) -> str:
    """Normalise *url* to ``scheme://host[:port]``.

    Default ports are dropped so ``https://x.org`` and
    ``https://x.org:443/members`` share one cookie.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if not scheme or not host:
        raise ValueError(f"Not an absolute URL: {url!r}")
    port = parts.port
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def parse_set_cookie(header: str) -> tuple[str, str] | None:
    """Return ``(name, value)`` from a ``Set-Cookie`` header.

    Attributes after the first ``;`` (path, expiry, flags) are discarded.
    Returns ``None`` for headers without a ``name=value`` pair.
    """
    pair = header.split(";", 1)[0].strip()
    if "=" not in pair:
        return None
    name, value = pair.split("=", 1)
    name = name.strip()
    if not name:
        return None
    return name, value.strip()


class SessionStore:
    """SQL-backed store of one session cookie per origin.

    Every ``get``/``set`` runs in its own transaction under a process-wide
    lock, so two ``run_db`` threads never see half of a write.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = threading.Lock()

    # -------------------------------------------------------------------
    # Core capability
    # -------------------------------------------------------------------
    def get(self, origin: str) -> tuple[str, str] | None:
        """Return ``(name, value)`` stored for *origin*, or ``None``.

        Raises :class:`ReconciliationUnavailable` if the store can't be read.
        """
        try:
            with self._lock, get_session(self.engine) as session:
                row = session.get(SessionCookie, origin)
                if row is None:
                    return None
                return row.name, row.value
        except SQLAlchemyError as exc:
            raise ReconciliationUnavailable(f"Session store unavailable: {exc}") from exc

    def set(self, origin: str, name: str, value: str) -> None:
        """Upsert the cookie for *origin*; the last write wins."""
        try:
            with self._lock, get_session(self.engine) as session:
                row = session.get(SessionCookie, origin)
                if row is None:
                    session.add(SessionCookie(origin=origin, name=name, value=value))
                else:
                    row.name = name
                    row.value = value
        except SQLAlchemyError as exc:
            raise ReconciliationUnavailable(f"Session store unavailable: {exc}") from exc
        logger.info("Stored session cookie %s for %s", name, origin)

    # -------------------------------------------------------------------
    # URL-level helpers used by the fetcher
    # -------------------------------------------------------------------
    def get_value(self, url: str) -> str | None:
        stored = self.get(origin_of(url))
        return stored[1] if stored else None

    def seed(self, url: str, name: str, value: str) -> None:
        """Overwrite the cookie for *url*'s origin with an operator value."""
        self.set(origin_of(url), name, value)


def cookie_header(store: CookieProvider, url: str) -> str | None:
    """Rebuild the ``Cookie`` request header for *url* from *store*."""
    stored = store.get(origin_of(url))
    if stored is None:
        return None
    name, value = stored
    return f"{name}={value}"


def store_set_cookie_headers(store: CookieProvider, url: str, headers: Iterable[str]) -> int:
    """Write every ``Set-Cookie`` header in *headers* back to *store*.

    Returns the number of cookies stored.  With no headers the store is
    left untouched.
    """
    origin = origin_of(url)
    stored = 0
    for header in headers:
        parsed = parse_set_cookie(header)
        if parsed is None:
            logger.warning("Ignoring malformed Set-Cookie header from %s", origin)
            continue
        store.set(origin, *parsed)
        stored += 1
    return stored
