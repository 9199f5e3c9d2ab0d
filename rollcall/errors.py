"""
rollcall.errors — Sync Failure Taxonomy
========================================

Every failure the roster sync can hit, and who handles it:

- :class:`TransportFailure` — network error or non-2xx status.  Never
  retried with a different cookie; the tick is skipped.
- :class:`AuthenticationExpired` — the page loaded but says we are not
  logged in.  Triggers the seed-cookie retry at startup only.
- :class:`ReconciliationUnavailable` — the store could not be read or
  written.  Fatal for the tick, retried on the next one.
- :class:`BootstrapFailed` — neither the stored nor the seed cookie could
  read the roster.  Fatal for the whole process.

Malformed roster rows are not errors: the extractor skips them and
counts them in its ledger.
"""

from __future__ import annotations


class RollcallError(Exception):
    """Base class for every sync failure."""


class TransportFailure(RollcallError):
    """The roster request failed at the network or HTTP level."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class AuthenticationExpired(RollcallError):
    """The session cookie no longer grants access to the roster."""


class ReconciliationUnavailable(RollcallError):
    """The membership store could not be reached for this tick."""


class BootstrapFailed(RollcallError):
    """Startup could not read the roster with any known cookie."""
