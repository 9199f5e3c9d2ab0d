"""
rollcall.constants — Shared Constants
======================================

Single source of truth for the strings that tie Rollcall to the roster
site's markup and login scheme.  If the site changes, this is the file to
edit.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Roster site authentication
# ---------------------------------------------------------------------------
# Cookie the site uses for logged-in sessions.  The operator-provided seed
# value is stored under this name.
SESSION_COOKIE_NAME = "su_session"

# Body text shown instead of the roster when the session has expired.  The
# site still answers 200, so this is the only expiry signal available.
NOT_AUTHENTICATED_MARKER = "Sorry you're not authenticated"

# ---------------------------------------------------------------------------
# Roster markup
# ---------------------------------------------------------------------------
ROSTER_ROW_SELECTOR = "#group-member-list-datatable > tbody > tr"

# ---------------------------------------------------------------------------
# Task names (used in log ``extra``)
# ---------------------------------------------------------------------------
ROSTER_SYNC_TASK = "roster_sync"
