"""
Rollcall — Roster-Synced Membership Roles for Discord
=====================================================
Keeps a local membership table in step with an external, cookie-protected
roster page, and lets members claim a Discord role by proving they are on
it.

Package layout::

    rollcall/
    ├── config.py          # config.yaml + .env → RollcallConfig
    ├── constants.py       # roster markup + auth marker strings
    ├── errors.py          # sync failure taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # session_cookies, memberships
    ├── services/
    │   ├── session_store.py          # one cookie per origin
    │   ├── roster_fetcher.py         # authenticated GET + classification
    │   ├── roster_extractor.py       # HTML → RosterEntry list
    │   ├── reconciliation_service.py # roster diff → insert/flag/delete
    │   ├── membership_service.py     # store API for the commands
    │   └── sync_service.py           # bootstrap + scheduled ticks
    └── bot/
        ├── core.py        # Bot subclass, cog loader, bootstrap
        └── cogs/
            ├── tasks.py       # periodic roster sync
            └── membership.py  # /register, /unregister, /prune
"""

__version__ = "0.1.0"
