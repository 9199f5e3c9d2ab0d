"""
rollcall.config — YAML + Environment Configuration Loader
==========================================================

Reads ``config.yaml`` for infrastructure settings (roster URL, schedule,
role names) and the environment for secrets (Discord token, seed session
cookie).  The result is one immutable :class:`RollcallConfig` built at
startup and handed to every component that needs it; nothing below this
module reads the environment on its own.

Usage::

    from rollcall.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.roster_url)
    print(cfg.sync_interval_minutes)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_DATABASE_URL = "sqlite:///data/rollcall.sqlite"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RollcallConfig:
    """Immutable configuration loaded from ``config.yaml`` and the environment."""

    # Roster source
    roster_url: str
    initial_session_cookie: str = field(repr=False)

    # Discord
    discord_token: str = field(repr=False)
    guild_id: int

    # Roles / registration
    member_role_name: str = "Member"
    privileged_role_name: str = "Committee"
    external_id_length: int = 8
    membership_purchase_url: str | None = None

    # Storage / scheduling
    database_url: str = DEFAULT_DATABASE_URL
    sync_interval_minutes: float = 30.0
    request_timeout_seconds: float = 20.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> RollcallConfig:
    """Read *path* plus the environment and return a :class:`RollcallConfig`.

    Secrets come from the environment (load ``.env`` first):

    * ``DISCORD_TOKEN`` — bot token.
    * ``INITIAL_SESSION_COOKIE`` — operator-supplied seed cookie value.
    * ``DATABASE_URL`` — optional override of ``database_url``.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    RuntimeError
        If a required secret is missing from the environment.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return RollcallConfig(
        roster_url=raw["roster_url"],
        initial_session_cookie=_require_env("INITIAL_SESSION_COOKIE"),
        discord_token=_require_env("DISCORD_TOKEN"),
        guild_id=int(raw["guild_id"]),
        member_role_name=raw.get("member_role_name", "Member"),
        privileged_role_name=raw.get("privileged_role_name", "Committee"),
        external_id_length=int(raw.get("external_id_length", 8)),
        membership_purchase_url=raw.get("membership_purchase_url") or None,
        database_url=(
            os.getenv("DATABASE_URL") or raw.get("database_url") or DEFAULT_DATABASE_URL
        ),
        sync_interval_minutes=float(raw.get("sync_interval_minutes", 30)),
        request_timeout_seconds=float(raw.get("request_timeout_seconds", 20)),
    )


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"{name} is not set.  "
            "Copy .env.example → .env and fill it in."
        )
    return value
