"""
rollcall.bot.core — Bot Instance & Cog Loader
==============================================

Defines :class:`RollcallBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog can reach them via ``self.bot``.
2. Builds the roster sync pipeline (session store → fetcher → sync) and
   runs the startup bootstrap **before** connecting to Discord.  If the
   roster can't be read with any known cookie, startup fails.
3. Loads the Cogs listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree to the configured guild.
"""

from __future__ import annotations

import logging

import discord
from discord.ext import commands
from sqlalchemy import Engine

from rollcall.config import RollcallConfig
from rollcall.services.roster_fetcher import RosterFetcher
from rollcall.services.session_store import SessionStore
from rollcall.services.sync_service import RosterSync

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "rollcall.bot.cogs.membership",
    "rollcall.bot.cogs.tasks",
]


class RollcallBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`RollcallConfig`.
    engine:
        A SQLAlchemy :class:`Engine` for the membership store.
    """

    def __init__(self, cfg: RollcallConfig, engine: Engine) -> None:
        # GUILD_MEMBERS is privileged (enable in the Developer Portal); /prune
        # needs the full member list.
        intents = discord.Intents.default()
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix="rollcall!",
            intents=intents,
            description="Roster-backed membership roles",
        )

        self.cfg = cfg
        self.engine = engine
        self.session_store = SessionStore(engine)

        # Built in setup_hook so the HTTP client lives on the bot's loop
        self.fetcher: RosterFetcher | None = None
        self.roster_sync: RosterSync | None = None

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Bootstrap the roster, then load every Cog extension.

        :class:`~rollcall.errors.BootstrapFailed` propagates and stops the
        bot; a broken Cog is logged and skipped.
        """
        self.fetcher = RosterFetcher(
            self.session_store, timeout=self.cfg.request_timeout_seconds,
        )
        self.roster_sync = RosterSync(
            engine=self.engine,
            store=self.session_store,
            fetcher=self.fetcher,
            roster_url=self.cfg.roster_url,
            seed_cookie=self.cfg.initial_session_cookie,
        )
        result = await self.roster_sync.bootstrap()
        logger.info(
            "Roster bootstrap complete: inserted=%d flagged=%d deleted=%d",
            result.inserted, result.flagged, result.deleted,
        )

        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        guild = discord.Object(id=self.cfg.guild_id)
        self.tree.copy_global_to(guild=guild)
        synced = await self.tree.sync(guild=guild)
        logger.info("Synced %d commands to guild %s", len(synced), self.cfg.guild_id)

    async def close(self) -> None:
        """Graceful shutdown — stop the sync loop and close the HTTP client."""
        logger.info("Bot shutting down…")
        await super().close()
        if self.fetcher is not None:
            await self.fetcher.aclose()
