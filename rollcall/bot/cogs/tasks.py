"""
rollcall.bot.cogs.tasks — Periodic Roster Sync
===============================================

Re-scrapes the roster every ``sync_interval_minutes`` (default 30) on a
``discord.ext.tasks`` loop.  The first scheduled run waits one interval,
since startup has just completed a full sync.

Ticks never overlap: ``tasks.loop`` awaits each iteration, and
:meth:`RosterSync.tick` skips if a pass is still running.  Failures are
logged and the tick is dropped; the next one retries from scratch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from rollcall.constants import ROSTER_SYNC_TASK

if TYPE_CHECKING:
    from rollcall.bot.core import RollcallBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for the scheduled roster sync."""

    def __init__(self, bot: RollcallBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start the loop when the cog is loaded."""
        self.roster_sync_loop.change_interval(minutes=self.bot.cfg.sync_interval_minutes)
        self.roster_sync_loop.start()

    async def cog_unload(self) -> None:
        """Cancel the loop on unload."""
        self.roster_sync_loop.cancel()

    # -------------------------------------------------------------------
    # Roster sync — runs every sync_interval_minutes
    # -------------------------------------------------------------------
    @tasks.loop(minutes=30)
    async def roster_sync_loop(self):
        """Scrape the roster and reconcile memberships."""
        try:
            outcome = await self.bot.roster_sync.tick()
        except Exception:
            logger.exception("Roster sync task failed", extra={"task": ROSTER_SYNC_TASK})
            return

        if outcome.reconciled:
            logger.info(
                "Roster sync complete: inserted=%d flagged=%d deleted=%d skipped_rows=%d",
                outcome.result.inserted, outcome.result.flagged,
                outcome.result.deleted, outcome.ledger.rows_skipped,
            )

    @roster_sync_loop.before_loop
    async def _wait_roster_sync(self):
        await self.bot.wait_until_ready()
        await asyncio.sleep(self.bot.cfg.sync_interval_minutes * 60)


async def setup(bot: RollcallBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
