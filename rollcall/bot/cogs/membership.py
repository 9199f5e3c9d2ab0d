"""
rollcall.bot.cogs.membership — Member Registration Slash Commands
==================================================================

- /register   — link a Discord member to a roster id and grant the member role
- /unregister — (privileged) revoke the role and drop the link
- /prune      — (privileged) revoke the role from everyone not on the
                roster, then delete the flagged records

This cog is the only writer of ``platform_identity`` and the only place a
bound membership row is ever deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from rollcall.database.engine import run_db
from rollcall.services.membership_service import (
    BindResult,
    bind_platform_identity,
    clear_platform_identity,
    delete_membership,
    get_by_platform_identity,
    list_memberships,
)

if TYPE_CHECKING:
    from rollcall.bot.core import RollcallBot

logger = logging.getLogger(__name__)


def _role_named(guild: discord.Guild, name: str) -> discord.Role:
    role = discord.utils.get(guild.roles, name=name)
    if role is None:
        raise app_commands.AppCommandError(f"Role {name} could not be found")
    return role


def _is_privileged(bot: RollcallBot, member: discord.Member) -> bool:
    return any(r.name == bot.cfg.privileged_role_name for r in member.roles)


def is_privileged():
    """Decorator that checks if the user has the configured privileged role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: RollcallBot = interaction.client  # type: ignore[assignment]
        if not isinstance(interaction.user, discord.Member):
            return False
        return _is_privileged(bot, interaction.user)
    return app_commands.check(predicate)


class Membership(commands.Cog, name="Membership"):
    """Roster-backed member role management."""

    def __init__(self, bot: RollcallBot) -> None:
        self.bot = bot

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "❌ Only privileged users can run this command."
        else:
            logger.error("Command %s failed: %s", interaction.command, error)
            message = f"❌ {error}"
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    # -------------------------------------------------------------------
    # /register
    # -------------------------------------------------------------------
    @app_commands.command(name="register", description="Verify your membership.")
    @app_commands.describe(
        external_id="Student ID",
        member="Discord member to perform registration on, or if empty, yourself",
    )
    @app_commands.guild_only()
    async def register(
        self,
        interaction: discord.Interaction,
        external_id: app_commands.Range[int, 0, 2**53],
        member: discord.Member | None = None,
    ) -> None:
        """Bind *member* (default: the caller) to a roster id."""
        author = interaction.user
        assert isinstance(author, discord.Member)  # guild_only
        target = member or author

        if target.id != author.id and not _is_privileged(self.bot, author):
            await interaction.response.send_message(
                "You don't have the required permissions to target a user",
                ephemeral=True,
            )
            return

        if len(str(external_id)) != self.bot.cfg.external_id_length:
            await interaction.response.send_message("I don't think that's a student id!")
            return

        # The role must exist before any binding is written
        member_role = _role_named(target.guild, self.bot.cfg.member_role_name)

        await interaction.response.send_message(
            f"Ok, I'm verifying membership for {target.display_name} :rocket:"
        )

        existing = await run_db(get_by_platform_identity, self.bot.engine, target.id)
        if existing is not None and existing.external_id != external_id:
            await interaction.followup.send(
                f"Target user ({target.display_name}) is already registered, "
                "use /unregister to remove them or @ a committee member"
            )
            return

        result, record = await run_db(
            bind_platform_identity, self.bot.engine, external_id, target.id,
        )

        if result is BindResult.NOT_FOUND:
            purchase = ""
            if self.bot.cfg.membership_purchase_url:
                purchase = f"You can grab a membership at {self.bot.cfg.membership_purchase_url}\n"
            await interaction.followup.send(
                "I can't find that student id in my database :flushed:\n"
                f"{purchase}If you've purchased a membership recently, "
                "wait up to 30 minutes and try again."
            )
            return
        if result is BindResult.TAKEN:
            await interaction.followup.send(
                "Somebody else has already registered with that student id :eyes:\n"
                "If you think this is a mistake, please @ someone on Committee."
            )
            return
        if result is BindResult.IDENTITY_IN_USE:
            await interaction.followup.send(
                f"Target user ({target.display_name}) is already registered, "
                "use /unregister to remove them or @ a committee member"
            )
            return

        await target.add_roles(member_role, reason="Rollcall: verified membership")

        try:
            await target.edit(nick=record.display_name, reason="Rollcall: roster name")
        except discord.HTTPException:
            await interaction.followup.send(
                f"Done! Please change your nickname to: {record.display_name}"
            )
        else:
            await interaction.followup.send(f"Done! Welcome, {record.display_name} :tada:")
            logger.info("Registered user %s with id %d", target.name, external_id)

    # -------------------------------------------------------------------
    # /unregister
    # -------------------------------------------------------------------
    @app_commands.command(name="unregister", description="Unregister a member.")
    @app_commands.describe(member="The discord member to unregister")
    @app_commands.guild_only()
    @is_privileged()
    async def unregister(
        self, interaction: discord.Interaction, member: discord.Member,
    ) -> None:
        """Revoke the member role and clear the roster binding."""
        await member.remove_roles(
            _role_named(member.guild, self.bot.cfg.member_role_name),
            reason=f"Rollcall: unregistered by {interaction.user}",
        )
        await run_db(clear_platform_identity, self.bot.engine, member.id)
        await interaction.response.send_message("User unregistered")

    # -------------------------------------------------------------------
    # /prune
    # -------------------------------------------------------------------
    @app_commands.command(
        name="prune",
        description="Remove the member role from everyone no longer on the roster.",
    )
    @app_commands.guild_only()
    @is_privileged()
    async def prune(self, interaction: discord.Interaction) -> None:
        """Offboard flagged and unregistered members."""
        guild = interaction.guild
        assert guild is not None  # guild_only
        logger.info("Prune called by %s", interaction.user.display_name)

        await interaction.response.defer(thinking=True)

        member_role = _role_named(guild, self.bot.cfg.member_role_name)
        bound = await run_db(list_memberships, self.bot.engine, bound_only=True)
        by_user = {m.platform_identity: m for m in bound}

        members = [m async for m in guild.fetch_members(limit=None)]
        if guild.member_count is not None and len(members) != guild.member_count:
            await interaction.followup.send(
                f"❌ Failed to retrieve all users; Expected: {guild.member_count}, "
                f"Actual: {len(members)}"
            )
            return

        count = 0
        for member in members:
            if member_role not in member.roles:
                continue
            record = by_user.get(member.id)
            if record is None or record.eligible_for_removal:
                await member.remove_roles(member_role, reason="Rollcall: prune")
                count += 1
                logger.info("Removing roles from %s", member.name)

        deleted = 0
        for record in bound:
            if record.eligible_for_removal:
                if await run_db(
                    delete_membership, self.bot.engine, record.external_id,
                    only_if_flagged=True,
                ):
                    deleted += 1

        await interaction.followup.send(
            f"Checked {len(members)} users. Pruned {count} users, "
            f"removed {deleted} lapsed memberships."
        )


async def setup(bot: RollcallBot) -> None:
    await bot.add_cog(Membership(bot))
