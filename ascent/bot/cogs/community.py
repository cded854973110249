"""
ascent.bot.cogs.community — Community Activity Listener
========================================================

Turns gateway events from a project's linked community into inbound
events:

* ``on_message``      → :class:`MessageArrived`
* ``on_member_join`` / ``on_member_remove`` → :class:`MemberJoined`
  (carries the current member count)
* ``on_guild_join``   → :class:`AutomationConfirmed`

Guilds that are not linked to a project are ignored.  A half-hourly
loop refreshes member counts for every linked guild, and ``!progress``
shows the checklist for the current level.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from ascent.database.engine import run_db
from ascent.engine.events import (
    Attachment,
    AutomationConfirmed,
    MemberJoined,
    MessageArrived,
)
from ascent.engine.gates import describe_requirements
from ascent.errors import AscentError
from ascent.services import metrics_store

if TYPE_CHECKING:
    from ascent.bot.core import AscentBot

logger = logging.getLogger(__name__)


def _member_count(guild: discord.Guild) -> int:
    """Human members if the member cache is populated, else the gateway count."""
    if guild.members:
        return sum(1 for m in guild.members if not m.bot)
    return guild.member_count or 0


class Community(commands.Cog, name="Community"):
    """Feeds community activity into the progression pipeline."""

    def __init__(self, bot: AscentBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self._sync_member_counts.start()

    async def cog_unload(self) -> None:
        self._sync_member_counts.cancel()

    async def _project_for(self, guild: discord.Guild) -> str | None:
        return await run_db(metrics_store.project_for_community, self.bot.engine, str(guild.id))

    def build_message_event(self, project_id: str, message: discord.Message) -> MessageArrived:
        return MessageArrived(
            project_id=project_id,
            community_id=str(message.guild.id),
            author_id=str(message.author.id),
            message_id=str(message.id),
            text=message.content or "",
            attachments=tuple(
                Attachment(name=a.filename, size=a.size) for a in message.attachments
            ),
        )

    # -------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        if message.content.startswith(self.bot.cfg.bot_prefix):
            return
        try:
            project_id = await self._project_for(message.guild)
            if project_id is None:
                return
            result = await self.bot.handle_event(self.build_message_event(project_id, message))
            if result.classification is not None:
                logger.debug(
                    "Message %s → %s", message.id, result.classification.counts,
                )
        except Exception:
            logger.exception(
                "Error processing message %s from user %s", message.id, message.author.id,
            )

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        await self._refresh_member_count(member.guild)

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        await self._refresh_member_count(member.guild)

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        try:
            project_id = await self._project_for(guild)
            if project_id is None:
                logger.warning(
                    "Joined guild %s (%s) but no project is linked to it", guild.name, guild.id,
                )
                return
            await self.bot.handle_event(AutomationConfirmed(
                project_id=project_id,
                community_id=str(guild.id),
                member_count=_member_count(guild),
            ))
            logger.info("Bot confirmed in %s for project %s", guild.name, project_id)
        except Exception:
            logger.exception("Error processing guild join for %s", guild.id)

    async def _refresh_member_count(self, guild: discord.Guild) -> None:
        try:
            project_id = await self._project_for(guild)
            if project_id is None:
                return
            await self.bot.handle_event(MemberJoined(
                project_id=project_id,
                community_id=str(guild.id),
                new_member_count=_member_count(guild),
            ))
        except Exception:
            logger.exception("Error refreshing member count for guild %s", guild.id)

    @tasks.loop(minutes=30)
    async def _sync_member_counts(self) -> None:
        for guild in self.bot.guilds:
            await self._refresh_member_count(guild)

    @_sync_member_counts.before_loop
    async def _before_sync(self) -> None:
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    @commands.command(name="progress")
    @commands.guild_only()
    async def progress(self, ctx: commands.Context) -> None:
        """Show what this community's project needs for its next level."""
        try:
            project_id = await self._project_for(ctx.guild)
            if project_id is None:
                await ctx.send("This server isn't linked to a project yet.")
                return
            snapshot = await run_db(metrics_store.load_snapshot, self.bot.engine, project_id)
        except AscentError as exc:
            logger.warning("Progress lookup failed for guild %s: %s", ctx.guild.id, exc)
            await ctx.send("Progress is unavailable right now. Try again shortly.")
            return
        await ctx.send(describe_requirements(snapshot.level, snapshot, self.bot.cache))


async def setup(bot: AscentBot) -> None:
    await bot.add_cog(Community(bot))
