"""
ascent.bot.core — Bot Instance & Cog Loader
============================================

Defines :class:`AscentBot`, a ``commands.Bot`` subclass that carries the
shared config, DB engine, settings cache and the event pipeline, so every
cog reaches them through ``self.bot``.

The bot is one event source among several: it turns gateway events into
inbound events and hands them to the same :class:`EventNormalizer` the
API uses.  Level-up announcements for a project are posted to its linked
community by a relay that follows the ``level_changes`` journal, so levels
reached through the API are announced too.
"""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands, tasks
from sqlalchemy import Engine

from ascent.config import AscentConfig
from ascent.database.engine import run_db
from ascent.engine.cache import ConfigCache
from ascent.engine.events import InboundEvent
from ascent.engine.guard import TransitionGuard
from ascent.errors import MetricsStoreUnavailable
from ascent.services import metrics_store
from ascent.services.email_service import MailgunEmailSender
from ascent.services.journal_relay import LevelChangeRelay
from ascent.services.normalizer import EventNormalizer, NormalizationResult
from ascent.services.notifications import (
    NotificationDispatcher,
    NotificationRequested,
    RenderedMessage,
)
from ascent.services.progression import ProgressionEngine

logger = logging.getLogger(__name__)

# Cog modules to load on startup
EXTENSIONS: list[str] = [
    "ascent.bot.cogs.community",
]


class AscentBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`AscentConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    cache:
        Warm :class:`ConfigCache`; reloaded every five minutes.
    """

    def __init__(self, cfg: AscentConfig, engine: Engine, cache: ConfigCache) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: message classification
        intents.members = True            # Privileged: member counts
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.app_name} progression bot",
        )

        self.cfg = cfg
        self.engine = engine
        self.cache = cache

        self.dispatcher = NotificationDispatcher(
            engine,
            email_sender=MailgunEmailSender(cfg.mail_domain, cfg.from_email),
            config=cfg,
            cache=cache,
        )
        self.relay = LevelChangeRelay(engine, config=cfg, cache=cache)
        self.relay.add_sink(self._announce_in_community)
        self.normalizer = EventNormalizer(
            engine,
            ProgressionEngine(
                engine,
                self.dispatcher,
                guard=TransitionGuard(cfg.guard_window_seconds),
                cache=cache,
            ),
            cache=cache,
        )

    async def handle_event(self, event: InboundEvent) -> NormalizationResult:
        """Run *event* through the pipeline on a worker thread."""
        return await run_db(self.normalizer.handle, event)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load every cog; one broken cog shouldn't take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)
        await run_db(self.relay.skip_to_latest)
        self._reload_cache.start()
        self._relay_journal.start()

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s) in %d guild(s)", self.user.name, self.user.id, len(self.guilds))

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        self._reload_cache.cancel()
        self._relay_journal.cancel()
        if self.dispatcher.email_sender is not None:
            self.dispatcher.email_sender.close()
        await super().close()

    @tasks.loop(minutes=5)
    async def _reload_cache(self) -> None:
        await run_db(self.cache.reload)

    @tasks.loop(seconds=5)
    async def _relay_journal(self) -> None:
        try:
            await run_db(self.relay.poll)
        except MetricsStoreUnavailable as exc:
            logger.warning("Level-change relay poll failed: %s", exc)

    @_relay_journal.before_loop
    async def _before_relay(self) -> None:
        await self.wait_until_ready()

    # -----------------------------------------------------------------------
    # Relay sink (called on a worker thread)
    # -----------------------------------------------------------------------
    def _announce_in_community(self, request: NotificationRequested, message: RenderedMessage) -> None:
        community_id = metrics_store.community_for_project(self.engine, request.project_id)
        if community_id is None:
            return
        asyncio.run_coroutine_threadsafe(
            self._post_announcement(int(community_id), message.chat), self.loop,
        )

    async def _post_announcement(self, guild_id: int, text: str) -> None:
        guild = self.get_guild(guild_id)
        if guild is None:
            logger.warning("Cannot announce level-up: guild %s not in cache", guild_id)
            return
        channel = guild.system_channel
        if channel is None:
            channel = next(
                (c for c in guild.text_channels if c.permissions_for(guild.me).send_messages),
                None,
            )
        if channel is None:
            logger.warning("No channel to announce level-up in guild %s", guild_id)
            return
        try:
            await channel.send(text)
        except discord.HTTPException:
            logger.exception("Failed to post level-up announcement in guild %s", guild_id)
