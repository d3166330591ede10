from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.config import AppConfig
from core.errors import handle_prefix_command_error
from core.extensions import load_extensions
from services.audit import AuditWebhook
from services.ticket_service import TicketService, TicketServiceDeps
from services.transcript_service import TranscriptService
from state.registry import TicketRegistry
from state.settings import SettingsStore
from views.ticket_controls import TicketControlsView
from views.ticket_panel import TicketPanelView

LOGGER = logging.getLogger(__name__)


class TicketBot(commands.Bot):
    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True
        intents.dm_messages = True

        super().__init__(
            command_prefix=config.discord.prefix,
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(
                everyone=config.discord.allowed_mentions_everyone,
                roles=True,
                users=True,
                replied_user=False,
            ),
            help_command=None,
        )
        self.config = config
        self.registry = TicketRegistry()
        self.settings = SettingsStore(config.defaults)
        self.audit = AuditWebhook(config.webhook_log)
        self.transcript_service = TranscriptService(config.tickets)
        self.ticket_service = TicketService(
            config,
            TicketServiceDeps(
                registry=self.registry,
                transcripts=self.transcript_service,
                client=self,
                audit=self.audit,
            ),
        )

    async def setup_hook(self) -> None:
        # persistent components keep working on panels and tickets posted before a restart
        self.add_view(TicketPanelView())
        self.add_view(TicketControlsView())
        loaded = await load_extensions(self, self.config.enabled_extensions)
        missing = sorted(set(self.config.enabled_extensions) - set(loaded))
        if missing:
            LOGGER.warning("Running without extensions: %s", ", ".join(missing))

    async def close(self) -> None:
        await self.audit.drain()
        await super().close()

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity_type = self.config.discord.activity_type.lower()
        if activity_type == "playing":
            activity = discord.Game(name=self.config.discord.status_text)
        elif activity_type == "listening":
            activity = discord.Activity(
                type=discord.ActivityType.listening, name=self.config.discord.status_text
            )
        else:
            activity = discord.Activity(
                type=discord.ActivityType.watching, name=self.config.discord.status_text
            )
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def on_command_error(self, ctx: commands.Context[commands.Bot], error: commands.CommandError) -> None:
        if ctx.command and ctx.command.has_error_handler():
            return
        await handle_prefix_command_error(ctx, error)
