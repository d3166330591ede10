from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.bot import TicketBot
from core.errors import Forbidden
from services.ticket_service import is_staff
from utils.embeds import make_embed, panel_embed, success_embed
from utils.time import format_local
from views.ticket_panel import TicketPanelView

LOGGER = logging.getLogger(__name__)


class TicketsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    @commands.command(name="ticket", help="Post the ticket panel in this channel.")
    @commands.guild_only()
    async def ticket(self, ctx: commands.Context[TicketBot]) -> None:
        settings = self.bot.settings.get(ctx.guild.id)  # type: ignore[union-attr]
        await ctx.send(
            embed=panel_embed(ctx.guild, settings.banner_url),  # type: ignore[arg-type]
            view=TicketPanelView(),
        )
        LOGGER.info("Ticket panel posted in channel %s by %s", ctx.channel.id, ctx.author.id)

    @commands.command(name="tickets", help="List open tickets in this server.")
    @commands.guild_only()
    async def tickets(self, ctx: commands.Context[TicketBot]) -> None:
        settings = self.bot.settings.get(ctx.guild.id)  # type: ignore[union-attr]
        if not isinstance(ctx.author, discord.Member) or not is_staff(ctx.author, settings):
            raise Forbidden("Only staff can list tickets.")
        records = self.bot.ticket_service.list_open_tickets(ctx.guild.id)  # type: ignore[union-attr]
        if not records:
            await ctx.reply(embed=success_embed("No open tickets found."), mention_author=False)
            return
        lines = [
            f"`#{record.ticket_number}` <#{record.channel_id}> | {record.category} | <@{record.opener_id}>"
            f" | {'locked' if record.locked else 'open'}"
            f" | {f'claimed by <@{record.claimed_by_id}>' if record.claimed else 'unclaimed'}"
            f" | {format_local(record.opened_at)}"
            for record in records
        ]
        await ctx.reply(
            embed=make_embed("Open Tickets", "\n".join(lines[:25]), color=discord.Color.blurple()),
            mention_author=False,
        )


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(TicketsCog(bot))
