from __future__ import annotations

import re

import discord
from discord.ext import commands

from core.bot import TicketBot
from core.errors import ValidationError
from utils.embeds import make_embed, success_embed

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class AdminCog(commands.Cog):
    """Administrator-only commands that publish new settings snapshots."""

    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    async def cog_check(self, ctx: commands.Context[TicketBot]) -> bool:
        if not ctx.guild or not isinstance(ctx.author, discord.Member):
            raise commands.NoPrivateMessage()
        if not ctx.author.guild_permissions.administrator:
            raise commands.CheckFailure("Administrator permission required.")
        return True

    @commands.command(name="ticketcategory", help="Use the parent category of the mentioned channel.")
    async def ticket_category(self, ctx: commands.Context[TicketBot], channel: discord.abc.GuildChannel) -> None:
        if channel.category_id is None:
            raise ValidationError(
                "That channel has no parent category. Put it inside a category and try again."
            )
        self.bot.settings.update(ctx.guild.id, ticket_category_id=channel.category_id)  # type: ignore[union-attr]
        await ctx.reply(
            embed=success_embed(f"Ticket parent category set to <#{channel.category_id}>."),
            mention_author=False,
        )

    @commands.command(name="setstaff", help="Set the staff role.")
    async def set_staff(self, ctx: commands.Context[TicketBot], role: discord.Role) -> None:
        self.bot.settings.update(ctx.guild.id, staff_role_id=role.id)  # type: ignore[union-attr]
        await ctx.reply(embed=success_embed(f"Staff role set to {role.mention}."), mention_author=False)

    @commands.command(name="settranscripts", help="Set the channel transcripts are uploaded to.")
    async def set_transcripts(self, ctx: commands.Context[TicketBot], channel: discord.abc.GuildChannel) -> None:
        if not isinstance(channel, discord.TextChannel):
            raise ValidationError("Transcripts channel must be a text channel.")
        self.bot.settings.update(ctx.guild.id, transcript_channel_id=channel.id)  # type: ignore[union-attr]
        await ctx.reply(embed=success_embed(f"Transcripts channel set to {channel.mention}."), mention_author=False)

    @commands.command(name="setbanner", help="Set the banner image shown on the ticket panel.")
    async def set_banner(self, ctx: commands.Context[TicketBot], url: str) -> None:
        if not _URL_PATTERN.match(url):
            raise ValidationError("Please provide a valid image URL (http/https).")
        self.bot.settings.update(ctx.guild.id, banner_url=url)  # type: ignore[union-attr]
        await ctx.reply(embed=success_embed("Panel banner image updated."), mention_author=False)

    @commands.command(name="ticketsettings", help="Show the current ticket settings.")
    async def ticket_settings(self, ctx: commands.Context[TicketBot]) -> None:
        settings = self.bot.settings.get(ctx.guild.id)  # type: ignore[union-attr]
        embed = make_embed("Ticket Settings", "Current configuration for this server.")
        embed.add_field(
            name="Staff Role",
            value=f"<@&{settings.staff_role_id}>" if settings.staff_role_id else "Not set",
            inline=True,
        )
        embed.add_field(
            name="Transcripts",
            value=f"<#{settings.transcript_channel_id}>" if settings.transcript_channel_id else "Not set",
            inline=True,
        )
        embed.add_field(
            name="Parent Category",
            value=f"<#{settings.ticket_category_id}>" if settings.ticket_category_id else "Auto",
            inline=True,
        )
        embed.add_field(name="Banner", value=settings.banner_url or "Not set", inline=False)
        await ctx.reply(embed=embed, mention_author=False)


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(AdminCog(bot))
