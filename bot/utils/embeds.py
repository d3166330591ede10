from __future__ import annotations

from datetime import UTC, datetime

import discord

from state.models import TicketCategory, TicketRecord
from utils.constants import COLOR_PANEL
from utils.time import format_local


def make_embed(
    title: str,
    description: str,
    color: discord.Color | int | None = None,
    footer: str | None = None,
) -> discord.Embed:
    resolved_color = color if color is not None else discord.Color.blurple()
    embed = discord.Embed(
        title=title,
        description=description,
        color=resolved_color,
        timestamp=datetime.now(UTC),
    )
    if footer:
        embed.set_footer(text=footer)
    return embed


def success_embed(message: str) -> discord.Embed:
    return make_embed(title="Success", description=message, color=discord.Color.green())


def error_embed(message: str) -> discord.Embed:
    return make_embed(title="Error", description=message, color=discord.Color.red())


def _guild_icon(guild: discord.Guild) -> str | None:
    return guild.icon.with_size(128).url if guild.icon else None


def panel_embed(guild: discord.Guild, banner_url: str | None = None) -> discord.Embed:
    embed = make_embed(
        title="Open a Ticket",
        description=(
            "Select a category from the menu below to open a private support ticket. "
            "Our staff will respond as soon as possible."
        ),
        color=COLOR_PANEL,
        footer="Support • Select a category to start",
    )
    embed.set_author(name=f"{guild.name} • Support", icon_url=_guild_icon(guild))
    embed.add_field(
        name="How to create a ticket",
        value="`1.` Choose the correct category\n`2.` Answer follow-up questions (if any)\n`3.` Wait for staff to respond",
        inline=False,
    )
    embed.add_field(
        name="Rules",
        value="Don't open multiple tickets for the same issue. Abuse may lead to punishment.",
        inline=False,
    )
    if banner_url:
        embed.set_image(url=banner_url)
    return embed


def ticket_header_embed(ticket_name: str, opener_id: int, category: TicketCategory) -> discord.Embed:
    embed = make_embed(
        title=f"#{ticket_name}",
        description=f"<@{opener_id}> has created a ticket under **{category}**.",
        color=COLOR_PANEL,
    )
    embed.add_field(name="Opened by", value=f"<@{opener_id}>", inline=True)
    embed.add_field(name="Category", value=str(category), inline=True)
    return embed


def closed_ticket_embed(
    guild_name: str,
    record: TicketRecord,
    closed_by_id: int | None,
    reason: str | None,
) -> discord.Embed:
    embed = discord.Embed(title="Ticket Closed", color=COLOR_PANEL, timestamp=datetime.now(UTC))
    embed.set_author(name=guild_name)
    embed.add_field(name="🔢 Ticket ID", value=str(record.ticket_number), inline=True)
    embed.add_field(name="✅ Opened By", value=f"<@{record.opener_id}>", inline=True)
    embed.add_field(name="🛑 Closed By", value=f"<@{closed_by_id}>" if closed_by_id else "Unknown", inline=True)
    embed.add_field(
        name="🧰 Claimed By",
        value=f"<@{record.claimed_by_id}>" if record.claimed_by_id else "Not claimed",
        inline=True,
    )
    embed.add_field(name="⏰ Open Time", value=format_local(record.opened_at), inline=True)
    embed.add_field(name="📝 Reason", value=reason or "No reason provided", inline=False)
    return embed


def transcript_link_view(transcript_url: str | None) -> discord.ui.View | None:
    if not transcript_url:
        return None
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(label="View Online Transcript", style=discord.ButtonStyle.link, url=transcript_url)
    )
    return view
