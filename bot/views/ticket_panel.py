from __future__ import annotations

from typing import TYPE_CHECKING, cast

import discord

from core.errors import ValidationError, handle_interaction_error
from state.models import TicketCategory
from utils.constants import EMOJI_CLAIM, TicketAction

if TYPE_CHECKING:
    from core.bot import TicketBot

CATEGORY_OPTIONS = [
    discord.SelectOption(
        label=category.value,
        value=category.value_key,
        description=category.description,
        emoji=category.emoji,
    )
    for category in TicketCategory
]


class TicketPanelView(discord.ui.View):
    def __init__(self) -> None:
        super().__init__(timeout=None)

    @discord.ui.select(
        custom_id=TicketAction.SELECT_CATEGORY.value,
        placeholder="Choose a category to open a ticket",
        min_values=1,
        max_values=1,
        options=CATEGORY_OPTIONS,
    )
    async def select_category(self, interaction: discord.Interaction, select: discord.ui.Select) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            raise ValidationError("Guild context is required.")
        bot = cast("TicketBot", interaction.client)
        category = TicketCategory.from_select_value(select.values[0])
        await interaction.response.defer(ephemeral=True, thinking=True)
        record = await bot.ticket_service.create_ticket(
            guild=interaction.guild,
            opener=interaction.user,
            category=category,
            settings=bot.settings.get(interaction.guild.id),
        )
        await interaction.followup.send(f"{EMOJI_CLAIM} Ticket created: <#{record.channel_id}>", ephemeral=True)

    async def on_error(
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[discord.ui.View]
    ) -> None:
        await handle_interaction_error(interaction, error)
