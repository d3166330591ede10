from __future__ import annotations

from typing import TYPE_CHECKING, cast

import discord

from core.errors import NotATicket, ValidationError, handle_interaction_error
from state.settings import GuildSettings
from utils.constants import (
    CLOSE_REASON_MAX_LENGTH,
    EMOJI_CLAIM,
    EMOJI_DELETE,
    EMOJI_LOCK,
    EMOJI_TRANSCRIPT,
    EMOJI_UNLOCK,
    TicketAction,
)

if TYPE_CHECKING:
    from core.bot import TicketBot
    from services.ticket_service import TicketService


def _ticket_context(
    interaction: discord.Interaction,
) -> tuple[discord.TextChannel, discord.Member, GuildSettings, TicketService]:
    if not interaction.guild or not isinstance(interaction.user, discord.Member):
        raise ValidationError("Guild context is required.")
    if not isinstance(interaction.channel, discord.TextChannel):
        raise NotATicket()
    bot = cast("TicketBot", interaction.client)
    return interaction.channel, interaction.user, bot.settings.get(interaction.guild.id), bot.ticket_service


class CloseReasonModal(discord.ui.Modal, title="Reason for closing ticket"):
    reason = discord.ui.TextInput(
        label="Reason (optional)",
        placeholder="E.g. Issue resolved / Duplicate / Abusive behavior",
        style=discord.TextStyle.long,
        min_length=0,
        max_length=CLOSE_REASON_MAX_LENGTH,
        required=False,
    )

    def __init__(self, with_transcript: bool) -> None:
        custom_id = (
            TicketAction.CLOSE_MODAL_WITH_TRANSCRIPT if with_transcript else TicketAction.CLOSE_MODAL
        )
        # a reason may take a while to type; the modal must not expire under the actor
        super().__init__(timeout=None, custom_id=custom_id.value)
        self.with_transcript = with_transcript

    async def on_submit(self, interaction: discord.Interaction) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        service.begin_close(channel, member, settings)
        # teardown can outlast the interaction deadline, so answer first
        await interaction.response.send_message("Closing ticket... processing.", ephemeral=True)
        outcome = await service.close_ticket(
            channel,
            member,
            settings,
            reason=self.reason.value,
            with_transcript=self.with_transcript,
        )
        deleted = outcome.step("delete_channel")
        if deleted is not None and not deleted.ok:
            await interaction.followup.send(
                "Ticket closed, but the channel could not be deleted. Please delete it manually.",
                ephemeral=True,
            )

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        await handle_interaction_error(interaction, error)


class TicketControlsView(discord.ui.View):
    def __init__(self, locked: bool = False, claimed: bool = False) -> None:
        super().__init__(timeout=None)
        self.lock_button.disabled = locked
        self.unlock_button.disabled = not locked
        self.claim_button.disabled = claimed
        self.claim_button.label = "Claimed" if claimed else "Claim"

    @discord.ui.button(
        label="Lock",
        style=discord.ButtonStyle.primary,
        emoji=EMOJI_LOCK,
        custom_id=TicketAction.LOCK.value,
        row=0,
    )
    async def lock_button(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        record = await service.lock_ticket(channel, member, settings)
        await interaction.response.edit_message(view=TicketControlsView(record.locked, record.claimed))

    @discord.ui.button(
        label="Unlock",
        style=discord.ButtonStyle.secondary,
        emoji=EMOJI_UNLOCK,
        custom_id=TicketAction.UNLOCK.value,
        row=0,
    )
    async def unlock_button(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        record = await service.unlock_ticket(channel, member, settings)
        await interaction.response.edit_message(view=TicketControlsView(record.locked, record.claimed))

    @discord.ui.button(
        label="Claim",
        style=discord.ButtonStyle.success,
        emoji=EMOJI_CLAIM,
        custom_id=TicketAction.CLAIM.value,
        row=0,
    )
    async def claim_button(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        record = await service.claim_ticket(channel, member, settings)
        await interaction.response.edit_message(view=TicketControlsView(record.locked, record.claimed))

    @discord.ui.button(
        label="Delete",
        style=discord.ButtonStyle.danger,
        emoji=EMOJI_DELETE,
        custom_id=TicketAction.DELETE.value,
        row=1,
    )
    async def delete_button(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        service.begin_close(channel, member, settings)
        await interaction.response.send_modal(CloseReasonModal(with_transcript=False))

    @discord.ui.button(
        label="Delete & Transcript",
        style=discord.ButtonStyle.danger,
        emoji=EMOJI_TRANSCRIPT,
        custom_id=TicketAction.DELETE_WITH_TRANSCRIPT.value,
        row=1,
    )
    async def delete_transcript_button(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel, member, settings, service = _ticket_context(interaction)
        service.begin_close(channel, member, settings)
        await interaction.response.send_modal(CloseReasonModal(with_transcript=True))

    async def on_error(
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item[discord.ui.View]
    ) -> None:
        await handle_interaction_error(interaction, error)
