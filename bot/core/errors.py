from __future__ import annotations

import logging

import aiohttp
import discord
from discord.ext import commands

from utils.embeds import error_embed

LOGGER = logging.getLogger(__name__)


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.user_message = message
        super().__init__(self.user_message)


class AlreadyHasTicket(BotError):
    user_message = "You already have an open ticket."


class DuplicateTicket(BotError):
    user_message = "A ticket for this user already exists."


class NotATicket(BotError):
    user_message = "This channel is not recognized as a ticket."


class Forbidden(BotError):
    user_message = "Only staff can manage tickets."


class NoOp(BotError):
    user_message = "The ticket is already in that state."


class AlreadyClaimed(BotError):
    user_message = "This ticket is already claimed."


class CategoryUnavailable(BotError):
    user_message = "Failed to create/find Tickets category. Ask an admin to check permissions."


class ExternalCallFailed(BotError):
    user_message = "An error occurred while processing that action."

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.operation}: {self.user_message}"


class ValidationError(BotError):
    user_message = "The provided input is not valid."


# Failures of a Discord call that leave the bot's own state intact. discord.py
# re-raises connection resets and timeouts unwrapped once its retries run out.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    discord.DiscordException,
    aiohttp.ClientError,
    OSError,
    TimeoutError,
)


async def send_error_response(
    target: commands.Context[commands.Bot] | discord.Interaction, message: str
) -> None:
    embed = error_embed(message)
    if isinstance(target, commands.Context):
        await target.reply(embed=embed, mention_author=False)
        return
    if target.response.is_done():
        await target.followup.send(embed=embed, ephemeral=True)
    else:
        await target.response.send_message(embed=embed, ephemeral=True)


def _humanize_command_error(error: Exception) -> str:
    original = getattr(error, "original", error)
    if isinstance(original, BotError):
        return original.user_message
    if isinstance(error, commands.MissingPermissions):
        return "You are missing required Discord permissions."
    if isinstance(error, commands.NoPrivateMessage):
        return "This command can only be used inside a server."
    if isinstance(error, commands.CheckFailure):
        return "You are not authorized for this command."
    if isinstance(error, commands.ChannelNotFound):
        return "Please mention a valid channel."
    if isinstance(error, commands.RoleNotFound):
        return "Please mention a valid role."
    if isinstance(error, commands.MissingRequiredArgument):
        return f"Missing argument: `{error.param.name}`."
    if isinstance(error, commands.BadArgument):
        return "Command argument was invalid."
    return "An unexpected command error occurred."


async def handle_prefix_command_error(
    ctx: commands.Context[commands.Bot], error: commands.CommandError
) -> None:
    if isinstance(error, commands.CommandNotFound):
        return
    message = _humanize_command_error(error)
    original = getattr(error, "original", error)
    if isinstance(original, BotError) or isinstance(error, commands.UserInputError | commands.CheckFailure):
        LOGGER.info(
            "Prefix command rejected. command=%s guild=%s user=%s reason=%s",
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.guild, "id", None),
            ctx.author.id,
            message,
        )
    else:
        LOGGER.exception(
            "Prefix command failed. command=%s guild=%s user=%s",
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.guild, "id", None),
            ctx.author.id,
            exc_info=error,
        )
    await send_error_response(ctx, message)


async def handle_interaction_error(interaction: discord.Interaction, error: Exception) -> None:
    if isinstance(error, BotError):
        message = error.user_message
        LOGGER.info(
            "Interaction rejected. guild=%s channel=%s user=%s reason=%s",
            getattr(interaction.guild, "id", None),
            interaction.channel_id,
            interaction.user.id if interaction.user else None,
            message,
        )
    else:
        message = ExternalCallFailed.user_message
        LOGGER.exception(
            "Interaction failed. guild=%s channel=%s user=%s",
            getattr(interaction.guild, "id", None),
            interaction.channel_id,
            interaction.user.id if interaction.user else None,
            exc_info=error,
        )
    try:
        await send_error_response(interaction, message)
    except discord.HTTPException:
        LOGGER.warning("Could not deliver error response for interaction %s", interaction.id, exc_info=True)
