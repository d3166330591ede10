from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, replace
from typing import Any

import discord

from core.config import AppConfig
from core.errors import (
    AlreadyClaimed,
    AlreadyHasTicket,
    CategoryUnavailable,
    DuplicateTicket,
    ExternalCallFailed,
    Forbidden,
    NoOp,
    NotATicket,
    TRANSIENT_ERRORS,
)
from services.audit import AuditWebhook, LifecycleEvent, LifecycleKind
from services.overwrites import OverwriteDelta, apply_delta, plan_initial, plan_lock, plan_unlock, to_discord_overwrites
from services.transcript_service import TranscriptService
from state.models import CloseOutcome, StepResult, TicketCategory, TicketRecord
from state.registry import TicketRegistry
from state.settings import GuildSettings
from utils.constants import EMOJI_DELETE, EMOJI_LOCK, EMOJI_UNLOCK
from utils.embeds import closed_ticket_embed, ticket_header_embed, transcript_link_view
from utils.time import utc_now
from views.ticket_controls import TicketControlsView

LOGGER = logging.getLogger(__name__)


def is_staff(member: discord.Member, settings: GuildSettings) -> bool:
    permissions = getattr(member, "guild_permissions", None)
    if permissions is not None and permissions.administrator:
        return True
    if settings.staff_role_id is None:
        return False
    return any(role.id == settings.staff_role_id for role in getattr(member, "roles", ()))


@dataclass(slots=True)
class TicketServiceDeps:
    registry: TicketRegistry
    transcripts: TranscriptService
    client: discord.Client
    audit: AuditWebhook | None = None


class TicketService:
    def __init__(self, config: AppConfig, deps: TicketServiceDeps) -> None:
        self.config = config
        self.deps = deps

    @property
    def registry(self) -> TicketRegistry:
        return self.deps.registry

    # -- guards -----------------------------------------------------------

    @staticmethod
    def _require_staff(actor: discord.Member, settings: GuildSettings, action: str) -> None:
        if not is_staff(actor, settings):
            raise Forbidden(f"Only staff can {action} tickets.")

    def _require_ticket(self, channel_id: int) -> TicketRecord:
        record = self.registry.lookup_by_channel(channel_id)
        if record is None or record.closing:
            raise NotATicket()
        return record

    # -- side effects -----------------------------------------------------

    async def _best_effort(self, operation: str, action: Awaitable[Any]) -> StepResult:
        try:
            await action
        except (*TRANSIENT_ERRORS, ExternalCallFailed) as exc:
            LOGGER.warning("Non-essential step %s failed: %s", operation, exc, exc_info=True)
            return StepResult(operation=operation, ok=False, error=str(exc))
        return StepResult(operation=operation, ok=True)

    def _emit(
        self,
        kind: LifecycleKind,
        record: TicketRecord,
        actor_id: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        if self.deps.audit is None:
            return
        self.deps.audit.emit(
            LifecycleEvent(
                kind=kind,
                guild_id=record.guild_id,
                channel_id=record.channel_id,
                ticket_number=record.ticket_number,
                actor_id=actor_id,
                details=details or {},
            )
        )

    async def _apply_delta(self, channel: discord.TextChannel, delta: OverwriteDelta) -> None:
        guild = channel.guild
        try:
            target = guild.get_member(delta.target_id) or await guild.fetch_member(delta.target_id)
            current = channel.overwrites_for(target)
            await channel.set_permissions(
                target,
                overwrite=apply_delta(current, delta),
                reason="Ticket lock state changed",
            )
        except discord.HTTPException as exc:
            raise ExternalCallFailed("edit_overwrites") from exc

    # -- create -----------------------------------------------------------

    async def ensure_parent_category(self, guild: discord.Guild, settings: GuildSettings) -> discord.CategoryChannel:
        if settings.ticket_category_id:
            configured = discord.utils.get(guild.categories, id=settings.ticket_category_id)
            if configured is not None:
                return configured
            LOGGER.warning(
                "Configured ticket category %s not found in guild %s", settings.ticket_category_id, guild.id
            )

        existing = next((c for c in guild.categories if "ticket" in c.name.lower()), None)
        if existing is not None:
            return existing

        try:
            created = await guild.create_category(
                name=self.config.tickets.default_category_name,
                reason="Ticket parent category",
            )
        except discord.HTTPException as exc:
            LOGGER.exception("Failed to create tickets category in guild %s", guild.id)
            raise CategoryUnavailable() from exc
        LOGGER.info("Created tickets category %s in guild %s", created.id, guild.id)
        return created

    async def create_ticket(
        self,
        guild: discord.Guild,
        opener: discord.Member,
        category: TicketCategory,
        settings: GuildSettings,
    ) -> TicketRecord:
        found = self.registry.lookup_by_opener(guild.id, opener.id)
        if found:
            raise AlreadyHasTicket(f"You already have an open ticket: <#{found[0]}>")
        try:
            with self.registry.reserve(guild.id, opener.id):
                return await self._open_channel(guild, opener, category, settings)
        except DuplicateTicket as exc:
            raise AlreadyHasTicket("Your ticket is already being created.") from exc

    async def _open_channel(
        self,
        guild: discord.Guild,
        opener: discord.Member,
        category: TicketCategory,
        settings: GuildSettings,
    ) -> TicketRecord:
        parent = await self.ensure_parent_category(guild, settings)
        number = self.registry.next_ticket_number()
        plan = plan_initial(
            everyone_id=guild.default_role.id,
            opener_id=opener.id,
            staff_role_id=settings.staff_role_id,
            bot_id=guild.me.id if guild.me else None,
        )
        try:
            channel = await guild.create_text_channel(
                name=f"ticket-{number}",
                category=parent,
                overwrites=to_discord_overwrites(plan),
                topic=f"Ticket for {opener} ({opener.id}) • Category: {category}",
                reason=f"Ticket created by {opener} ({opener.id})",
            )
        except discord.HTTPException as exc:
            LOGGER.exception("Failed to create ticket channel for %s in guild %s", opener.id, guild.id)
            raise ExternalCallFailed("create_channel") from exc

        record = TicketRecord(
            channel_id=channel.id,
            guild_id=guild.id,
            opener_id=opener.id,
            category=category,
            opened_at=utc_now(),
            ticket_number=number,
        )
        try:
            self.registry.insert(record)
        except DuplicateTicket as exc:
            LOGGER.error("Registry insert failed for channel %s; removing orphan channel", channel.id)
            await self._best_effort("delete_orphan_channel", channel.delete(reason="Orphaned ticket channel"))
            raise ExternalCallFailed("registry_insert") from exc

        await self._best_effort("post_header", self._post_header(channel, record, settings))
        self._emit(LifecycleKind.CREATED, record, opener.id, {"category": str(category)})
        return record

    async def _post_header(
        self, channel: discord.TextChannel, record: TicketRecord, settings: GuildSettings
    ) -> None:
        if settings.staff_role_id:
            mention_staff = f"<@&{settings.staff_role_id}>"
        else:
            mention_staff = f"`(Set a staff role with {self.config.discord.prefix}setstaff)`"
        await channel.send(
            content=f"<@{record.opener_id}> {mention_staff}",
            embed=ticket_header_embed(record.channel_name, record.opener_id, record.category),
            view=TicketControlsView(locked=False, claimed=False),
        )

    # -- lock / unlock ----------------------------------------------------

    async def lock_ticket(
        self, channel: discord.TextChannel, actor: discord.Member, settings: GuildSettings
    ) -> TicketRecord:
        return await self._set_locked(channel, actor, settings, locked=True)

    async def unlock_ticket(
        self, channel: discord.TextChannel, actor: discord.Member, settings: GuildSettings
    ) -> TicketRecord:
        return await self._set_locked(channel, actor, settings, locked=False)

    async def _set_locked(
        self,
        channel: discord.TextChannel,
        actor: discord.Member,
        settings: GuildSettings,
        *,
        locked: bool,
    ) -> TicketRecord:
        self._require_staff(actor, settings, "lock" if locked else "unlock")
        record = self._require_ticket(channel.id)
        if record.locked == locked:
            raise NoOp("Ticket already locked." if locked else "Ticket is not locked.")

        # flip before the first await so a concurrent toggle sees the new state
        updated = self.registry.mutate(channel.id, lambda r: replace(r, locked=locked))
        delta = plan_lock(record.opener_id) if locked else plan_unlock(record.opener_id)
        try:
            await self._apply_delta(channel, delta)
        except ExternalCallFailed:
            if channel.id in self.registry:
                self.registry.mutate(channel.id, lambda r: replace(r, locked=not locked))
            LOGGER.exception("Failed to apply lock delta on channel %s", channel.id)
            raise

        if locked:
            announcement = f"{EMOJI_LOCK} Ticket locked by <@{actor.id}>."
        else:
            announcement = f"{EMOJI_UNLOCK} Ticket unlocked by <@{actor.id}>."
        await self._best_effort("announce", channel.send(announcement))
        self._emit(LifecycleKind.LOCKED if locked else LifecycleKind.UNLOCKED, updated, actor.id)
        return updated

    # -- claim ------------------------------------------------------------

    async def claim_ticket(
        self, channel: discord.TextChannel, actor: discord.Member, settings: GuildSettings
    ) -> TicketRecord:
        self._require_staff(actor, settings, "claim")
        record = self._require_ticket(channel.id)
        if record.claimed_by_id is not None:
            raise AlreadyClaimed(f"Already claimed by <@{record.claimed_by_id}>.")

        updated = self.registry.mutate(channel.id, lambda r: replace(r, claimed_by_id=actor.id))
        await self._best_effort("rename_channel", self._mark_claimed(channel))
        await self._best_effort(
            "announce", channel.send(f"{self.config.tickets.claim_marker} Ticket claimed by <@{actor.id}>.")
        )
        self._emit(LifecycleKind.CLAIMED, updated, actor.id)
        return updated

    async def _mark_claimed(self, channel: discord.TextChannel) -> None:
        marker = self.config.tickets.claim_marker
        if channel.name.startswith(marker):
            return
        await channel.edit(name=f"{marker}-{channel.name}", reason="Ticket claimed")

    # -- close ------------------------------------------------------------

    def begin_close(
        self, channel: discord.abc.GuildChannel, actor: discord.Member, settings: GuildSettings
    ) -> TicketRecord:
        self._require_staff(actor, settings, "close/delete")
        return self._require_ticket(channel.id)

    async def close_ticket(
        self,
        channel: discord.TextChannel,
        actor: discord.Member,
        settings: GuildSettings,
        *,
        reason: str | None = None,
        with_transcript: bool = False,
    ) -> CloseOutcome:
        self.begin_close(channel, actor, settings)
        record = self.registry.mutate(channel.id, lambda r: replace(r, closing=True))
        outcome = CloseOutcome(record=record)
        reason = (reason or "").strip() or None

        try:
            if with_transcript and settings.transcript_channel_id:
                outcome.steps.append(
                    await self._best_effort(
                        "transcript", self._deliver_transcript(channel, record, settings, outcome)
                    )
                )
            elif with_transcript:
                LOGGER.info("Transcript requested for ticket #%s but no destination is set", record.ticket_number)

            outcome.steps.append(
                await self._best_effort(
                    "notify_opener",
                    self._notify_opener(channel.guild, record, actor.id, reason, outcome.transcript_url),
                )
            )
            outcome.steps.append(
                await self._best_effort(
                    "announce",
                    channel.send(f"{EMOJI_DELETE} Ticket closed by <@{actor.id}>. Deleting channel..."),
                )
            )
        finally:
            self.registry.remove(channel.id)

        self._emit(
            LifecycleKind.CLOSED,
            record,
            actor.id,
            {"reason": reason, "transcript_url": outcome.transcript_url},
        )
        outcome.steps.append(
            await self._best_effort(
                "delete_channel",
                channel.delete(reason=f"Ticket #{record.ticket_number} closed by {actor} ({actor.id})"),
            )
        )
        return outcome

    async def _deliver_transcript(
        self,
        channel: discord.TextChannel,
        record: TicketRecord,
        settings: GuildSettings,
        outcome: CloseOutcome,
    ) -> None:
        guild = channel.guild
        destination = guild.get_channel(settings.transcript_channel_id) or await guild.fetch_channel(
            settings.transcript_channel_id
        )
        if not isinstance(destination, discord.TextChannel):
            raise ExternalCallFailed("transcript_destination", "Transcripts channel is not a text channel.")

        messages = await self.deps.transcripts.fetch_history(channel)
        transcript = self.deps.transcripts.build_file(
            f"{guild.name} • {channel.name}", messages, f"{channel.name}-transcript.html"
        )
        sent = await destination.send(
            content=f"Transcript for {channel.mention} • Opened by <@{record.opener_id}>",
            file=transcript,
        )
        if sent.attachments:
            outcome.transcript_url = sent.attachments[0].url
        LOGGER.info(
            "Transcript for ticket #%s delivered (%s messages)", record.ticket_number, len(messages)
        )

    async def _notify_opener(
        self,
        guild: discord.Guild,
        record: TicketRecord,
        closed_by_id: int,
        reason: str | None,
        transcript_url: str | None,
    ) -> None:
        client = self.deps.client
        opener = client.get_user(record.opener_id) or await client.fetch_user(record.opener_id)
        view = transcript_link_view(transcript_url)
        embed = closed_ticket_embed(guild.name, record, closed_by_id, reason)
        if view is None:
            await opener.send(embed=embed)
        else:
            await opener.send(embed=embed, view=view)

    # -- housekeeping -----------------------------------------------------

    def reconcile_channel_deleted(self, channel_id: int) -> TicketRecord | None:
        record = self.registry.remove(channel_id)
        if record is not None and not record.closing:
            LOGGER.info(
                "Ticket #%s channel %s was deleted outside the bot; record dropped",
                record.ticket_number,
                channel_id,
            )
        return record

    def list_open_tickets(self, guild_id: int) -> list[TicketRecord]:
        return self.registry.open_tickets(guild_id)
