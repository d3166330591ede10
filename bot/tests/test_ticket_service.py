from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from fakes import history_of, make_guild, make_member, make_message

from core.config import AppConfig, DiscordConfig, WebhookLogConfig
from core.errors import (
    AlreadyClaimed,
    AlreadyHasTicket,
    CategoryUnavailable,
    ExternalCallFailed,
    Forbidden,
    NoOp,
    NotATicket,
)
from services.audit import AuditWebhook
from services.ticket_service import TicketService, TicketServiceDeps, is_staff
from services.transcript_service import TranscriptService
from state.models import TicketCategory
from state.registry import TicketRegistry
from state.settings import GuildSettings

STAFF_ROLE = 900
SETTINGS = GuildSettings(staff_role_id=STAFF_ROLE)


def _http_error(status: int = 500, message: str = "boom") -> discord.HTTPException:
    return discord.HTTPException(MagicMock(status=status, reason="error"), message)


def _service() -> tuple[TicketService, MagicMock]:
    config = AppConfig(discord=DiscordConfig(token="x"))
    opener_user = MagicMock()
    opener_user.send = AsyncMock()
    client = MagicMock()
    client.get_user = MagicMock(return_value=None)
    client.fetch_user = AsyncMock(return_value=opener_user)
    deps = TicketServiceDeps(
        registry=TicketRegistry(),
        transcripts=TranscriptService(config.tickets),
        client=client,
    )
    return TicketService(config, deps), opener_user


async def _open(service: TicketService, guild: MagicMock, opener_id: int = 1, category=TicketCategory.SUPPORT):
    record = await service.create_ticket(guild, make_member(opener_id), category, SETTINGS)
    channel = next(ch for ch, _ in guild.channels_created if ch.id == record.channel_id)
    return record, channel


def test_is_staff_checks_role_and_administrator() -> None:
    assert is_staff(make_member(1, role_ids=[STAFF_ROLE]), SETTINGS)
    assert is_staff(make_member(1, admin=True), GuildSettings())
    assert not is_staff(make_member(1, role_ids=[5]), SETTINGS)
    assert not is_staff(make_member(1), GuildSettings())


@pytest.mark.asyncio
async def test_second_ticket_for_same_opener_is_rejected() -> None:
    service, _ = _service()
    guild = make_guild()

    record, _ = await _open(service, guild)

    with pytest.raises(AlreadyHasTicket) as excinfo:
        await service.create_ticket(guild, make_member(1), TicketCategory.BILLINGS, SETTINGS)
    assert f"<#{record.channel_id}>" in excinfo.value.user_message
    assert guild.create_text_channel.await_count == 1
    assert len(service.registry) == 1


@pytest.mark.asyncio
async def test_concurrent_creation_for_same_opener_is_rejected() -> None:
    service, _ = _service()
    guild = make_guild()
    gate = asyncio.Event()
    original = guild.create_text_channel.side_effect

    async def slow_create(**kwargs):
        await gate.wait()
        return original(**kwargs)

    guild.create_text_channel.side_effect = slow_create

    first = asyncio.create_task(service.create_ticket(guild, make_member(1), TicketCategory.SUPPORT, SETTINGS))
    while guild.create_text_channel.await_count == 0:
        await asyncio.sleep(0)

    with pytest.raises(AlreadyHasTicket):
        await service.create_ticket(guild, make_member(1), TicketCategory.SUPPORT, SETTINGS)

    gate.set()
    record = await first
    assert service.registry.lookup_by_opener(guild.id, 1) == (record.channel_id, record)


@pytest.mark.asyncio
async def test_ticket_numbers_increase_across_closures() -> None:
    service, _ = _service()
    guild = make_guild()
    staff = make_member(50, role_ids=[STAFF_ROLE])

    numbers = []
    for _ in range(3):
        record, channel = await _open(service, guild, opener_id=1)
        numbers.append(record.ticket_number)
        await service.close_ticket(channel, staff, SETTINGS)

    assert numbers == [1, 2, 3]
    assert [kwargs["name"] for _, kwargs in guild.channels_created] == ["ticket-1", "ticket-2", "ticket-3"]


@pytest.mark.asyncio
async def test_create_uses_initial_plan_and_posts_header() -> None:
    service, _ = _service()
    guild = make_guild()

    record, channel = await _open(service, guild, category=TicketCategory.BILLINGS)

    _, kwargs = guild.channels_created[0]
    assert kwargs["category"].id == 777
    assert "Category: BILLINGS" in kwargs["topic"]
    overwrites = {target.id: overwrite for target, overwrite in kwargs["overwrites"].items()}
    assert overwrites[guild.id].view_channel is False
    assert overwrites[1].send_messages is True
    assert overwrites[STAFF_ROLE].manage_channels is True
    assert overwrites[42].view_channel is True

    assert record.category is TicketCategory.BILLINGS
    assert record.claimed_by_id is None
    assert record.locked is False
    header = channel.send.await_args.kwargs
    assert f"<@&{STAFF_ROLE}>" in header["content"]
    assert header["embed"].title == "#ticket-1"


@pytest.mark.asyncio
async def test_create_provisions_parent_category_when_none_found() -> None:
    service, _ = _service()
    guild = make_guild(categories=[SimpleNamespace(id=1, name="General")])

    await _open(service, guild)

    guild.create_category.assert_awaited_once()
    assert guild.create_category.await_args.kwargs["name"] == "Tickets"
    assert guild.channels_created[0][1]["category"].id == 555


@pytest.mark.asyncio
async def test_create_prefers_configured_parent_category() -> None:
    service, _ = _service()
    guild = make_guild(categories=[SimpleNamespace(id=777, name="Tickets"), SimpleNamespace(id=888, name="Help")])
    settings = GuildSettings(staff_role_id=STAFF_ROLE, ticket_category_id=888)

    await service.create_ticket(guild, make_member(1), TicketCategory.SUPPORT, settings)

    assert guild.channels_created[0][1]["category"].id == 888


@pytest.mark.asyncio
async def test_create_fails_when_category_cannot_be_created() -> None:
    service, _ = _service()
    guild = make_guild(categories=[])
    guild.create_category.side_effect = _http_error(403)

    with pytest.raises(CategoryUnavailable):
        await service.create_ticket(guild, make_member(1), TicketCategory.SUPPORT, SETTINGS)
    guild.create_text_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_channel_creation_failure_leaves_no_record() -> None:
    service, _ = _service()
    guild = make_guild()
    guild.create_text_channel.side_effect = _http_error()

    with pytest.raises(ExternalCallFailed) as excinfo:
        await service.create_ticket(guild, make_member(1), TicketCategory.SUPPORT, SETTINGS)

    assert excinfo.value.operation == "create_channel"
    assert len(service.registry) == 0
    assert service.registry.lookup_by_opener(guild.id, 1) is None


@pytest.mark.asyncio
async def test_claim_is_write_once() -> None:
    service, _ = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)

    claimed = await service.claim_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS)
    assert claimed.claimed_by_id == 10
    channel.edit.assert_awaited_once()
    assert channel.edit.await_args.kwargs["name"] == "✅-ticket-1"

    with pytest.raises(AlreadyClaimed) as excinfo:
        await service.claim_ticket(channel, make_member(11, role_ids=[STAFF_ROLE]), SETTINGS)
    assert "<@10>" in excinfo.value.user_message
    assert service.registry.lookup_by_channel(record.channel_id).claimed_by_id == 10


@pytest.mark.asyncio
async def test_claim_survives_rename_failure() -> None:
    service, _ = _service()
    guild = make_guild()
    _, channel = await _open(service, guild)
    channel.edit.side_effect = _http_error(429)

    claimed = await service.claim_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS)

    assert claimed.claimed_by_id == 10


@pytest.mark.asyncio
async def test_non_staff_cannot_manage_ticket() -> None:
    service, _ = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)
    opener = make_member(1)

    with pytest.raises(Forbidden):
        await service.lock_ticket(channel, opener, SETTINGS)
    with pytest.raises(Forbidden):
        await service.claim_ticket(channel, opener, SETTINGS)
    with pytest.raises(Forbidden):
        await service.close_ticket(channel, opener, SETTINGS)

    current = service.registry.lookup_by_channel(record.channel_id)
    assert current.locked is False
    assert current.claimed_by_id is None


@pytest.mark.asyncio
async def test_lock_guard_rejects_redundant_transitions() -> None:
    service, _ = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)
    staff = make_member(10, role_ids=[STAFF_ROLE])

    with pytest.raises(NoOp):
        await service.unlock_ticket(channel, staff, SETTINGS)

    locked = await service.lock_ticket(channel, staff, SETTINGS)
    assert locked.locked is True
    overwrite = channel.set_permissions.await_args.kwargs["overwrite"]
    assert overwrite.send_messages is False
    assert overwrite.view_channel is True
    assert overwrite.read_message_history is True

    with pytest.raises(NoOp):
        await service.lock_ticket(channel, staff, SETTINGS)
    assert service.registry.lookup_by_channel(record.channel_id).locked is True

    unlocked = await service.unlock_ticket(channel, staff, SETTINGS)
    assert unlocked.locked is False
    assert channel.set_permissions.await_args.kwargs["overwrite"].send_messages is True


@pytest.mark.asyncio
async def test_lock_rolls_back_when_overwrite_fails() -> None:
    service, _ = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)
    channel.set_permissions.side_effect = _http_error()

    with pytest.raises(ExternalCallFailed) as excinfo:
        await service.lock_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS)

    assert excinfo.value.operation == "edit_overwrites"
    assert service.registry.lookup_by_channel(record.channel_id).locked is False


@pytest.mark.asyncio
async def test_close_continues_after_connection_reset() -> None:
    service, _ = _service()
    service.deps.client.fetch_user = AsyncMock(side_effect=ConnectionResetError("reset by peer"))
    guild = make_guild()
    record, channel = await _open(service, guild)
    channel.send.reset_mock()

    outcome = await service.close_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS)

    assert outcome.step("notify_opener").ok is False
    assert "reset by peer" in outcome.step("notify_opener").error
    assert outcome.step("announce").ok is True
    channel.send.assert_awaited_once()
    channel.delete.assert_awaited_once()
    assert service.registry.lookup_by_channel(record.channel_id) is None


@pytest.mark.asyncio
async def test_lock_does_not_wait_for_audit_delivery() -> None:
    service, _ = _service()
    gate = asyncio.Event()
    audit = AuditWebhook(WebhookLogConfig(enabled=True, url="https://discord.test/hook"))

    async def slow_post(event) -> None:
        await gate.wait()

    audit.post = slow_post
    service.deps.audit = audit
    guild = make_guild()
    record, channel = await _open(service, guild)

    locked = await asyncio.wait_for(
        service.lock_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS), timeout=1
    )

    assert locked.locked is True
    assert len(audit._pending) == 2
    gate.set()
    await audit.drain()
    assert not audit._pending


@pytest.mark.asyncio
async def test_close_removes_record_even_when_side_effects_fail() -> None:
    service, opener_user = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)
    opener_user.send.side_effect = discord.Forbidden(
        MagicMock(status=403, reason="Forbidden"), "Cannot send messages to this user"
    )
    channel.send.side_effect = _http_error()
    channel.delete.side_effect = _http_error(404)

    outcome = await service.close_ticket(channel, make_member(10, role_ids=[STAFF_ROLE]), SETTINGS, reason="done")

    assert service.registry.lookup_by_channel(record.channel_id) is None
    assert outcome.step("notify_opener").ok is False
    assert outcome.step("announce").ok is False
    assert outcome.step("delete_channel").ok is False
    channel.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_closed_ticket_rejects_late_events() -> None:
    service, _ = _service()
    guild = make_guild()
    _, channel = await _open(service, guild)
    staff = make_member(10, role_ids=[STAFF_ROLE])

    await service.close_ticket(channel, staff, SETTINGS)

    with pytest.raises(NotATicket):
        await service.lock_ticket(channel, staff, SETTINGS)
    with pytest.raises(NotATicket):
        await service.close_ticket(channel, staff, SETTINGS)


@pytest.mark.asyncio
async def test_close_with_transcript_delivers_file_and_links_it() -> None:
    service, opener_user = _service()
    guild = make_guild()
    record, channel = await _open(service, guild)
    channel.history = MagicMock(side_effect=history_of([make_message(2, "thanks"), make_message(1, "hi")]))
    destination = MagicMock(spec=discord.TextChannel)
    destination.send = AsyncMock(
        return_value=SimpleNamespace(attachments=[SimpleNamespace(url="https://cdn.test/ticket-1-transcript.html")])
    )
    guild.get_channel.return_value = destination
    settings = GuildSettings(staff_role_id=STAFF_ROLE, transcript_channel_id=4242)

    outcome = await service.close_ticket(
        channel, make_member(10, role_ids=[STAFF_ROLE]), settings, reason="resolved", with_transcript=True
    )

    assert outcome.transcript_url == "https://cdn.test/ticket-1-transcript.html"
    assert outcome.step("transcript").ok is True
    guild.get_channel.assert_called_with(4242)
    sent_file = destination.send.await_args.kwargs["file"]
    assert sent_file.filename == "ticket-1-transcript.html"
    dm = opener_user.send.await_args.kwargs
    assert dm["view"] is not None
    fields = {field.name: field.value for field in dm["embed"].fields}
    assert fields["📝 Reason"] == "resolved"
    assert service.registry.lookup_by_channel(record.channel_id) is None


@pytest.mark.asyncio
async def test_transcript_delivery_failure_is_not_fatal() -> None:
    service, opener_user = _service()
    guild = make_guild()
    _, channel = await _open(service, guild)
    destination = MagicMock(spec=discord.TextChannel)
    destination.send = AsyncMock(side_effect=_http_error(403))
    guild.get_channel.return_value = destination
    settings = GuildSettings(staff_role_id=STAFF_ROLE, transcript_channel_id=4242)

    outcome = await service.close_ticket(
        channel, make_member(10, role_ids=[STAFF_ROLE]), settings, with_transcript=True
    )

    assert outcome.transcript_url is None
    assert outcome.step("transcript").ok is False
    assert "view" not in opener_user.send.await_args.kwargs
    channel.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_reconcile_drops_record_of_deleted_channel() -> None:
    service, _ = _service()
    guild = make_guild()
    record, _ = await _open(service, guild)

    assert service.reconcile_channel_deleted(record.channel_id) == record
    assert service.reconcile_channel_deleted(record.channel_id) is None
    # the opener can open a new ticket afterwards
    await _open(service, guild)


@pytest.mark.asyncio
async def test_billing_ticket_scenario() -> None:
    service, opener_user = _service()
    guild = make_guild()
    staff_one = make_member(21, role_ids=[STAFF_ROLE])
    staff_two = make_member(22, role_ids=[STAFF_ROLE])

    record, channel = await _open(service, guild, opener_id=11, category=TicketCategory.BILLINGS)
    assert record.ticket_number == 1
    assert (record.opener_id, record.category, record.locked, record.claimed_by_id) == (
        11,
        TicketCategory.BILLINGS,
        False,
        None,
    )

    assert (await service.claim_ticket(channel, staff_one, SETTINGS)).claimed_by_id == 21
    with pytest.raises(AlreadyClaimed):
        await service.claim_ticket(channel, staff_two, SETTINGS)

    assert (await service.lock_ticket(channel, staff_one, SETTINGS)).locked is True
    with pytest.raises(NoOp):
        await service.lock_ticket(channel, staff_one, SETTINGS)

    outcome = await service.close_ticket(channel, staff_one, SETTINGS, with_transcript=True)

    assert outcome.transcript_url is None
    assert outcome.step("transcript") is None
    dm = opener_user.send.await_args.kwargs
    assert "view" not in dm
    fields = {field.name: field.value for field in dm["embed"].fields}
    assert fields["🔢 Ticket ID"] == "1"
    assert fields["🧰 Claimed By"] == "<@21>"
    assert fields["🛑 Closed By"] == "<@21>"
    assert fields["📝 Reason"] == "No reason provided"
    assert service.registry.lookup_by_channel(record.channel_id) is None
    channel.delete.assert_awaited_once()
