from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from core.errors import DuplicateTicket, NotATicket
from state.models import TicketRecord

LOGGER = logging.getLogger(__name__)


class TicketRegistry:
    """In-memory map of ticket channel id to its record.

    State lives for the lifetime of the process only. Every method is
    synchronous, so a check followed by a mutation inside one handler turn
    cannot interleave with another event.
    """

    def __init__(self, first_number: int = 1) -> None:
        self._records: dict[int, TicketRecord] = {}
        self._pending: set[tuple[int, int]] = set()
        self._counter = itertools.count(first_number)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._records

    def next_ticket_number(self) -> int:
        return next(self._counter)

    def lookup_by_channel(self, channel_id: int) -> TicketRecord | None:
        return self._records.get(channel_id)

    def lookup_by_opener(self, guild_id: int, opener_id: int) -> tuple[int, TicketRecord] | None:
        for channel_id, record in self._records.items():
            if record.guild_id == guild_id and record.opener_id == opener_id:
                return channel_id, record
        return None

    def open_tickets(self, guild_id: int | None = None) -> list[TicketRecord]:
        records = [r for r in self._records.values() if guild_id is None or r.guild_id == guild_id]
        return sorted(records, key=lambda r: r.ticket_number)

    @contextmanager
    def reserve(self, guild_id: int, opener_id: int) -> Iterator[None]:
        key = (guild_id, opener_id)
        if key in self._pending or self.lookup_by_opener(guild_id, opener_id):
            raise DuplicateTicket()
        self._pending.add(key)
        try:
            yield
        finally:
            self._pending.discard(key)

    def insert(self, record: TicketRecord) -> None:
        if record.channel_id in self._records:
            raise DuplicateTicket("A ticket is already registered for this channel.")
        if self.lookup_by_opener(record.guild_id, record.opener_id):
            raise DuplicateTicket()
        self._records[record.channel_id] = record
        LOGGER.debug("Registered ticket #%s channel=%s", record.ticket_number, record.channel_id)

    def mutate(self, channel_id: int, fn: Callable[[TicketRecord], TicketRecord]) -> TicketRecord:
        current = self._records.get(channel_id)
        if current is None:
            raise NotATicket()
        updated = fn(current)
        self._records[channel_id] = updated
        return updated

    def remove(self, channel_id: int) -> TicketRecord | None:
        record = self._records.pop(channel_id, None)
        if record:
            LOGGER.debug("Removed ticket #%s channel=%s", record.ticket_number, channel_id)
        return record
