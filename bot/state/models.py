from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TicketCategory(StrEnum):
    SUPPORT = "SUPPORT"
    BILLINGS = "BILLINGS"

    @property
    def value_key(self) -> str:
        return self.value.lower()

    @property
    def description(self) -> str:
        return _CATEGORY_DESCRIPTIONS[self]

    @property
    def emoji(self) -> str:
        return _CATEGORY_EMOJI[self]

    @classmethod
    def from_select_value(cls, value: str) -> TicketCategory:
        # the panel only ever offers known values; anything else is treated as support
        for member in cls:
            if member.value_key == value.strip().lower():
                return member
        return cls.SUPPORT


_CATEGORY_DESCRIPTIONS = {
    TicketCategory.SUPPORT: "General support & help",
    TicketCategory.BILLINGS: "Payments & purchases help",
}

_CATEGORY_EMOJI = {
    TicketCategory.SUPPORT: "📬",
    TicketCategory.BILLINGS: "💵",
}


@dataclass(slots=True, frozen=True)
class TicketRecord:
    channel_id: int
    guild_id: int
    opener_id: int
    category: TicketCategory
    opened_at: datetime
    ticket_number: int
    claimed_by_id: int | None = None
    locked: bool = False
    closing: bool = False

    @property
    def claimed(self) -> bool:
        return self.claimed_by_id is not None

    @property
    def channel_name(self) -> str:
        return f"ticket-{self.ticket_number}"


@dataclass(slots=True, frozen=True)
class StepResult:
    """Outcome of one best-effort side effect of a lifecycle transition."""

    operation: str
    ok: bool
    error: str | None = None


@dataclass(slots=True)
class CloseOutcome:
    record: TicketRecord
    transcript_url: str | None = None
    steps: list[StepResult] = field(default_factory=list)

    def step(self, operation: str) -> StepResult | None:
        for result in self.steps:
            if result.operation == operation:
                return result
        return None
