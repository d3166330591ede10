from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import aiohttp

from core.config import WebhookLogConfig
from core.logging import ticket_context

LOGGER = logging.getLogger(__name__)


class LifecycleKind(StrEnum):
    CREATED = "created"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    CLAIMED = "claimed"
    CLOSED = "closed"


@dataclass(slots=True, frozen=True)
class LifecycleEvent:
    kind: LifecycleKind
    guild_id: int
    channel_id: int
    ticket_number: int
    actor_id: int
    details: dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AuditWebhook:
    """Mirrors lifecycle events to a Discord webhook.

    ``emit`` logs the event and schedules delivery in the background, so a slow
    webhook never delays the interaction that caused the event. Delivery
    failures are logged, never raised.
    """

    def __init__(self, config: WebhookLogConfig) -> None:
        self.config = config
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.url)

    def emit(self, event: LifecycleEvent) -> asyncio.Task[None] | None:
        LOGGER.info(
            "Ticket #%s %s by %s (guild=%s channel=%s)",
            event.ticket_number,
            event.kind,
            event.actor_id,
            event.guild_id,
            event.channel_id,
            extra=ticket_context(
                guild_id=event.guild_id,
                channel_id=event.channel_id,
                ticket_number=event.ticket_number,
                actor_id=event.actor_id,
                event=event.kind,
            ),
        )
        if not self.enabled:
            return None
        task = asyncio.create_task(self.post(event), name=f"audit-{event.kind}-{event.channel_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def post(self, event: LifecycleEvent) -> None:
        payload = asdict(event)
        payload["at"] = event.at.isoformat()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.config.url,
                    json={
                        "content": None,
                        "embeds": [
                            {
                                "title": f"Ticket #{event.ticket_number} {event.kind}",
                                "description": f"```json\n{json.dumps(payload, indent=2, default=str)[:3500]}\n```",
                                "timestamp": event.at.isoformat(),
                            }
                        ],
                    },
                    timeout=aiohttp.ClientTimeout(total=10),
                ) as response:
                    if response.status >= 400:
                        LOGGER.warning("Audit webhook rejected event: HTTP %s", response.status)
        except (aiohttp.ClientError, TimeoutError):
            LOGGER.warning("Failed to send audit webhook event", exc_info=True)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
