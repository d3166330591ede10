from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GuildSettings:
    staff_role_id: int | None = None
    transcript_channel_id: int | None = None
    banner_url: str | None = None
    ticket_category_id: int | None = None


_SETTING_NAMES = frozenset(f.name for f in fields(GuildSettings))


class SettingsStore:
    """Owns the mutable per-guild settings and hands out immutable snapshots."""

    def __init__(self, defaults: GuildSettings | None = None) -> None:
        self.defaults = defaults or GuildSettings()
        self._by_guild: dict[int, GuildSettings] = {}

    def get(self, guild_id: int) -> GuildSettings:
        return self._by_guild.get(guild_id, self.defaults)

    def update(self, guild_id: int, **changes: Any) -> GuildSettings:
        unknown = set(changes) - _SETTING_NAMES
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        snapshot = replace(self.get(guild_id), **changes)
        self._by_guild[guild_id] = snapshot
        LOGGER.info("Settings updated guild=%s changes=%s", guild_id, changes)
        return snapshot
