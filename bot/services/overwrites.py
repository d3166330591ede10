"""Permission overwrite plans for ticket channels.

Everything here is pure: plans are computed from ids and only turned into
``discord.PermissionOverwrite`` values, never applied. Applying them to a live
channel is the lifecycle controller's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

import discord

TargetType = Literal["role", "member"]

OPENER_ALLOW = frozenset(
    {"view_channel", "send_messages", "read_message_history", "attach_files", "embed_links"}
)
STAFF_ALLOW = frozenset(
    {"view_channel", "send_messages", "read_message_history", "manage_messages", "manage_channels"}
)
BOT_ALLOW = frozenset(
    {"view_channel", "send_messages", "read_message_history", "manage_messages", "manage_channels"}
)


@dataclass(slots=True, frozen=True)
class OverwriteRule:
    target_id: int
    target_type: TargetType
    allow: frozenset[str] = field(default_factory=frozenset)
    deny: frozenset[str] = field(default_factory=frozenset)

    def to_overwrite(self) -> discord.PermissionOverwrite:
        values: dict[str, bool] = {name: True for name in self.allow}
        values.update({name: False for name in self.deny})
        return discord.PermissionOverwrite(**values)


@dataclass(slots=True, frozen=True)
class OverwriteDelta:
    target_id: int
    target_type: TargetType
    changes: tuple[tuple[str, bool], ...]

    def as_kwargs(self) -> dict[str, bool]:
        return dict(self.changes)


def plan_initial(
    everyone_id: int,
    opener_id: int,
    staff_role_id: int | None = None,
    bot_id: int | None = None,
) -> tuple[OverwriteRule, ...]:
    rules = [
        OverwriteRule(everyone_id, "role", deny=frozenset({"view_channel"})),
        OverwriteRule(opener_id, "member", allow=OPENER_ALLOW),
    ]
    if staff_role_id:
        rules.append(OverwriteRule(staff_role_id, "role", allow=STAFF_ALLOW))
    if bot_id:
        rules.append(OverwriteRule(bot_id, "member", allow=BOT_ALLOW))
    return tuple(rules)


def plan_lock(opener_id: int) -> OverwriteDelta:
    return OverwriteDelta(opener_id, "member", (("send_messages", False),))


def plan_unlock(opener_id: int) -> OverwriteDelta:
    return OverwriteDelta(opener_id, "member", (("send_messages", True),))


def target_object(target_id: int, target_type: TargetType) -> discord.Object:
    return discord.Object(id=target_id, type=discord.Role if target_type == "role" else discord.Member)


def to_discord_overwrites(
    plan: tuple[OverwriteRule, ...],
) -> dict[discord.Object, discord.PermissionOverwrite]:
    return {target_object(rule.target_id, rule.target_type): rule.to_overwrite() for rule in plan}


def apply_delta(current: discord.PermissionOverwrite, delta: OverwriteDelta) -> discord.PermissionOverwrite:
    """Return ``current`` with only the delta's permissions changed."""
    allow, deny = current.pair()
    merged = discord.PermissionOverwrite.from_pair(allow, deny)
    merged.update(**delta.as_kwargs())
    return merged
