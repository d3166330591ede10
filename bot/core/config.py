from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from state.settings import GuildSettings


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class DiscordConfig:
    token: str
    prefix: str = "!"
    application_id: int | None = None
    status_text: str = "Support tickets"
    activity_type: str = "watching"
    allowed_mentions_everyone: bool = False


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "bot.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class KeepAliveConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass(slots=True)
class TicketConfig:
    default_category_name: str = "Tickets"
    claim_marker: str = "✅"
    transcript_page_size: int = 100
    transcript_max_messages: int = 5000


@dataclass(slots=True)
class WebhookLogConfig:
    enabled: bool = False
    url: str = ""


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    keepalive: KeepAliveConfig = field(default_factory=KeepAliveConfig)
    tickets: TicketConfig = field(default_factory=TicketConfig)
    webhook_log: WebhookLogConfig = field(default_factory=WebhookLogConfig)
    defaults: GuildSettings = field(default_factory=GuildSettings)
    enabled_extensions: list[str] = field(
        default_factory=lambda: [
            "cogs.events",
            "cogs.tickets",
            "cogs.admin",
        ]
    )


def _get_env_str(key: str, fallback: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None:
        return fallback
    cleaned = value.strip()
    return cleaned if cleaned else fallback


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_snowflake(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid Discord id: {value!r}") from None


def _deep_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _load_defaults(raw: dict[str, Any]) -> GuildSettings:
    banner_url = _get_env_str("PANEL_BANNER_URL", _deep_get(raw, "defaults", "banner_url"))
    return GuildSettings(
        staff_role_id=_as_snowflake(_get_env_str("STAFF_ROLE_ID", _deep_get(raw, "defaults", "staff_role_id"))),
        transcript_channel_id=_as_snowflake(
            _get_env_str("TRANSCRIPTS_CHANNEL_ID", _deep_get(raw, "defaults", "transcript_channel_id"))
        ),
        banner_url=str(banner_url) if banner_url else None,
        ticket_category_id=_as_snowflake(
            _get_env_str("TICKET_CATEGORY_ID", _deep_get(raw, "defaults", "ticket_category_id"))
        ),
    )


def load_config(config_path: Path) -> AppConfig:
    env_path = config_path.parent.parent / ".env"
    load_dotenv(env_path)
    raw = _load_yaml(config_path)

    discord_token = _get_env_str("DISCORD_TOKEN", _deep_get(raw, "discord", "token"))
    if not discord_token or "${" in discord_token:
        raise ConfigError("DISCORD_TOKEN is required")

    discord_cfg = DiscordConfig(
        token=discord_token,
        prefix=str(_get_env_str("BOT_PREFIX", _deep_get(raw, "discord", "prefix", default="!"))),
        application_id=_as_snowflake(
            _get_env_str("DISCORD_APPLICATION_ID", _deep_get(raw, "discord", "application_id"))
        ),
        status_text=str(_deep_get(raw, "discord", "status_text", default="Support tickets")),
        activity_type=str(_deep_get(raw, "discord", "activity_type", default="watching")),
        allowed_mentions_everyone=_as_bool(
            _deep_get(raw, "discord", "allowed_mentions_everyone"), False
        ),
    )

    logging_cfg = LoggingConfig(
        level=str(_get_env_str("LOG_LEVEL", _deep_get(raw, "logging", "level", default="INFO"))),
        directory=str(_deep_get(raw, "logging", "directory", default="logs")),
        file_name=str(_deep_get(raw, "logging", "file_name", default="bot.log")),
        max_bytes=_as_int(_deep_get(raw, "logging", "max_bytes"), 10_000_000),
        backup_count=_as_int(_deep_get(raw, "logging", "backup_count"), 10),
        json_console=_as_bool(_deep_get(raw, "logging", "json_console"), False),
    )

    keepalive_cfg = KeepAliveConfig(
        enabled=_as_bool(_deep_get(raw, "keepalive", "enabled"), True),
        host=str(_deep_get(raw, "keepalive", "host", default="0.0.0.0")),
        port=_as_int(_get_env_str("PORT"), _as_int(_deep_get(raw, "keepalive", "port"), 3000)),
    )

    ticket_cfg = TicketConfig(
        default_category_name=str(_deep_get(raw, "tickets", "default_category_name", default="Tickets")),
        claim_marker=str(_deep_get(raw, "tickets", "claim_marker", default="✅")),
        transcript_page_size=max(1, min(100, _as_int(_deep_get(raw, "tickets", "transcript_page_size"), 100))),
        transcript_max_messages=max(1, _as_int(_deep_get(raw, "tickets", "transcript_max_messages"), 5000)),
    )

    webhook_cfg = WebhookLogConfig(
        enabled=_as_bool(_deep_get(raw, "webhook_log", "enabled"), False),
        url=str(_get_env_str("WEBHOOK_LOG_URL", _deep_get(raw, "webhook_log", "url", default=""))),
    )

    enabled_extensions = [
        str(ext)
        for ext in list(
            _deep_get(
                raw,
                "enabled_extensions",
                default=["cogs.events", "cogs.tickets", "cogs.admin"],
            )
        )
    ]

    return AppConfig(
        discord=discord_cfg,
        logging=logging_cfg,
        keepalive=keepalive_cfg,
        tickets=ticket_cfg,
        webhook_log=webhook_cfg,
        defaults=_load_defaults(raw),
        enabled_extensions=enabled_extensions,
    )
