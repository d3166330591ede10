from __future__ import annotations

import html
import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

import discord

from core.config import TicketConfig
from core.errors import TRANSIENT_ERRORS

LOGGER = logging.getLogger(__name__)

_STYLE = (
    "body{background:#0d0f12;color:#e6e6e6;font-family:Arial,Helvetica,sans-serif;padding:20px}"
    "h1{color:#ffb3b3}"
    ".msg{padding:8px;border-bottom:1px solid #1f1f1f}"
    ".meta{color:#b8b8b8;font-size:12px}"
    ".content{white-space:pre-wrap}"
    ".att a{color:#8ab4ff;text-decoration:none}"
)


@dataclass(slots=True, frozen=True)
class TranscriptAttachment:
    name: str
    url: str


@dataclass(slots=True, frozen=True)
class TranscriptMessage:
    created_at: datetime
    author: str
    content: str
    attachments: tuple[TranscriptAttachment, ...] = field(default_factory=tuple)

    @classmethod
    def from_discord(cls, message: discord.Message) -> TranscriptMessage:
        author = message.author
        return cls(
            created_at=message.created_at,
            author=str(author) if author else "Unknown",
            content=message.content or "",
            attachments=tuple(TranscriptAttachment(a.filename, a.url) for a in message.attachments),
        )


def _esc(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def render_html(title: str, messages: Iterable[TranscriptMessage], tz: tzinfo | None = None) -> bytes:
    """Render a self-contained transcript document.

    Timestamps are shown in ``tz``, or the host's local zone when omitted.
    """
    rows: list[str] = []
    for msg in messages:
        stamp = msg.created_at.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")
        attachments = "".join(
            f'<div class="att"><a href="{_esc(a.url)}" target="_blank">{_esc(a.name)}</a></div>'
            for a in msg.attachments
        )
        rows.append(
            '<div class="msg">'
            f'<div class="meta">{stamp} | <b>{_esc(msg.author or "Unknown")}</b></div>'
            f'<div class="content">{_esc(msg.content)}</div>'
            f"{attachments}"
            "</div>"
        )

    document = (
        '<!doctype html><html><head><meta charset="utf-8">'
        f"<title>{_esc(title)}</title>"
        f"<style>{_STYLE}</style></head><body>"
        f"<h1>{_esc(title)}</h1>"
        + "\n".join(rows)
        + "</body></html>"
    )
    return document.encode("utf-8")


class TranscriptService:
    def __init__(self, config: TicketConfig) -> None:
        self.page_size = config.transcript_page_size
        self.max_messages = config.transcript_max_messages

    async def fetch_history(self, channel: discord.abc.Messageable) -> list[TranscriptMessage]:
        """Walk the channel backwards page by page, newest first.

        Stops at the end of history or at ``max_messages``. A failure while
        paging keeps what was already collected.
        """
        collected: list[TranscriptMessage] = []
        before: discord.Message | None = None
        try:
            while len(collected) < self.max_messages:
                page = [m async for m in channel.history(limit=self.page_size, before=before)]
                if not page:
                    break
                collected.extend(TranscriptMessage.from_discord(m) for m in page)
                before = page[-1]
                if len(page) < self.page_size:
                    break
        except TRANSIENT_ERRORS:
            LOGGER.exception(
                "Transcript paging failed for channel %s after %s messages",
                getattr(channel, "id", None),
                len(collected),
            )
        collected = collected[: self.max_messages]
        collected.reverse()
        return collected

    def build_file(self, title: str, messages: Iterable[TranscriptMessage], filename: str) -> discord.File:
        return discord.File(io.BytesIO(render_html(title, messages)), filename=filename)
