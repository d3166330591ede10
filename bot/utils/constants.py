from __future__ import annotations

from enum import StrEnum

COLOR_PANEL = 0xFF5050

EMOJI_LOCK = "🔒"
EMOJI_UNLOCK = "🔓"
EMOJI_CLAIM = "✅"
EMOJI_DELETE = "🗑️"
EMOJI_TRANSCRIPT = "🧾"

CLOSE_REASON_MAX_LENGTH = 1000


class TicketAction(StrEnum):
    """Component custom ids. One member per inbound ticket interaction."""

    SELECT_CATEGORY = "ticket_select"
    LOCK = "ticket_lock"
    UNLOCK = "ticket_unlock"
    CLAIM = "ticket_claim"
    DELETE = "ticket_delete"
    DELETE_WITH_TRANSCRIPT = "ticket_delete_transcript"
    CLOSE_MODAL = "close_modal:notrans"
    CLOSE_MODAL_WITH_TRANSCRIPT = "close_modal:trans"
