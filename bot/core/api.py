from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

if TYPE_CHECKING:
    from core.bot import TicketBot


def create_api_app(bot: TicketBot) -> FastAPI:
    app = FastAPI(title="Ticket Bot keep-alive", version="1.0.0", docs_url=None, redoc_url=None)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "Ticket bot is alive"

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "ready": bot.is_ready(),
            "open_tickets": len(bot.registry),
        }

    return app
