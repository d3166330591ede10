from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import uvicorn

from core.api import create_api_app
from core.bot import TicketBot
from core.config import AppConfig, load_config
from core.logging import configure_logging

LOGGER = logging.getLogger(__name__)


async def _run_bot(config: AppConfig) -> None:
    bot = TicketBot(config=config)
    async with bot:
        api_task: asyncio.Task[None] | None = None
        if config.keepalive.enabled:
            server = uvicorn.Server(
                uvicorn.Config(
                    app=create_api_app(bot),
                    host=config.keepalive.host,
                    port=config.keepalive.port,
                    log_level=config.logging.level.lower(),
                )
            )
            api_task = asyncio.create_task(server.serve())
            LOGGER.info("Keep-alive server running on port %s", config.keepalive.port)
        try:
            await bot.start(config.discord.token)
        finally:
            if api_task:
                api_task.cancel()


def main() -> None:
    root = Path(__file__).resolve().parent
    config = load_config(root / "config" / "config.yaml")
    log_file = configure_logging(config.logging)
    LOGGER.info("Writing logs to %s", log_file)
    asyncio.run(_run_bot(config))


if __name__ == "__main__":
    main()
