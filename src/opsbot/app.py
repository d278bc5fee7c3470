"""opsbot - process entry point wiring the Discord bot and webhook server."""

import asyncio
import logging

import uvicorn
from pydantic import ValidationError

from opsbot.bot import OpsBot
from opsbot.server import create_app
from opsbot.settings import Settings, configure_logging, load_settings
from opsbot.state import MessageStateStore

logger = logging.getLogger("opsbot")


async def serve(settings: Settings) -> None:
    """Run the bot and the webhook server until either one stops."""
    bot = OpsBot(settings, MessageStateStore(settings.status_state_file))
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(settings, bot.notify),
            host=settings.webhook_host,
            port=settings.webhook_port,
            log_level=settings.log_level.lower(),
        )
    )

    async with bot:
        bot_task = asyncio.create_task(bot.start(settings.discord_token), name="discord")
        server_task = asyncio.create_task(server.serve(), name="webhook-server")
        done, _ = await asyncio.wait(
            {bot_task, server_task}, return_when=asyncio.FIRST_COMPLETED
        )

        server.should_exit = True
        await bot.close()
        await asyncio.gather(bot_task, server_task, return_exceptions=True)
        for task in done:
            exc = None if task.cancelled() else task.exception()
            if exc is not None:
                raise exc


def main() -> None:
    """Entry point for the opsbot application."""
    try:
        settings = load_settings()
    except ValidationError as exc:
        configure_logging()
        logger.error("Invalid configuration:\n%s", exc)
        raise SystemExit(2) from None

    configure_logging(settings.log_level_numeric())
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
