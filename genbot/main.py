"""genbot entry point."""
import asyncio
import logging
from functools import partial

from dotenv import load_dotenv

from .backends import build_backends
from .core.config import BotSettings, Config
from .health_server import HealthCheckServer
from .logging_client import read_log_tail, setup_logger
from .services.dispatcher import Dispatcher
from .transport.discord_client import DiscordTransport

SERVICE_NAME = "genbot"

logger = logging.getLogger(__name__)


async def main():
    """Main entry point."""
    load_dotenv()
    settings = BotSettings()

    root_logger = setup_logger(SERVICE_NAME, settings)
    root_logger.info("Initializing genbot...")

    if not settings.DISCORD_TOKEN:
        root_logger.error("DISCORD_TOKEN is not set, exiting")
        return

    config = Config(settings.GENBOT_CONFIG, settings=settings)

    inbound = asyncio.Queue(maxsize=config.queue.inbound_capacity)
    transport = DiscordTransport(inbound)

    dispatcher = Dispatcher(
        config=config,
        inbound=inbound,
        messenger=transport,
        backends=build_backends(config),
        log_source=partial(read_log_tail, settings.LOG_FILE, config.max_log_rows),
    )

    health_server = HealthCheckServer(service_name=SERVICE_NAME, port=settings.HEALTH_PORT)
    health_server.register_check("transport", lambda: transport.is_connected)
    health_server.register_check("queue", lambda: not dispatcher.is_overloaded())
    health_server.set_status_provider(dispatcher.get_status)
    health_server.start()

    await dispatcher.start()
    try:
        root_logger.info("Starting Discord client...")
        async with transport:
            await transport.start(settings.DISCORD_TOKEN)
    finally:
        await dispatcher.stop()
        health_server.stop()
        root_logger.info("genbot stopped")


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
