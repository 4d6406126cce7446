"""
Badminton event platform - main entry point.

One codebase, three deployable roles selected by SERVICE_ROLE:
registry (events + capacity), registration (players + waitlist) and
settlement (billing).
"""

import asyncio
import logging
import signal
import sys

from aiohttp import web

from adapters.loader import Container, build_container
from config.features import features
from config.settings import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(f"{settings.service_role}.log", encoding="utf-8"),
    ],
)
logger = logging.getLogger(__name__)

# Set DEBUG level only for our app loggers, not for noisy libraries
if features.DEBUG_MODE:
    for name in ['adapters', 'core', 'infrastructure', '__main__']:
        logging.getLogger(name).setLevel(logging.DEBUG)
# Broker and HTTP client internals are chatty even at INFO
for name in ['aio_pika', 'aiormq', 'httpx', 'httpcore', 'hpack']:
    logging.getLogger(name).setLevel(logging.WARNING)


async def run_web_server(container: Container) -> web.AppRunner:
    """Run the role's aiohttp app."""
    runner = web.AppRunner(container.app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.port)
    await site.start()
    logger.info(f"{settings.resolved_service_name} HTTP API running on port {settings.port}")
    return runner


async def main():
    """Main function - starts the role and waits for a stop signal."""

    logger.info(f"=== {settings.resolved_service_name} Starting (role={settings.service_role}) ===")
    logger.info("Feature Flags:")
    for key, value in features.to_dict().items():
        logger.info(f"  {key}: {value}")

    container = build_container(settings, features)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows

    # Consumers registered before connect are declared on (re)connect
    for consumer in container.consumers:
        await container.bus.consume(consumer.queue, consumer.binding_keys,
                                    consumer.handler, consumer.prefetch)
    await container.bus.connect()

    runner = await run_web_server(container)

    scheduler_task = None
    if container.scheduler:
        scheduler_task = asyncio.create_task(container.scheduler.run())
        logger.info("Event lifecycle scheduler started")

    logger.info(f"{settings.resolved_service_name} started!")

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        if container.scheduler:
            await container.scheduler.stop()
            scheduler_task.cancel()
        await runner.cleanup()
        await container.bus.close()
        for close in container.closers:
            await close()
        logger.info(f"{settings.resolved_service_name} stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
