"""
Task & workflow orchestration service.

Starts the database, the cron scheduler and the recurring task registry,
then runs until SIGINT/SIGTERM.
"""

import asyncio
import signal
from contextlib import asynccontextmanager

from core.container import Container, container
from core.config import Settings
from core.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app_container: Container):
    """Service lifespan management."""
    # Startup
    logger.info("Starting orchestrator")

    await app_container.database().startup()

    scheduler = app_container.cron_scheduler()
    coordinator = app_container.task_coordinator()
    scheduler.start()
    scheduled = await coordinator.initialize_scheduled_tasks()

    logger.info("Services started successfully", recurring_tasks=scheduled)
    try:
        yield app_container
    finally:
        # Shutdown in reverse order
        await coordinator.shutdown()
        scheduler.shutdown()
        await app_container.workflow_engine().shutdown()
        await app_container.database().shutdown()
        logger.info("Services shutdown complete")


async def run(app_container: Container) -> None:
    """Run until a termination signal arrives."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))

    async with lifespan(app_container):
        await stop.wait()
        logger.info("Shutdown signal received")


def serve() -> None:
    settings: Settings = container.settings()
    configure_logging(settings)
    logger.info("Starting orchestrator service", database_url=settings.database_url,
                debug=settings.debug, timezone=settings.scheduler_timezone)
    asyncio.run(run(container))


if __name__ == "__main__":
    serve()
