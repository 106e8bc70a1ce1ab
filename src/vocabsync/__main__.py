"""Main entry point for the background sync service."""
import asyncio
import logging
import signal

from vocabsync.config import ensure_directories, settings
from vocabsync.logging_config import setup_logging
from vocabsync.models.base import init_db, make_engine, make_session_factory
from vocabsync.monitoring import start_monitoring
from vocabsync.services.api_client import ApiClient
from vocabsync.services.progress_store import ProgressStore
from vocabsync.services.source_service import TextSourceService
from vocabsync.services.storage_service import StorageService
from vocabsync.services.sync_queue import SyncQueue
from vocabsync.services.sync_scheduler import SyncScheduler
from vocabsync.services.word_service import WordTestService

logger = logging.getLogger("vocabsync")


async def shutdown(sig: signal.Signals) -> None:
    """Cleanup tasks tied to the service's shutdown."""
    logger.info(f"Received exit signal {sig.name}...")

    tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    for task in tasks:
        task.cancel()

    logger.info(f"Cancelling {len(tasks)} outstanding tasks")
    await asyncio.gather(*tasks, return_exceptions=True)


def handle_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Handle exceptions in the event loop."""
    msg = context.get("exception", context["message"])
    logger.error(f"Caught exception: {msg}")


async def main() -> None:
    """Run the sync service until interrupted."""
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s)))

    loop.set_exception_handler(handle_exception)

    engine = make_engine()
    init_db(engine)
    session_factory = make_session_factory(engine)

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info(f"Metrics exposed on port {settings.monitoring.port}")

    api = ApiClient()
    progress_store = ProgressStore(session_factory)
    sync_queue = SyncQueue(session_factory, api, progress_store)
    storage = StorageService(
        progress_store,
        WordTestService(session_factory),
        TextSourceService(session_factory),
        sync_queue,
        api,
    )
    scheduler = SyncScheduler(
        sync_queue,
        is_online=lambda: settings.sync.online,
        before_drain=storage.requeue_unsynced,
    )

    try:
        logger.info("Starting sync service...")
        await scheduler.start()

        while True:
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                break
    finally:
        logger.info("Cleaning up...")
        await scheduler.stop()
        await api.aclose()
        engine.dispose()


def run() -> None:
    """Console entry point."""
    ensure_directories()
    setup_logging("Starting vocabsync sync service...")

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    run()
