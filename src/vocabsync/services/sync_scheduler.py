"""Automatic triggers for draining and cleaning the sync queue."""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from vocabsync.config import settings
from vocabsync.models.progress_models import DrainResult
from vocabsync.services.sync_queue import SyncQueue

logger = logging.getLogger(__name__)

ERROR_BACKOFF = 60  # seconds to wait after an unexpected error in a task


class SyncScheduler:
    """Service for running periodic sync tasks.

    Connectivity is an input: ``is_online`` is polled before each periodic
    drain, and :meth:`notify_connectivity` reports changes as they happen.
    """

    def __init__(
        self,
        sync_queue: SyncQueue,
        is_online: Callable[[], bool],
        drain_interval: Optional[float] = None,
        cleanup_interval: Optional[float] = None,
        retention_days: Optional[int] = None,
        before_drain: Optional[Callable[[], Any]] = None,
    ):
        """Initialize the scheduler with the queue and a connectivity check.

        ``before_drain`` runs ahead of every drain, e.g. to requeue records
        whose queue append failed.
        """
        self.sync_queue = sync_queue
        self.is_online = is_online
        self.drain_interval = settings.sync.drain_interval if drain_interval is None else drain_interval
        self.cleanup_interval = settings.sync.cleanup_interval if cleanup_interval is None else cleanup_interval
        self.retention_days = settings.sync.retention_days if retention_days is None else retention_days
        self.before_drain = before_drain
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False
        self._was_online: Optional[bool] = None

    async def start(self) -> None:
        """Start the scheduler service."""
        if self.running:
            return

        self.running = True
        logger.info("Starting sync scheduler...")

        self.tasks["drain"] = asyncio.create_task(self._run_drains())
        self.tasks["cleanup"] = asyncio.create_task(self._run_cleanups())

    async def stop(self) -> None:
        """Stop the scheduler service."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping sync scheduler...")

        for task in self.tasks.values():
            task.cancel()

        await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()

    async def notify_connectivity(self, online: bool) -> Optional[DrainResult]:
        """Report a connectivity change; coming back online drains immediately."""
        # Unknown previous state counts as offline
        came_online = online and not self._was_online
        self._was_online = online
        if came_online:
            logger.info("Connectivity restored, draining sync queue")
            return await self._drain()
        return None

    async def sync_now(self) -> DrainResult:
        """Manual sync trigger."""
        if not self.is_online():
            logger.info("Offline, manual sync postponed")
            return DrainResult(skipped=True)
        return await self._drain()

    async def _drain(self) -> DrainResult:
        if self.before_drain is not None:
            self.before_drain()
        return await self.sync_queue.drain()

    async def _run_drains(self) -> None:
        """Run periodic drain task."""
        while self.running:
            try:
                online = self.is_online()
                self._was_online = online
                if online:
                    await self._drain()
                else:
                    logger.debug("Offline, skipping periodic drain")
                await asyncio.sleep(self.drain_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in drain task: %s", str(e))
                await asyncio.sleep(ERROR_BACKOFF)

    async def _run_cleanups(self) -> None:
        """Run periodic cleanup task."""
        while self.running:
            try:
                self.sync_queue.cleanup(self.retention_days)
                await asyncio.sleep(self.cleanup_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in cleanup task: %s", str(e))
                await asyncio.sleep(ERROR_BACKOFF)
