"""Service for triggering periodic queue flushes."""
import asyncio
import logging
from typing import Dict, Optional

from vocasync.config import settings
from vocasync.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for running sync passes on a timer."""

    def __init__(self, sync_service: SyncService, interval: Optional[float] = None):
        """Initialize the service with the sync coordinator and a flush interval in seconds."""
        self.sync_service = sync_service
        self.interval = interval if interval is not None else settings.sync.flush_interval
        self.tasks: Dict[str, asyncio.Task] = {}
        self.running = False
        self.last_result: Dict[str, int] = {}

    async def start(self) -> None:
        """Start the scheduler service."""
        if self.running:
            return

        self.running = True
        logger.info("Starting scheduler service (flush every %ss)...", self.interval)

        self.tasks["flush_pending"] = asyncio.create_task(self._run_flush_pending())

    async def stop(self) -> None:
        """Stop the scheduler service."""
        if not self.running:
            return

        self.running = False
        logger.info("Stopping scheduler service...")

        # Cancel all tasks
        for task in self.tasks.values():
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()

    async def _run_flush_pending(self) -> None:
        """Wait for the next pass, then flush all queues."""
        while self.running:
            await asyncio.sleep(self.interval)
            try:
                self.last_result = await self.sync_service.flush_all()
                synced = sum(self.last_result.values())
                if synced:
                    logger.info("Scheduled flush synced %d entries: %s", synced, self.last_result)
            except Exception as e:
                # Keep the timer alive; the next pass retries
                logger.error(f"Unexpected error in scheduled flush: {e}")
