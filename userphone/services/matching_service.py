import asyncio
from typing import Optional

import structlog

from userphone.services.call_manager import CallManager

logger = structlog.get_logger(__name__)


class QueueMatchingService:
    """Retries matching for requests already waiting in the queue."""

    def __init__(self, manager: CallManager, interval_secs: float = 1):
        self.manager = manager
        self.interval_secs = interval_secs
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Run one queue pass and return the number of calls connected."""
        connected = await self.manager.process_queue()
        if connected:
            logger.info("Queue pass connected calls", connected=connected)
        return connected

    async def _loop(self) -> None:
        try:
            while True:
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Queue matching pass failed")
                await asyncio.sleep(self.interval_secs)
        except asyncio.CancelledError:
            return

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
