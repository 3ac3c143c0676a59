import asyncio
import time
from typing import Optional

import structlog

from userphone.repositories.call_repository import CallRepository
from userphone.services.distributed_state_manager import DistributedStateManager

logger = structlog.get_logger(__name__)

# Runs slower than this are logged as warnings
SLOW_CLEANUP_MS = 5000


class CallCleanupService:
    """Deletes old ended calls on a fixed interval."""

    def __init__(
        self,
        repository: CallRepository,
        older_than_hours: int = 48,
        interval_secs: float = 15 * 60,
        state_manager: Optional[DistributedStateManager] = None,
    ):
        self.repository = repository
        self.older_than_hours = older_than_hours
        self.interval_secs = interval_secs
        self.state_manager = state_manager
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Run one cleanup pass and return the number of calls deleted."""
        start = time.perf_counter()
        deleted = await self.repository.cleanup_old_calls(self.older_than_hours)
        if self.state_manager is not None:
            await self.state_manager.cleanup_expired_state()

        duration_ms = (time.perf_counter() - start) * 1000
        log = logger.warning if duration_ms > SLOW_CLEANUP_MS else logger.info
        log(
            "Call cleanup finished",
            deleted=deleted,
            older_than_hours=self.older_than_hours,
            duration_ms=round(duration_ms),
        )
        return deleted

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_secs)
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Call cleanup failed")
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
