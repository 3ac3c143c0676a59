from typing import List, Optional, Tuple

import structlog
from pydantic import ValidationError

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.models.api.calls import CallRequest, QueueStats, QueueStatus, utcnow

logger = structlog.get_logger(__name__)


class QueueManager:
    """FIFO pool of channels waiting for a match, stored as a cache list."""

    QUEUE_KEY = "call:queue"

    def __init__(self, store: BaseCacheStore):
        self.store = store

    async def _entries(self) -> List[Tuple[str, CallRequest]]:
        """Raw and parsed entries in queue order; corrupt entries are removed."""
        entries: List[Tuple[str, CallRequest]] = []
        for raw in await self.store.lrange(self.QUEUE_KEY, 0, -1):
            try:
                entries.append((raw, CallRequest.model_validate_json(raw)))
            except ValidationError:
                logger.warning("Dropping corrupt queue entry", entry=raw[:200])
                await self.store.lrem(self.QUEUE_KEY, 1, raw)
        return entries

    async def enqueue(self, request: CallRequest) -> QueueStatus:
        """Append a request; returns its 1-based position and the queue length."""
        length = await self.store.rpush(self.QUEUE_KEY, request.model_dump_json())
        logger.debug(
            "Request enqueued",
            request_id=request.id,
            channel_id=request.channel_id,
            position=length,
        )
        return QueueStatus(position=length, queue_length=length)

    async def requeue_front(self, request: CallRequest) -> None:
        """Put a request back at the head of the queue."""
        await self.store.lpush(self.QUEUE_KEY, request.model_dump_json())
        logger.debug(
            "Request requeued", request_id=request.id, channel_id=request.channel_id
        )

    async def is_in_queue(self, channel_id: str) -> bool:
        return await self.get_queue_status(channel_id) is not None

    async def get_queue_status(self, channel_id: str) -> Optional[CallRequest]:
        for _, request in await self._entries():
            if request.channel_id == channel_id:
                return request
        return None

    async def get_position(self, channel_id: str) -> Optional[QueueStatus]:
        entries = await self._entries()
        for index, (_, request) in enumerate(entries):
            if request.channel_id == channel_id:
                return QueueStatus(position=index + 1, queue_length=len(entries))
        return None

    async def dequeue_by_channel_id(self, channel_id: str) -> bool:
        """Remove the first request for a channel."""
        for raw, request in await self._entries():
            if request.channel_id == channel_id:
                return await self.store.lrem(self.QUEUE_KEY, 1, raw) > 0
        return False

    async def dequeue(self, request_id: str) -> bool:
        """Remove a request by id; False if another process already took it."""
        for raw, request in await self._entries():
            if request.id == request_id:
                return await self.store.lrem(self.QUEUE_KEY, 1, raw) > 0
        return False

    async def get_pending_requests(self) -> List[CallRequest]:
        return [request for _, request in await self._entries()]

    async def get_queue_length(self) -> int:
        return await self.store.llen(self.QUEUE_KEY)

    async def get_queue_stats(self) -> QueueStats:
        requests = await self.get_pending_requests()
        if not requests:
            return QueueStats(length=0, oldest_request_age_ms=0)
        oldest = min(request.timestamp for request in requests)
        age_ms = (utcnow() - oldest).total_seconds() * 1000
        return QueueStats(length=len(requests), oldest_request_age_ms=max(age_ms, 0))
