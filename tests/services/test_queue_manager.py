import pytest
from fakes import make_request

from userphone.cache.memory_cache_store import MemoryCacheStore
from userphone.services.queue_manager import QueueManager


class TestQueueManager:
    """Unit tests for QueueManager."""

    @pytest.mark.asyncio
    async def test_enqueue_returns_position_and_length(
        self, queue: QueueManager
    ) -> None:
        """Test that positions are 1-based and follow insertion order."""
        first = await queue.enqueue(make_request("r1", "A", "g1", "u1"))
        second = await queue.enqueue(make_request("r2", "B", "g2", "u2"))

        assert (first.position, first.queue_length) == (1, 1)
        assert (second.position, second.queue_length) == (2, 2)

        status = await queue.get_position("B")
        assert status is not None
        assert (status.position, status.queue_length) == (2, 2)

    @pytest.mark.asyncio
    async def test_is_in_queue_and_get_queue_status(self, queue: QueueManager) -> None:
        await queue.enqueue(make_request("r1", "A", "g1", "u1"))

        assert await queue.is_in_queue("A") is True
        assert await queue.is_in_queue("B") is False
        request = await queue.get_queue_status("A")
        assert request is not None
        assert request.id == "r1"
        assert await queue.get_queue_status("B") is None

    @pytest.mark.asyncio
    async def test_dequeue_by_channel_removes_first_entry_only(
        self, queue: QueueManager
    ) -> None:
        await queue.enqueue(make_request("r1", "A", "g1", "u1"))
        await queue.enqueue(make_request("r2", "A", "g1", "u1"))
        await queue.enqueue(make_request("r3", "B", "g2", "u2"))

        assert await queue.dequeue_by_channel_id("A") is True

        pending = await queue.get_pending_requests()
        assert [r.id for r in pending] == ["r2", "r3"]
        assert await queue.dequeue_by_channel_id("missing") is False

    @pytest.mark.asyncio
    async def test_dequeue_by_id_is_single_shot(self, queue: QueueManager) -> None:
        """Test that a second dequeue of the same request reports it as taken."""
        await queue.enqueue(make_request("r1", "A", "g1", "u1"))

        assert await queue.dequeue("r1") is True
        assert await queue.dequeue("r1") is False
        assert await queue.get_queue_length() == 0

    @pytest.mark.asyncio
    async def test_requeue_front_restores_head_position(
        self, queue: QueueManager
    ) -> None:
        first = make_request("r1", "A", "g1", "u1")
        await queue.enqueue(first)
        await queue.enqueue(make_request("r2", "B", "g2", "u2"))
        await queue.dequeue("r1")

        await queue.requeue_front(first)

        assert [r.id for r in await queue.get_pending_requests()] == ["r1", "r2"]
        assert await queue.get_position("A") is not None
        assert await queue.dequeue("r1") is True

    @pytest.mark.asyncio
    async def test_corrupt_entries_are_dropped(
        self, queue: QueueManager, store: MemoryCacheStore
    ) -> None:
        await queue.enqueue(make_request("r1", "A", "g1", "u1"))
        await store.rpush(QueueManager.QUEUE_KEY, "{not json")

        pending = await queue.get_pending_requests()

        assert [r.id for r in pending] == ["r1"]
        assert await queue.get_queue_length() == 1

    @pytest.mark.asyncio
    async def test_queue_stats(self, queue: QueueManager) -> None:
        empty = await queue.get_queue_stats()
        assert empty.length == 0
        assert empty.oldest_request_age_ms == 0

        await queue.enqueue(make_request("r1", "A", "g1", "u1"))
        await queue.enqueue(make_request("r2", "B", "g2", "u2"))
        stats = await queue.get_queue_stats()
        assert stats.length == 2
        assert stats.oldest_request_age_ms >= 0
