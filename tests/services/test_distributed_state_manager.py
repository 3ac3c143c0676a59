from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from userphone.cache.memory_cache_store import MemoryCacheStore
from userphone.models.api.calls import (
    ActiveCall,
    CallMessage,
    CallParticipant,
    utcnow,
)
from userphone.services.distributed_state_manager import DistributedStateManager


def make_call(call_id: str = "c1", age_hours: float = 0) -> ActiveCall:
    return ActiveCall(
        id=call_id,
        initiator_id="u1",
        start_time=utcnow() - timedelta(hours=age_hours),
        participants=[
            CallParticipant(
                channel_id=f"{call_id}-A",
                guild_id="g1",
                webhook_url="https://a",
                users={"u1"},
            ),
            CallParticipant(
                channel_id=f"{call_id}-B",
                guild_id="g2",
                webhook_url="https://b",
                users={"u2"},
            ),
        ],
    )


class TestDistributedStateManager:
    """Unit tests for DistributedStateManager."""

    @pytest.fixture
    def state(self, store: MemoryCacheStore) -> DistributedStateManager:
        return DistributedStateManager(store, message_limit=2)

    @pytest.mark.asyncio
    async def test_sync_and_lookup_by_channel(
        self, state: DistributedStateManager
    ) -> None:
        call = make_call()
        await state.sync_active_call(call)

        found = await state.get_active_call_by_channel("c1-B")

        assert found is not None
        assert found.id == "c1"
        assert await state.get_active_call_by_channel("other") is None

    @pytest.mark.asyncio
    async def test_remove_keeps_mapping_of_newer_call(
        self, state: DistributedStateManager, store: MemoryCacheStore
    ) -> None:
        await state.sync_active_call(make_call())
        await store.hset(DistributedStateManager.CHANNEL_MAPPING_KEY, "c1-A", "c2")

        await state.remove_active_call("c1")

        assert await state.get_active_call("c1") is None
        assert (
            await store.hget(DistributedStateManager.CHANNEL_MAPPING_KEY, "c1-A")
            == "c2"
        )
        assert (
            await store.hget(DistributedStateManager.CHANNEL_MAPPING_KEY, "c1-B")
            is None
        )

    @pytest.mark.asyncio
    async def test_participant_updates(self, state: DistributedStateManager) -> None:
        await state.sync_active_call(make_call())

        await state.update_call_participant("c1", "c1-A", "u5", "joined")
        await state.update_call_participant("c1", "c1-B", "u2", "left")

        call = await state.get_active_call("c1")
        assert call is not None
        assert call.get_participant("c1-A").users == {"u1", "u5"}  # type: ignore[union-attr]
        assert call.get_participant("c1-B").users == set()  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_message_log_is_capped(self, state: DistributedStateManager) -> None:
        await state.sync_active_call(make_call())

        for content in ("one", "two", "three"):
            await state.add_call_message(
                "c1",
                CallMessage(author_id="u1", author_username="alice", content=content),
            )

        call = await state.get_active_call("c1")
        assert call is not None
        assert [m.content for m in call.messages] == ["two", "three"]

    @pytest.mark.asyncio
    async def test_corrupt_entries_are_dropped(
        self, state: DistributedStateManager, store: MemoryCacheStore
    ) -> None:
        await state.sync_active_call(make_call())
        await store.hset(DistributedStateManager.ACTIVE_CALLS_KEY, "bad", "{nope")

        calls = await state.get_all_active_calls()

        assert [c.id for c in calls] == ["c1"]
        assert await store.hget(DistributedStateManager.ACTIVE_CALLS_KEY, "bad") is None

    @pytest.mark.asyncio
    async def test_state_stats(self, state: DistributedStateManager) -> None:
        await state.sync_active_call(make_call("c1", age_hours=1))
        await state.sync_active_call(make_call("c2", age_hours=1))

        stats = await state.get_state_stats()

        assert stats.active_calls_count == 2
        assert stats.total_participants == 4
        assert stats.average_call_duration_ms >= 3600 * 1000

    @pytest.mark.asyncio
    async def test_cleanup_removes_calls_older_than_max_age(
        self, state: DistributedStateManager
    ) -> None:
        await state.sync_active_call(make_call("old", age_hours=5))
        await state.sync_active_call(make_call("new", age_hours=1))

        removed = await state.cleanup_expired_state()

        assert removed == 1
        assert await state.get_active_call("old") is None
        assert await state.get_active_call_by_channel("old-A") is None
        assert await state.get_active_call("new") is not None

    @pytest.mark.asyncio
    async def test_unreachable_store_reads_as_no_call(self) -> None:
        store = AsyncMock()
        store.hget.side_effect = ConnectionError("redis down")
        store.hset.side_effect = ConnectionError("redis down")
        state = DistributedStateManager(store)

        await state.sync_active_call(make_call())

        assert await state.get_active_call_by_channel("c1-A") is None
        assert await state.get_active_call("c1") is None
