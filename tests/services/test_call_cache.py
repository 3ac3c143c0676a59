import pytest
from fakes import FakeClock

from userphone.cache.memory_cache_store import MemoryCacheStore
from userphone.config import CallingConfig
from userphone.models.api.calls import ActiveCall, CallMessage, CallParticipant
from userphone.services.call_cache import CallCache


def make_call(call_id: str = "c1") -> ActiveCall:
    return ActiveCall(
        id=call_id,
        initiator_id="u1",
        participants=[
            CallParticipant(
                channel_id="A", guild_id="g1", webhook_url="https://a", users={"u1"}
            ),
            CallParticipant(
                channel_id="B", guild_id="g2", webhook_url="https://b", users={"u2"}
            ),
        ],
    )


class TestCallCache:
    """Unit tests for the sharded active-call snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_round_trips_through_both_channels(
        self, call_cache: CallCache
    ) -> None:
        call = make_call()
        call.messages.append(
            CallMessage(author_id="u1", author_username="alice", content="hi")
        )
        await call_cache.cache_active_call(call)

        from_a = await call_cache.get_active_call("A")
        from_b = await call_cache.get_active_call("B")

        assert from_a == from_b == call

    @pytest.mark.asyncio
    async def test_each_side_writes_its_own_slice(self, call_cache: CallCache) -> None:
        """Test that two stale copies saving different sides both persist."""
        await call_cache.cache_active_call(make_call())
        copy_a = await call_cache.get_active_call("A")
        copy_b = await call_cache.get_active_call("B")
        assert copy_a is not None and copy_b is not None

        side_a = copy_a.get_participant("A")
        side_b = copy_b.get_participant("B")
        assert side_a is not None and side_b is not None
        side_a.message_count = 4
        side_b.users.add("u9")
        await call_cache.save_participant("c1", side_a)
        await call_cache.save_participant("c1", side_b)

        merged = await call_cache.get_active_call("A")
        assert merged is not None
        assert merged.get_participant("A").message_count == 4  # type: ignore[union-attr]
        assert merged.get_participant("B").users == {"u2", "u9"}  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_one_sided_writes_keep_both_sides_alive(
        self, call_cache: CallCache, clock: FakeClock, config: CallingConfig
    ) -> None:
        """Test that saving side A also extends side B's slice and index."""
        await call_cache.cache_active_call(make_call())
        clock.advance(config.active_call_ttl_secs - 600)

        call = await call_cache.get_active_call("A")
        assert call is not None
        side_a = call.get_participant("A")
        assert side_a is not None
        side_a.message_count += 1
        await call_cache.save_participant("c1", side_a)
        clock.advance(1200)

        from_b = await call_cache.get_active_call("B")
        assert from_b is not None
        assert [p.channel_id for p in from_b.participants] == ["A", "B"]
        from_a = await call_cache.get_active_call("A")
        assert from_a is not None
        assert len(from_a.participants) == 2

    @pytest.mark.asyncio
    async def test_refresh_leaves_newer_index_alone(
        self, call_cache: CallCache, store: MemoryCacheStore, clock: FakeClock
    ) -> None:
        await call_cache.cache_active_call(make_call("c1"))
        await store.set("call:active:B", "c2", 10)

        assert await call_cache.refresh_active_call("c1") is True
        clock.advance(11)

        assert await store.exists("call:active:B") is False
        assert await store.get("call:active:A") == "c1"

    @pytest.mark.asyncio
    async def test_refresh_of_missing_call(self, call_cache: CallCache) -> None:
        assert await call_cache.refresh_active_call("nope") is False

    @pytest.mark.asyncio
    async def test_dangling_index_is_removed(
        self, call_cache: CallCache, store: MemoryCacheStore
    ) -> None:
        await call_cache.cache_active_call(make_call())
        await store.delete("call:data:c1")

        assert await call_cache.get_active_call("A") is None
        assert await store.exists("call:active:A") is False

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_is_discarded(
        self, call_cache: CallCache, store: MemoryCacheStore
    ) -> None:
        await call_cache.cache_active_call(make_call())
        await store.set("call:participant:c1:A", "{broken")

        assert await call_cache.get_active_call("A") is None
        assert await store.exists("call:active:A") is False

    @pytest.mark.asyncio
    async def test_remove_keeps_index_of_newer_call(
        self, call_cache: CallCache, store: MemoryCacheStore
    ) -> None:
        old = make_call("c1")
        await call_cache.cache_active_call(old)
        await store.set("call:active:A", "c2")

        await call_cache.remove_active_call(old)

        assert await store.get("call:active:A") == "c2"
        assert await store.exists("call:active:B") is False
        assert await store.exists("call:data:c1") is False
        assert await store.exists("call:participant:c1:A") is False

    @pytest.mark.asyncio
    async def test_report_flag(self, call_cache: CallCache) -> None:
        assert await call_cache.is_reported("c1") is False
        await call_cache.flag_reported("c1")
        assert await call_cache.is_reported("c1") is True

    @pytest.mark.asyncio
    async def test_notification_window_caps_each_channel(
        self, call_cache: CallCache, clock: FakeClock, config: CallingConfig
    ) -> None:
        """Test the per-channel notice budget and its reset after the window."""
        allowed = [
            await call_cache.allow_notification("A")
            for _ in range(config.notification_limit + 1)
        ]
        assert allowed == [True] * config.notification_limit + [False]
        assert await call_cache.allow_notification("B") is True

        clock.advance(config.notification_window_secs)
        assert await call_cache.allow_notification("A") is True
