from typing import List

import pytest

from userphone.models.api.calls import ActiveCall, CallParticipant
from userphone.services.call_events import (
    CallEnded,
    CallEventBus,
    CallMatched,
    ClearedCall,
    ParticipantJoined,
)


def make_call() -> ActiveCall:
    return ActiveCall(
        id="c1",
        initiator_id="u1",
        participants=[
            CallParticipant(channel_id="A", guild_id="g1", webhook_url="https://a"),
            CallParticipant(channel_id="B", guild_id="g2", webhook_url="https://b"),
        ],
    )


class TestCallEventBus:
    """Unit tests for CallEventBus."""

    @pytest.mark.asyncio
    async def test_handlers_run_in_subscription_order(self) -> None:
        bus = CallEventBus()
        calls: List[str] = []

        async def first(event: CallMatched) -> None:
            calls.append("first")

        async def second(event: CallMatched) -> None:
            calls.append("second")

        bus.subscribe(CallMatched, first)
        bus.subscribe(CallMatched, second)

        await bus.publish(CallMatched(call=make_call(), match_time_ms=1.0))

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_only_matching_event_type_is_delivered(self) -> None:
        bus = CallEventBus()
        joined: List[ParticipantJoined] = []

        async def on_joined(event: ParticipantJoined) -> None:
            joined.append(event)

        bus.subscribe(ParticipantJoined, on_joined)

        await bus.publish(CallMatched(call=make_call(), match_time_ms=1.0))
        assert joined == []

        event = ParticipantJoined(
            call_id="c1", channel_id="A", guild_id="g1", user_id="u5"
        )
        await bus.publish(event)
        assert joined == [event]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = CallEventBus()
        calls: List[str] = []

        async def broken(event: CallEnded) -> None:
            raise RuntimeError("boom")

        async def healthy(event: CallEnded) -> None:
            calls.append(event.call.id)

        bus.subscribe(CallEnded, broken)
        bus.subscribe(CallEnded, healthy)

        await bus.publish(
            CallEnded(
                cleared=ClearedCall(call=make_call()),
                ended_by_channel_id="A",
                duration_ms=10.0,
            )
        )

        assert calls == ["c1"]
