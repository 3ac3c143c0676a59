from typing import List, Literal, Optional

import structlog

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.models.api.calls import ActiveCall, CallMessage, utcnow
from userphone.models.api.metrics import StateStats

logger = structlog.get_logger(__name__)

ParticipantAction = Literal["joined", "left"]


class DistributedStateManager:
    """Mirrors active calls into shared hashes so any shard can resolve them.

    Writes are best effort and every method swallows and logs its own errors:
    an unreachable mirror looks like "no call" to the caller, never an error.
    """

    ACTIVE_CALLS_KEY = "call:active:v2"
    CHANNEL_MAPPING_KEY = "call:channel:mapping:v2"

    def __init__(
        self,
        store: BaseCacheStore,
        state_ttl_secs: int = 3600,
        message_limit: int = 100,
    ):
        self.store = store
        self.state_ttl_secs = state_ttl_secs
        self.message_limit = message_limit

    async def sync_active_call(self, call: ActiveCall) -> None:
        try:
            await self.store.hset(
                self.ACTIVE_CALLS_KEY, call.id, call.model_dump_json()
            )
            await self.store.expire(self.ACTIVE_CALLS_KEY, self.state_ttl_secs)
            for participant in call.participants:
                await self.store.hset(
                    self.CHANNEL_MAPPING_KEY, participant.channel_id, call.id
                )
            await self.store.expire(self.CHANNEL_MAPPING_KEY, self.state_ttl_secs)
        except Exception:
            logger.exception("Failed to sync active call", call_id=call.id)

    async def get_active_call(self, call_id: str) -> Optional[ActiveCall]:
        try:
            raw = await self.store.hget(self.ACTIVE_CALLS_KEY, call_id)
            return ActiveCall.model_validate_json(raw) if raw else None
        except Exception:
            logger.exception("Failed to read active call", call_id=call_id)
            return None

    async def get_active_call_by_channel(self, channel_id: str) -> Optional[ActiveCall]:
        try:
            call_id = await self.store.hget(self.CHANNEL_MAPPING_KEY, channel_id)
        except Exception:
            logger.exception("Failed to read channel mapping", channel_id=channel_id)
            return None
        if not call_id:
            return None
        return await self.get_active_call(call_id)

    async def remove_active_call(self, call_id: str) -> None:
        call = await self.get_active_call(call_id)
        try:
            await self.store.hdel(self.ACTIVE_CALLS_KEY, call_id)
            if call is None:
                return
            for participant in call.participants:
                # Only drop mappings that still point at this call
                mapped = await self.store.hget(
                    self.CHANNEL_MAPPING_KEY, participant.channel_id
                )
                if mapped == call_id:
                    await self.store.hdel(
                        self.CHANNEL_MAPPING_KEY, participant.channel_id
                    )
        except Exception:
            logger.exception("Failed to remove active call", call_id=call_id)

    async def update_call_participant(
        self,
        call_id: str,
        channel_id: str,
        user_id: str,
        action: ParticipantAction,
    ) -> None:
        call = await self.get_active_call(call_id)
        if call is None:
            return
        participant = call.get_participant(channel_id)
        if participant is None:
            return
        if action == "joined":
            participant.users.add(user_id)
        else:
            participant.users.discard(user_id)
        await self.sync_active_call(call)

    async def add_call_message(self, call_id: str, message: CallMessage) -> None:
        call = await self.get_active_call(call_id)
        if call is None:
            return
        call.messages.append(message)
        if len(call.messages) > self.message_limit:
            call.messages = call.messages[-self.message_limit :]
        await self.sync_active_call(call)

    async def get_all_active_calls(self) -> List[ActiveCall]:
        try:
            entries = await self.store.hgetall(self.ACTIVE_CALLS_KEY)
        except Exception:
            logger.exception("Failed to list active calls")
            return []

        calls: List[ActiveCall] = []
        for call_id, raw in entries.items():
            try:
                calls.append(ActiveCall.model_validate_json(raw))
            except ValueError:
                logger.warning("Dropping corrupt call state", call_id=call_id)
                await self.store.hdel(self.ACTIVE_CALLS_KEY, call_id)
        return calls

    async def get_state_stats(self) -> StateStats:
        calls = await self.get_all_active_calls()
        now = utcnow()
        total_participants = sum(
            len(participant.users)
            for call in calls
            for participant in call.participants
        )
        total_duration_ms = sum(
            (now - call.start_time).total_seconds() * 1000 for call in calls
        )
        return StateStats(
            active_calls_count=len(calls),
            total_participants=total_participants,
            average_call_duration_ms=total_duration_ms / len(calls) if calls else 0.0,
        )

    async def cleanup_expired_state(self, max_age_secs: int = 4 * 60 * 60) -> int:
        """Drop mirrored calls that started more than ``max_age_secs`` ago."""
        now = utcnow()
        removed = 0
        for call in await self.get_all_active_calls():
            age_secs = (now - call.start_time).total_seconds()
            if age_secs > max_age_secs:
                logger.info(
                    "Removing expired call state",
                    call_id=call.id,
                    age_minutes=round(age_secs / 60),
                )
                await self.remove_active_call(call.id)
                removed += 1
        return removed
