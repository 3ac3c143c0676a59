from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import BaseModel, ValidationError

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.config import CallingConfig
from userphone.models.api.calls import (
    ActiveCall,
    CallMessage,
    CallParticipant,
    CallStatus,
)

logger = structlog.get_logger(__name__)


class CallHeader(BaseModel):
    """Call-level fields of an active snapshot; participants are stored separately."""

    id: str
    status: CallStatus
    initiator_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    created_at: datetime
    channel_ids: List[str]


class CallCache:
    """Call-specific view over the cache store.

    An active call is stored as a header, one slice per participant and an
    append-only message list, so each side of a call only ever rewrites its own
    slice and message appends never overwrite each other. ``get_active_call``
    merges them back into a single snapshot.
    """

    KEY_PREFIX = "call"

    def __init__(self, store: BaseCacheStore, config: CallingConfig):
        self.store = store
        self.config = config

    # Keys

    def _index_key(self, channel_id: str) -> str:
        return f"{self.KEY_PREFIX}:active:{channel_id}"

    def _header_key(self, call_id: str) -> str:
        return f"{self.KEY_PREFIX}:data:{call_id}"

    def _participant_key(self, call_id: str, channel_id: str) -> str:
        return f"{self.KEY_PREFIX}:participant:{call_id}:{channel_id}"

    def _messages_key(self, call_id: str) -> str:
        return f"{self.KEY_PREFIX}:messages:{call_id}"

    def _ended_key(self, call_id: str) -> str:
        return f"{self.KEY_PREFIX}:ended:{call_id}"

    def _report_key(self, call_id: str) -> str:
        return f"{self.KEY_PREFIX}:report:{call_id}"

    def _recent_matches_key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:recent_matches:{user_id}"

    def _webhook_key(self, channel_id: str) -> str:
        return f"{self.KEY_PREFIX}:webhook:{channel_id}"

    def _notifications_key(self, channel_id: str) -> str:
        return f"{self.KEY_PREFIX}:notifications:{channel_id}"

    # Active calls

    async def cache_active_call(self, call: ActiveCall) -> None:
        """Write the full snapshot of a call and index it by both channels."""
        ttl = self.config.active_call_ttl_secs
        header = CallHeader(
            id=call.id,
            status=call.status,
            initiator_id=call.initiator_id,
            start_time=call.start_time,
            end_time=call.end_time,
            created_at=call.created_at,
            channel_ids=[p.channel_id for p in call.participants],
        )
        await self.store.set(self._header_key(call.id), header.model_dump_json(), ttl)

        for participant in call.participants:
            await self.store.set(
                self._participant_key(call.id, participant.channel_id),
                participant.model_dump_json(),
                ttl,
            )
            await self.store.set(self._index_key(participant.channel_id), call.id, ttl)

        messages_key = self._messages_key(call.id)
        await self.store.delete(messages_key)
        recent = call.messages[-self.config.message_log_limit :]
        if recent:
            await self.store.rpush(
                messages_key, *(m.model_dump_json() for m in recent)
            )
            await self.store.expire(messages_key, ttl)

    async def get_active_call(self, channel_id: str) -> Optional[ActiveCall]:
        call_id = await self.store.get(self._index_key(channel_id))
        if not call_id:
            return None

        raw_header = await self.store.get(self._header_key(call_id))
        if not raw_header:
            # Index outlived the snapshot
            await self.store.delete(self._index_key(channel_id))
            return None

        try:
            header = CallHeader.model_validate_json(raw_header)
            participants: List[CallParticipant] = []
            for participant_channel_id in header.channel_ids:
                raw = await self.store.get(
                    self._participant_key(call_id, participant_channel_id)
                )
                if raw:
                    participants.append(CallParticipant.model_validate_json(raw))
            raw_messages = await self.store.lrange(self._messages_key(call_id), 0, -1)
            messages = [CallMessage.model_validate_json(m) for m in raw_messages]
        except ValidationError:
            logger.warning(
                "Discarding corrupt call snapshot",
                call_id=call_id,
                channel_id=channel_id,
            )
            await self.store.delete(self._index_key(channel_id))
            return None

        return ActiveCall(
            id=header.id,
            status=header.status,
            initiator_id=header.initiator_id,
            start_time=header.start_time,
            end_time=header.end_time,
            created_at=header.created_at,
            participants=participants,
            messages=messages,
        )

    async def save_participant(
        self, call_id: str, participant: CallParticipant
    ) -> None:
        """Rewrite one side's slice and refresh the TTLs of the whole call."""
        await self.store.set(
            self._participant_key(call_id, participant.channel_id),
            participant.model_dump_json(),
            self.config.active_call_ttl_secs,
        )
        await self.refresh_active_call(call_id)

    async def refresh_active_call(self, call_id: str) -> bool:
        """Extend every key of an active call, both sides included.

        Indexes already pointing at a newer call are left alone. Returns False
        when the header is gone or unreadable.
        """
        ttl = self.config.active_call_ttl_secs
        raw_header = await self.store.get(self._header_key(call_id))
        if not raw_header:
            return False
        try:
            header = CallHeader.model_validate_json(raw_header)
        except ValidationError:
            logger.warning("Cannot refresh corrupt call header", call_id=call_id)
            return False

        await self.store.expire(self._header_key(call_id), ttl)
        await self.store.expire(self._messages_key(call_id), ttl)
        for channel_id in header.channel_ids:
            await self.store.expire(self._participant_key(call_id, channel_id), ttl)
            index_key = self._index_key(channel_id)
            if await self.store.get(index_key) == call_id:
                await self.store.expire(index_key, ttl)
        return True

    async def append_message(self, call_id: str, message: CallMessage) -> int:
        """Append to the rolling message log, evicting the oldest entries."""
        key = self._messages_key(call_id)
        limit = self.config.message_log_limit
        length = await self.store.rpush(key, message.model_dump_json())
        if length > limit:
            await self.store.ltrim(key, -limit, -1)
        await self.store.expire(key, self.config.active_call_ttl_secs)
        return min(length, limit)

    async def remove_active_call(self, call: ActiveCall) -> None:
        """Drop every key of an active call, leaving newer calls' indexes alone."""
        for participant in call.participants:
            index_key = self._index_key(participant.channel_id)
            if await self.store.get(index_key) == call.id:
                await self.store.delete(index_key)
        await self.store.delete(
            self._header_key(call.id),
            self._messages_key(call.id),
            *(self._participant_key(call.id, p.channel_id) for p in call.participants),
        )

    # Ended calls and reports

    async def store_ended_call(self, call: ActiveCall, ttl: int) -> None:
        await self.store.set(self._ended_key(call.id), call.model_dump_json(), ttl)

    async def get_ended_call(self, call_id: str) -> Optional[ActiveCall]:
        raw = await self.store.get(self._ended_key(call_id))
        if not raw:
            return None
        return ActiveCall.model_validate_json(raw)

    async def extend_ended_call(self, call_id: str, ttl: int) -> bool:
        return await self.store.expire(self._ended_key(call_id), ttl)

    async def flag_reported(self, call_id: str) -> None:
        await self.store.set(
            self._report_key(call_id), "1", self.config.reported_call_ttl_secs
        )

    async def is_reported(self, call_id: str) -> bool:
        return await self.store.exists(self._report_key(call_id))

    # Recent matches

    async def record_recent_match(self, user_id_1: str, user_id_2: str) -> None:
        """Push each user onto the other's recent list, most recent first."""
        limit = self.config.recent_match_limit
        ttl = self.config.recent_match_ttl_secs
        for owner, counterpart in ((user_id_1, user_id_2), (user_id_2, user_id_1)):
            key = self._recent_matches_key(owner)
            await self.store.lpush(key, counterpart)
            await self.store.ltrim(key, 0, limit - 1)
            await self.store.expire(key, ttl)

    async def get_recent_matches(self, user_id: str) -> List[str]:
        return await self.store.lrange(
            self._recent_matches_key(user_id), 0, self.config.recent_match_limit - 1
        )

    async def has_recent_match(self, user_id_1: str, user_id_2: str) -> bool:
        if user_id_2 in await self.get_recent_matches(user_id_1):
            return True
        return user_id_1 in await self.get_recent_matches(user_id_2)

    # Webhooks

    async def cache_webhook(self, channel_id: str, webhook_url: str) -> None:
        await self.store.set(
            self._webhook_key(channel_id), webhook_url, self.config.webhook_ttl_secs
        )

    async def get_webhook(self, channel_id: str) -> Optional[str]:
        return await self.store.get(self._webhook_key(channel_id))

    # Notification rate limit

    async def allow_notification(self, channel_id: str) -> bool:
        """Count a system notice for a channel; False once the window is full."""
        key = self._notifications_key(channel_id)
        count = await self.store.incr(key)
        if count == 1:
            await self.store.expire(key, self.config.notification_window_secs)
        return count <= self.config.notification_limit
