import asyncio
import uuid
from typing import Any, Coroutine, Dict, Iterable, List, Optional, Set

import structlog

from userphone import call_texts
from userphone.clients.base_channel_provisioner import BaseChannelProvisioner
from userphone.clients.base_event_sink import BaseEventSink
from userphone.clients.base_leaderboard_updater import BaseLeaderboardUpdater
from userphone.clients.base_notification_client import BaseNotificationClient
from userphone.config import CallingConfig
from userphone.errors import CallError, CallErrorCode
from userphone.models.api.calls import (
    ActiveCall,
    CallChannel,
    CallMessage,
    CallParticipant,
    CallRequest,
    CallStatus,
    MatchResult,
    utcnow,
)
from userphone.models.api.results import CallOutcome, CallResult
from userphone.models.api.webhooks import WebhookMessage
from userphone.repositories.call_repository import CallRepository
from userphone.services.call_cache import CallCache
from userphone.services.call_events import (
    CallEnded,
    CallEventBus,
    CallMatched,
    ClearedCall,
    MessageThresholdReached,
    ParticipantJoined,
    ParticipantLeft,
)
from userphone.services.call_metrics import CallMetrics
from userphone.services.distributed_state_manager import DistributedStateManager
from userphone.services.match_engine import MatchEngine
from userphone.services.queue_manager import QueueManager

logger = structlog.get_logger(__name__)


class CallManager:
    """Owns the call lifecycle: queue, connect, relay, end and skip.

    Every public operation returns a result instead of raising. Persistence,
    leaderboards, the event sink and the distributed mirror are best effort
    and run as tracked background tasks. Without a ``state_manager`` the
    manager runs in cache-only mode.
    """

    def __init__(
        self,
        *,
        call_cache: CallCache,
        queue: QueueManager,
        match_engine: MatchEngine,
        repository: CallRepository,
        notifier: BaseNotificationClient,
        provisioner: BaseChannelProvisioner,
        leaderboard: BaseLeaderboardUpdater,
        event_sink: BaseEventSink,
        metrics: CallMetrics,
        config: CallingConfig,
        state_manager: Optional[DistributedStateManager] = None,
        bus: Optional[CallEventBus] = None,
    ):
        self.call_cache = call_cache
        self.queue = queue
        self.match_engine = match_engine
        self.repository = repository
        self.notifier = notifier
        self.provisioner = provisioner
        self.leaderboard = leaderboard
        self.event_sink = event_sink
        self.metrics = metrics
        self.config = config
        self.state_manager = state_manager
        self.bus = bus or CallEventBus()

        self._tasks: Set[asyncio.Task] = set()
        # request id -> task writing its QUEUED placeholder row
        self._placeholder_tasks: Dict[str, asyncio.Task] = {}

        self.bus.subscribe(CallMatched, self._on_call_matched)
        self.bus.subscribe(CallEnded, self._on_call_ended)
        self.bus.subscribe(ParticipantJoined, self._on_participant_joined)
        self.bus.subscribe(ParticipantLeft, self._on_participant_left)
        self.bus.subscribe(MessageThresholdReached, self._on_threshold_reached)

    # Background work

    def _spawn(
        self, coro: Coroutine[Any, Any, Any], task_name: str, **context: Any
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run_background(coro, task_name, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_background(
        self,
        coro: Coroutine[Any, Any, Any],
        task_name: str,
        context: Dict[str, Any],
    ) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Background task failed", task=task_name, **context)

    async def drain(self) -> None:
        """Wait until every background task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        await self.drain()

    # Lookups

    async def _find_active_call(self, channel_id: str) -> Optional[ActiveCall]:
        call = await self.call_cache.get_active_call(channel_id)
        if call is not None:
            return call

        if self.state_manager is None:
            return None

        call = await self.state_manager.get_active_call_by_channel(channel_id)
        if call is not None:
            self._spawn(
                self.call_cache.cache_active_call(call),
                "recache_active_call",
                call_id=call.id,
            )
        return call

    async def get_active_call(self, channel_id: str) -> Optional[ActiveCall]:
        """Resolve a channel's call: cache, then distributed state, else None."""
        try:
            return await self._find_active_call(channel_id)
        except Exception:
            logger.exception("Failed to look up active call", channel_id=channel_id)
            return None

    async def get_ended_call(self, call_id: str) -> Optional[ActiveCall]:
        try:
            return await self.call_cache.get_ended_call(call_id)
        except Exception:
            logger.exception("Failed to read ended call", call_id=call_id)
            return None

    async def report_call(self, call_id: str) -> bool:
        """Flag a call as reported and keep its ended snapshot for moderation.

        Returns whether an ended snapshot was found and extended. The flag is
        set either way, so a call reported while still active keeps the longer
        retention when it ends.
        """
        try:
            await self.call_cache.flag_reported(call_id)
            extended = await self.call_cache.extend_ended_call(
                call_id, self.config.reported_call_ttl_secs
            )
            logger.info("Call reported", call_id=call_id, snapshot_extended=extended)
            return extended
        except Exception:
            logger.exception("Failed to report call", call_id=call_id)
            return False

    # Initiate

    async def initiate_call(
        self, channel: CallChannel, initiator_id: str
    ) -> CallResult:
        stop = self.metrics.start_timer("command")
        try:
            return await self._initiate_call(channel, initiator_id)
        except Exception:
            logger.exception(
                "Failed to initiate call",
                channel_id=channel.id,
                guild_id=channel.guild_id,
                initiator_id=initiator_id,
            )
            return CallResult.failed(
                CallErrorCode.INTERNAL_ERROR,
                call_texts.internal_error_text("starting the call"),
            )
        finally:
            stop()

    async def _initiate_call(
        self, channel: CallChannel, initiator_id: str
    ) -> CallResult:
        """
        1. Refuse channels already in a call or already queued
        2. Obtain the channel webhook (nothing is queued without one)
        3. Enqueue the request and record a QUEUED placeholder in the background
        4. Try to match it right away
        """
        # Step 1: Guard against duplicates
        if await self._find_active_call(channel.id) is not None:
            return CallResult.failed(
                CallErrorCode.CHANNEL_ALREADY_IN_CALL, call_texts.already_in_call_text()
            )
        if await self.queue.is_in_queue(channel.id):
            return CallResult.failed(
                CallErrorCode.CHANNEL_ALREADY_IN_QUEUE,
                call_texts.already_in_queue_text(),
            )

        # Step 2: Webhook
        webhook_url = await self._get_webhook(channel)
        if not webhook_url:
            return CallResult.failed(
                CallErrorCode.WEBHOOK_CREATION_FAILED, call_texts.webhook_failed_text()
            )

        # Step 3: Enqueue
        request = CallRequest(
            id=str(uuid.uuid4()),
            channel_id=channel.id,
            guild_id=channel.guild_id,
            initiator_id=initiator_id,
            webhook_url=webhook_url,
        )
        status = await self.queue.enqueue(request)
        self._record_placeholder(request)
        logger.info(
            "Call queued",
            request_id=request.id,
            channel_id=channel.id,
            position=status.position,
            queue_length=status.queue_length,
        )

        # Step 4: Match
        match = await self.match_engine.find_match(request)
        if match.matched and match.call is not None:
            await self._connect(match.call, match)
            return CallResult.connected(match.call.id)

        return CallResult.queued(status.position, status.queue_length)

    async def _get_webhook(self, channel: CallChannel) -> Optional[str]:
        cached = await self.call_cache.get_webhook(channel.id)
        if cached:
            return cached

        webhook_url = await self.provisioner.get_or_create_webhook(channel)
        if webhook_url:
            await self.call_cache.cache_webhook(channel.id, webhook_url)
        else:
            logger.warning(
                "No webhook for channel",
                channel_id=channel.id,
                guild_id=channel.guild_id,
            )
        return webhook_url

    def _record_placeholder(self, request: CallRequest) -> None:
        task = self._spawn(
            self.repository.create_call(request.id, request.initiator_id),
            "create_queued_call",
            request_id=request.id,
        )
        self._placeholder_tasks[request.id] = task
        task.add_done_callback(
            lambda _: self._placeholder_tasks.pop(request.id, None)
        )

    async def _await_placeholders(self, request_ids: Iterable[str]) -> None:
        pending = [
            self._placeholder_tasks[request_id]
            for request_id in request_ids
            if request_id in self._placeholder_tasks
        ]
        if pending:
            await asyncio.wait(pending)

    async def _delete_placeholder(self, request_id: str) -> None:
        await self._await_placeholders([request_id])
        await self.repository.delete(request_id)

    async def _persist_matched_call(
        self, call: ActiveCall, request_ids: List[str]
    ) -> None:
        """Replace the queued placeholder rows with the active call."""
        await self._await_placeholders(request_ids)
        await self.repository.delete(*request_ids)
        await self.repository.create_active_call(call)

    async def _connect(self, call: ActiveCall, match: MatchResult) -> None:
        """
        1. Cache the snapshot for both channels (and mirror it)
        2. Persist the active call in the background
        3. Tell both channels they are connected
        4. Publish CallMatched
        """
        # Step 1: Cache and mirror concurrently
        writes = [self.call_cache.cache_active_call(call)]
        if self.state_manager is not None:
            writes.append(self.state_manager.sync_active_call(call))
        await asyncio.gather(*writes)

        # Step 2: Persist
        self._spawn(
            self._persist_matched_call(call, match.request_ids),
            "persist_active_call",
            call_id=call.id,
        )

        # Step 3: Notify
        await asyncio.gather(
            *(
                self._notify_system(
                    participant,
                    call_texts.call_start_notice(self._first_user(participant)),
                    call_id=call.id,
                )
                for participant in call.participants
            )
        )

        # Step 4: Lifecycle event
        await self.bus.publish(
            CallMatched(call=call, match_time_ms=match.match_time_ms or 0.0)
        )

    async def process_queue(self) -> int:
        """Connect the pairs found by a background queue pass.

        Returns how many calls were connected.
        """
        connected = 0
        for match in await self.match_engine.process_queue():
            if match.call is None:
                continue
            try:
                await self._connect(match.call, match)
            except Exception:
                logger.exception(
                    "Failed to connect queued match", call_id=match.call.id
                )
                continue
            connected += 1
        return connected

    # Hangup

    async def hangup(self, channel_id: str) -> CallResult:
        stop = self.metrics.start_timer("command")
        try:
            return await self._hangup(channel_id)
        except Exception:
            logger.exception("Failed to hang up", channel_id=channel_id)
            return CallResult.failed(
                CallErrorCode.INTERNAL_ERROR,
                call_texts.internal_error_text("ending the call"),
            )
        finally:
            stop()

    async def _hangup(self, channel_id: str) -> CallResult:
        """
        1. Queued only: leave the queue and drop the placeholder row
        2. Active: store the ended snapshot and notify the other side
        3. Persist ENDED in the background
        4. Clear cache and distributed state, then publish CallEnded
        """
        call = await self._find_active_call(channel_id)

        # Step 1: Queue exit
        if call is None:
            request = await self.queue.get_queue_status(channel_id)
            if request is None:
                return CallResult.failed(
                    CallErrorCode.CALL_NOT_FOUND, call_texts.not_in_call_text()
                )
            if not await self.queue.dequeue_by_channel_id(channel_id):
                return CallResult.failed(
                    CallErrorCode.CALL_NOT_FOUND, call_texts.not_in_call_text()
                )
            self._spawn(
                self._delete_placeholder(request.id),
                "delete_queued_call",
                request_id=request.id,
            )
            logger.info("Left queue", channel_id=channel_id, request_id=request.id)
            return CallResult.left_queue()

        # Step 2: Ended snapshot and notification
        end_time = utcnow()
        duration_ms = (end_time - call.start_time).total_seconds() * 1000
        ended = call.model_copy(
            update={"status": CallStatus.ENDED, "end_time": end_time}
        )

        reported = await self.call_cache.is_reported(call.id)
        ttl = (
            self.config.reported_call_ttl_secs
            if reported
            else self.config.ended_call_ttl_secs
        )
        await self.call_cache.store_ended_call(ended, ttl)

        other = call.get_other_participant(channel_id)
        if other is not None:
            message_count = sum(p.message_count for p in call.participants)
            await self._notify_system(
                other,
                call_texts.call_end_notice(duration_ms, message_count),
                call_id=call.id,
                components=call_texts.call_end_components(call.id),
            )

        # Step 3: Persist
        self._spawn(
            self.repository.update_call_status(call.id, CallStatus.ENDED, end_time),
            "end_call",
            call_id=call.id,
        )

        # Step 4: Clear state before anyone hears about it
        cleared = await self._clear_call_state(call)
        await self.bus.publish(
            CallEnded(
                cleared=cleared,
                ended_by_channel_id=channel_id,
                duration_ms=duration_ms,
            )
        )

        logger.info(
            "Call ended",
            call_id=call.id,
            channel_id=channel_id,
            duration_ms=round(duration_ms),
            reported=reported,
        )
        return CallResult.ended(call.id, duration_ms)

    async def _clear_call_state(self, call: ActiveCall) -> ClearedCall:
        removals = [self.call_cache.remove_active_call(call)]
        if self.state_manager is not None:
            removals.append(self.state_manager.remove_active_call(call.id))
        await asyncio.gather(*removals)
        return ClearedCall(call=call)

    # Skip

    async def skip(self, channel_id: str, user_id: str) -> CallResult:
        """End the current call (or leave the queue) and look for a new one."""
        channel = await self._resolve_channel(channel_id)

        result = await self.hangup(channel_id)
        if result.outcome == CallOutcome.FAILED:
            return result

        stop = self.metrics.start_timer("command")
        try:
            if channel is None:
                raise CallError(
                    "Channel vanished during skip",
                    CallErrorCode.CALL_NOT_FOUND,
                    {"channel_id": channel_id},
                )
            follow_on = await self._initiate_call(channel, user_id)
        except Exception:
            logger.exception("Failed to re-match after skip", channel_id=channel_id)
            follow_on = CallResult.failed(
                CallErrorCode.INTERNAL_ERROR,
                call_texts.internal_error_text("starting the call"),
            )
        finally:
            stop()

        if follow_on.outcome == CallOutcome.QUEUED:
            return CallResult.queued(
                follow_on.position or 0,
                follow_on.queue_length or 0,
                message=call_texts.skip_queued_text(),
            )
        if follow_on.outcome == CallOutcome.CONNECTED and follow_on.call_id:
            return CallResult.connected(
                follow_on.call_id, message=call_texts.skip_connected_text()
            )
        return CallResult.failed(
            CallErrorCode.SKIP_REMATCH_FAILED,
            call_texts.skip_rematch_failed_text(follow_on.message),
            call_id=result.call_id,
        )

    async def _resolve_channel(self, channel_id: str) -> Optional[CallChannel]:
        try:
            call = await self._find_active_call(channel_id)
            if call is not None:
                participant = call.get_participant(channel_id)
                if participant is not None:
                    return CallChannel(id=channel_id, guild_id=participant.guild_id)
            request = await self.queue.get_queue_status(channel_id)
            if request is not None:
                return CallChannel(id=channel_id, guild_id=request.guild_id)
        except Exception:
            logger.exception("Failed to resolve channel", channel_id=channel_id)
        return None

    # Messages

    async def relay_message(
        self,
        channel_id: str,
        user_id: str,
        username: str,
        content: str,
        attachment_url: Optional[str] = None,
    ) -> bool:
        """Mirror a channel message to the other side of its call.

        Returns False when the channel has no call; that is not an error.
        """
        try:
            return await self._relay_message(
                channel_id, user_id, username, content, attachment_url
            )
        except Exception:
            logger.exception("Failed to relay message", channel_id=channel_id)
            return False

    async def _relay_message(
        self,
        channel_id: str,
        user_id: str,
        username: str,
        content: str,
        attachment_url: Optional[str],
    ) -> bool:
        call = await self._find_active_call(channel_id)
        if call is None:
            return False
        participant = call.get_participant(channel_id)
        other = call.get_other_participant(channel_id)
        if participant is None or other is None:
            return False

        message = CallMessage(
            author_id=user_id,
            author_username=username,
            content=content,
            attachment_url=attachment_url,
        )

        participant.message_count += 1
        crossed_threshold = (
            not participant.leaderboard_counted
            and participant.message_count >= self.config.min_messages_for_leaderboard
        )
        if crossed_threshold:
            participant.leaderboard_counted = True

        await self.call_cache.save_participant(call.id, participant)
        await self.call_cache.append_message(call.id, message)

        if crossed_threshold:
            await self.bus.publish(
                MessageThresholdReached(
                    call_id=call.id,
                    channel_id=channel_id,
                    guild_id=participant.guild_id,
                    user_id=user_id,
                    message_count=participant.message_count,
                )
            )

        relayed = content
        if attachment_url:
            relayed = f"{content}\n{attachment_url}".strip()
        await self._notify(
            other.webhook_url,
            relayed,
            call_id=call.id,
            username=username,
            allowed_mentions={"parse": []},
        )

        if self.state_manager is not None:
            self._spawn(
                self.state_manager.add_call_message(call.id, message),
                "mirror_message",
                call_id=call.id,
            )
        self._spawn(
            self.repository.add_message(call.id, channel_id, message),
            "store_message",
            call_id=call.id,
        )
        return True

    # Participants

    async def add_participant(self, channel_id: str, user_id: str) -> bool:
        """Add a user to their channel's side; returns whether a call was found."""
        try:
            return await self._change_participant(channel_id, user_id, joined=True)
        except Exception:
            logger.exception(
                "Failed to add participant", channel_id=channel_id, user_id=user_id
            )
            return False

    async def remove_participant(self, channel_id: str, user_id: str) -> bool:
        """Remove a user from their channel's side; returns whether a call was found."""
        try:
            return await self._change_participant(channel_id, user_id, joined=False)
        except Exception:
            logger.exception(
                "Failed to remove participant", channel_id=channel_id, user_id=user_id
            )
            return False

    async def _change_participant(
        self, channel_id: str, user_id: str, joined: bool
    ) -> bool:
        call = await self._find_active_call(channel_id)
        if call is None:
            return False
        participant = call.get_participant(channel_id)
        if participant is None:
            return False

        # Membership unchanged: nothing to announce
        if (user_id in participant.users) == joined:
            return True

        if joined:
            participant.users.add(user_id)
        else:
            participant.users.discard(user_id)
        await self.call_cache.save_participant(call.id, participant)

        other = call.get_other_participant(channel_id)
        if other is not None:
            notice = (
                call_texts.participant_joined_notice(user_id)
                if joined
                else call_texts.participant_left_notice(user_id)
            )
            await self._notify_system(other, notice, call_id=call.id)

        if self.state_manager is not None:
            self._spawn(
                self.state_manager.update_call_participant(
                    call.id, channel_id, user_id, "joined" if joined else "left"
                ),
                "mirror_participant",
                call_id=call.id,
            )

        if joined:
            self._spawn(
                self.repository.add_user_to_participant(call.id, channel_id, user_id),
                "store_participant_user",
                call_id=call.id,
            )
            await self.bus.publish(
                ParticipantJoined(
                    call_id=call.id,
                    channel_id=channel_id,
                    guild_id=participant.guild_id,
                    user_id=user_id,
                )
            )
        else:
            self._spawn(
                self.repository.remove_user_from_participant(
                    call.id, channel_id, user_id
                ),
                "remove_participant_user",
                call_id=call.id,
            )
            await self.bus.publish(
                ParticipantLeft(
                    call_id=call.id,
                    channel_id=channel_id,
                    guild_id=participant.guild_id,
                    user_id=user_id,
                )
            )
        return True

    # Notifications

    def _first_user(self, participant: CallParticipant) -> Optional[str]:
        return min(participant.users) if participant.users else None

    async def _notify_system(
        self,
        participant: CallParticipant,
        content: str,
        *,
        call_id: str,
        components: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Send a bot notice to one side, subject to its per-channel rate limit."""
        try:
            allowed = await self.call_cache.allow_notification(participant.channel_id)
        except Exception:
            logger.exception(
                "Notification rate limit check failed",
                channel_id=participant.channel_id,
            )
            allowed = True
        if not allowed:
            logger.warning(
                "Notification rate limited",
                call_id=call_id,
                channel_id=participant.channel_id,
            )
            return
        await self._notify(
            participant.webhook_url, content, call_id=call_id, components=components
        )

    async def _notify(
        self,
        webhook_url: str,
        content: str,
        *,
        call_id: str,
        username: Optional[str] = None,
        components: Optional[List[Dict[str, Any]]] = None,
        allowed_mentions: Optional[Dict[str, Any]] = None,
    ) -> None:
        extra: Dict[str, Any] = {}
        if allowed_mentions is not None:
            extra["allowed_mentions"] = allowed_mentions
        message = WebhookMessage(
            content=content,
            username=username or self.config.bot_display_name,
            avatar_url=self.config.bot_avatar_url or None,
            components=components or [],
            **extra,
        )
        try:
            result = await self.notifier.send(webhook_url, message)
        except Exception:
            logger.exception("Notification failed", call_id=call_id)
            return
        if not result.success:
            logger.warning(
                "Notification not delivered",
                call_id=call_id,
                status_code=result.status_code,
                error=result.error,
            )

    # Event handlers

    async def _on_call_matched(self, event: CallMatched) -> None:
        self.metrics.record_matching_time(event.match_time_ms)
        self._emit(
            "call_started",
            call_id=event.call.id,
            channel_ids=[p.channel_id for p in event.call.participants],
            guild_ids=[p.guild_id for p in event.call.participants],
            user_ids=sorted(u for p in event.call.participants for u in p.users),
        )

    async def _on_call_ended(self, event: CallEnded) -> None:
        self._emit(
            "call_ended",
            call_id=event.call.id,
            ended_by_channel_id=event.ended_by_channel_id,
            duration_ms=event.duration_ms,
            message_count=sum(p.message_count for p in event.call.participants),
            user_ids=sorted(u for p in event.call.participants for u in p.users),
        )

    async def _on_participant_joined(self, event: ParticipantJoined) -> None:
        self._update_leaderboards(event.user_id, event.guild_id, event.call_id)
        self._emit(
            "participant_joined",
            call_id=event.call_id,
            channel_id=event.channel_id,
            user_id=event.user_id,
        )

    async def _on_participant_left(self, event: ParticipantLeft) -> None:
        self._emit(
            "participant_left",
            call_id=event.call_id,
            channel_id=event.channel_id,
            user_id=event.user_id,
        )

    async def _on_threshold_reached(self, event: MessageThresholdReached) -> None:
        self._update_leaderboards(event.user_id, event.guild_id, event.call_id)
        self._emit(
            "call_message_milestone",
            call_id=event.call_id,
            channel_id=event.channel_id,
            user_id=event.user_id,
            message_count=event.message_count,
        )

    def _update_leaderboards(self, user_id: str, guild_id: str, call_id: str) -> None:
        self._spawn(
            self.leaderboard.update_leaderboard("user", user_id),
            "update_user_leaderboard",
            call_id=call_id,
        )
        self._spawn(
            self.leaderboard.update_leaderboard("guild", guild_id),
            "update_guild_leaderboard",
            call_id=call_id,
        )

    def _emit(self, event_type: str, **payload: Any) -> None:
        self._spawn(
            self.event_sink.process_event(event_type, payload),
            "process_event",
            event_type=event_type,
        )
