import time
import uuid
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Set

import structlog

from userphone.models.api.calls import (
    ActiveCall,
    CallParticipant,
    CallRequest,
    CallStatus,
    MatchResult,
    utcnow,
)
from userphone.models.api.metrics import MatchingStats
from userphone.services.call_cache import CallCache
from userphone.services.queue_manager import QueueManager

logger = structlog.get_logger(__name__)


class MatchEngine:
    """Pairs a new request with the first compatible request already queued.

    Compatibility rules:
    - the two channels belong to different guilds
    - the two requests were started by different users
    - neither user has the other in their recent-match list

    There is no priority or fairness beyond FIFO scan order.
    """

    def __init__(
        self, queue: QueueManager, call_cache: CallCache, window: int = 100
    ):
        self.queue = queue
        self.call_cache = call_cache
        self.total_attempts = 0
        self.successful_matches = 0
        self.matching_times: Deque[float] = deque(maxlen=window)

    async def are_compatible(
        self, request: CallRequest, candidate: CallRequest
    ) -> bool:
        if request.guild_id == candidate.guild_id:
            return False
        if request.initiator_id == candidate.initiator_id:
            return False
        return not await self.call_cache.has_recent_match(
            request.initiator_id, candidate.initiator_id
        )

    async def find_match(self, request: CallRequest) -> MatchResult:
        start = time.perf_counter()
        self.total_attempts += 1

        for candidate in await self.queue.get_pending_requests():
            if candidate.id == request.id or candidate.channel_id == request.channel_id:
                continue
            if not await self.are_compatible(request, candidate):
                continue

            claimed = await self._claim_pair(request, candidate)
            if claimed is None:
                continue
            if not claimed:
                # The request itself was matched elsewhere; stop scanning for it
                return MatchResult(matched=False)
            return await self._complete_match(request, candidate, start)

        return MatchResult(matched=False)

    async def process_queue(self) -> List[MatchResult]:
        """Pair requests already waiting in the queue, oldest first.

        Requests that stayed queued because every partner was blocked (for
        example by the recent-match cooldown) are retried here.
        """
        pending = await self.queue.get_pending_requests()
        if len(pending) < 2:
            return []

        matches: List[MatchResult] = []
        processed: Set[str] = set()
        for index, request in enumerate(pending):
            if request.id in processed:
                continue
            start = time.perf_counter()
            for candidate in pending[index + 1 :]:
                if candidate.id in processed:
                    continue
                if candidate.channel_id == request.channel_id:
                    continue
                if not await self.are_compatible(request, candidate):
                    continue

                claimed = await self._claim_pair(request, candidate)
                if claimed is None:
                    processed.add(candidate.id)
                    continue
                if not claimed:
                    break

                self.total_attempts += 1
                matches.append(await self._complete_match(request, candidate, start))
                processed.update((request.id, candidate.id))
                break

        if matches:
            logger.info("Queue pass matched requests", matches=len(matches))
        return matches

    async def _claim_pair(
        self, request: CallRequest, candidate: CallRequest
    ) -> Optional[bool]:
        """Remove both requests from the queue.

        Returns True when both were claimed, None when the candidate was
        already taken and False when the request itself was. In the last case
        the candidate is put back at the head of the queue.
        """
        # Another process may have matched the candidate since the scan
        if not await self.queue.dequeue(candidate.id):
            logger.debug("Candidate already taken", candidate_id=candidate.id)
            return None
        if not await self.queue.dequeue(request.id):
            logger.info(
                "Request already matched elsewhere",
                request_id=request.id,
                candidate_id=candidate.id,
            )
            await self.queue.requeue_front(candidate)
            return False
        return True

    async def _complete_match(
        self, request: CallRequest, candidate: CallRequest, start: float
    ) -> MatchResult:
        call = self._create_active_call(request, candidate)
        await self.call_cache.record_recent_match(
            request.initiator_id, candidate.initiator_id
        )

        match_time_ms = (time.perf_counter() - start) * 1000
        self.matching_times.append(match_time_ms)
        self.successful_matches += 1
        logger.info(
            "Match found",
            call_id=call.id,
            channel_id=request.channel_id,
            partner_channel_id=candidate.channel_id,
            match_time_ms=round(match_time_ms, 2),
        )
        return MatchResult(
            matched=True,
            call=call,
            match_time_ms=match_time_ms,
            request_ids=[request.id, candidate.id],
        )

    def _create_active_call(
        self, request: CallRequest, candidate: CallRequest
    ) -> ActiveCall:
        now = utcnow()
        return ActiveCall(
            id=str(uuid.uuid4()),
            status=CallStatus.ACTIVE,
            initiator_id=request.initiator_id,
            start_time=now,
            created_at=now,
            participants=[
                self._seed_participant(request, now),
                self._seed_participant(candidate, now),
            ],
        )

    def _seed_participant(
        self, request: CallRequest, joined_at: datetime
    ) -> CallParticipant:
        return CallParticipant(
            channel_id=request.channel_id,
            guild_id=request.guild_id,
            webhook_url=request.webhook_url,
            users={request.initiator_id},
            joined_at=joined_at,
        )

    async def get_matching_stats(self) -> MatchingStats:
        average = 0.0
        if self.matching_times:
            average = sum(self.matching_times) / len(self.matching_times)
        success_rate = 0.0
        if self.total_attempts:
            success_rate = self.successful_matches / self.total_attempts
        return MatchingStats(
            average_match_time_ms=average,
            success_rate=success_rate,
            queue_length=await self.queue.get_queue_length(),
        )
