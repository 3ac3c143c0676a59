from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Lifecycle status of a call."""

    QUEUED = "QUEUED"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class CallChannel(BaseModel):
    """The guild text channel a call is started from."""

    id: str
    guild_id: str
    name: Optional[str] = None


class CallRequest(BaseModel):
    """A pending match request waiting in the queue."""

    id: str
    channel_id: str
    guild_id: str
    initiator_id: str
    webhook_url: str
    timestamp: datetime = Field(default_factory=utcnow)
    priority: int = 0  # Reserved, always 0

    model_config = ConfigDict(frozen=True)


class CallParticipant(BaseModel):
    """One side of a call."""

    channel_id: str
    guild_id: str
    webhook_url: str
    users: Set[str] = Field(default_factory=set)
    message_count: int = 0
    joined_at: datetime = Field(default_factory=utcnow)
    left_at: Optional[datetime] = None
    leaderboard_counted: bool = False


class CallMessage(BaseModel):
    """A relayed chat message kept for moderation review."""

    author_id: str
    author_username: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    attachment_url: Optional[str] = None


class ActiveCall(BaseModel):
    """Snapshot of a matched call and its two participants."""

    id: str
    status: CallStatus = CallStatus.ACTIVE
    initiator_id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    participants: List[CallParticipant]
    messages: List[CallMessage] = Field(default_factory=list)

    def get_participant(self, channel_id: str) -> Optional[CallParticipant]:
        for participant in self.participants:
            if participant.channel_id == channel_id:
                return participant
        return None

    def get_other_participant(self, channel_id: str) -> Optional[CallParticipant]:
        for participant in self.participants:
            if participant.channel_id != channel_id:
                return participant
        return None


class CallRecord(BaseModel):
    """A persisted call row as returned by the repository."""

    id: str
    initiator_id: str
    status: CallStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    channel_ids: List[str] = Field(default_factory=list)


class QueueStatus(BaseModel):
    """1-based queue position and total queue length."""

    position: int
    queue_length: int


class QueueStats(BaseModel):
    length: int
    oldest_request_age_ms: float


class MatchResult(BaseModel):
    """Outcome of a match attempt for a single request."""

    matched: bool
    call: Optional[ActiveCall] = None
    match_time_ms: Optional[float] = None
    # Queue request ids consumed by the match
    request_ids: List[str] = Field(default_factory=list)


class InitiateCallRequest(BaseModel):
    """Request model for starting a call from a channel."""

    channel_id: str = Field(..., description="Channel the call is started in")
    guild_id: str = Field(..., description="Guild that owns the channel")
    initiator_id: str = Field(..., description="User who issued the call command")


class SkipCallRequest(BaseModel):
    user_id: str = Field(..., description="User who requested the skip")


class RelayMessageRequest(BaseModel):
    """Request model for mirroring a channel message into the call."""

    user_id: str
    username: str
    content: str
    attachment_url: Optional[str] = None


class RelayMessageResponse(BaseModel):
    relayed: bool


class ParticipantChangeResponse(BaseModel):
    call_found: bool


class ReportCallResponse(BaseModel):
    reported: bool
    snapshot_extended: bool
