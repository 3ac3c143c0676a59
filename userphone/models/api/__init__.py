# API models for request/response contracts
from .calls import (
    ActiveCall,
    CallChannel,
    CallMessage,
    CallParticipant,
    CallRecord,
    CallRequest,
    CallStatus,
    InitiateCallRequest,
    MatchResult,
    QueueStats,
    QueueStatus,
    RelayMessageRequest,
    ReportCallResponse,
    SkipCallRequest,
)
from .metrics import DetailedMetricsReport, MatchingStats, MetricsStats, StateStats
from .results import CallOutcome, CallResult
from .webhooks import DeliveryResult, WebhookMessage

__all__ = [
    "ActiveCall",
    "CallChannel",
    "CallMessage",
    "CallParticipant",
    "CallRecord",
    "CallRequest",
    "CallStatus",
    "InitiateCallRequest",
    "MatchResult",
    "QueueStats",
    "QueueStatus",
    "RelayMessageRequest",
    "ReportCallResponse",
    "SkipCallRequest",
    "DetailedMetricsReport",
    "MatchingStats",
    "MetricsStats",
    "StateStats",
    "CallOutcome",
    "CallResult",
    "DeliveryResult",
    "WebhookMessage",
]
