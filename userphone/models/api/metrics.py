from pydantic import BaseModel


class MetricsStats(BaseModel):
    """Rolling averages for command handling and matching."""

    average_command_time_ms: float
    average_matching_time_ms: float
    matching_success_rate: float
    command_sla_exceeded: bool
    matching_sla_exceeded: bool


class CommandMetricsReport(BaseModel):
    average: float


class MatchingMetricsReport(BaseModel):
    average: float
    success_rate: float


class DetailedMetricsReport(BaseModel):
    command_metrics: CommandMetricsReport
    matching_metrics: MatchingMetricsReport


class CleanupResponse(BaseModel):
    deleted: int


class MatchingStats(BaseModel):
    """Match engine counters since process start."""

    average_match_time_ms: float
    success_rate: float
    queue_length: int


class StateStats(BaseModel):
    """Summary of the calls mirrored in distributed state."""

    active_calls_count: int
    total_participants: int
    average_call_duration_ms: float
