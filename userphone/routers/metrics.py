from fastapi import APIRouter, Depends

from userphone.dependencies import get_call_metrics, get_match_engine
from userphone.models.api.metrics import (
    DetailedMetricsReport,
    MatchingStats,
    MetricsStats,
)
from userphone.services.call_metrics import CallMetrics
from userphone.services.match_engine import MatchEngine

router = APIRouter()


@router.get("", response_model=MetricsStats)
async def get_stats(metrics: CallMetrics = Depends(get_call_metrics)) -> MetricsStats:
    """Rolling command and matching latency with SLA flags."""
    return metrics.get_stats()


@router.get("/report", response_model=DetailedMetricsReport)
async def get_detailed_report(
    metrics: CallMetrics = Depends(get_call_metrics),
) -> DetailedMetricsReport:
    return metrics.get_detailed_report()


@router.get("/matching", response_model=MatchingStats)
async def get_matching_stats(
    engine: MatchEngine = Depends(get_match_engine),
) -> MatchingStats:
    return await engine.get_matching_stats()
