"""FastAPI dependency providers for the objects built in the app lifespan."""

from fastapi import Request

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.services.call_manager import CallManager
from userphone.services.call_metrics import CallMetrics
from userphone.services.cleanup_service import CallCleanupService
from userphone.services.match_engine import MatchEngine


def get_call_manager(request: Request) -> CallManager:
    return request.app.state.call_manager


def get_call_metrics(request: Request) -> CallMetrics:
    return request.app.state.call_metrics


def get_match_engine(request: Request) -> MatchEngine:
    return request.app.state.match_engine


def get_cleanup_service(request: Request) -> CallCleanupService:
    return request.app.state.cleanup_service


def get_cache_store(request: Request) -> BaseCacheStore:
    return request.app.state.cache_store
