import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

import structlog
from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.cache.memory_cache_store import MemoryCacheStore
from userphone.cache.redis_cache_store import RedisCacheStore
from userphone.clients.cache_leaderboard_updater import CacheLeaderboardUpdater
from userphone.clients.discord_channel_provisioner import DiscordChannelProvisioner
from userphone.clients.logging_event_sink import LoggingEventSink
from userphone.clients.webhook_notification_client import WebhookNotificationClient
from userphone.config import CallingConfig
from userphone.database import AsyncSessionLocal, close_db, get_db, init_db
from userphone.dependencies import get_cache_store
from userphone.logging_config import configure_logging
from userphone.repositories.call_repository import CallRepository
from userphone.routers.calls import router as calls_router
from userphone.routers.maintenance import router as maintenance_router
from userphone.routers.metrics import router as metrics_router
from userphone.services.call_cache import CallCache
from userphone.services.call_manager import CallManager
from userphone.services.call_metrics import CallMetrics
from userphone.services.cleanup_service import CallCleanupService
from userphone.services.distributed_state_manager import DistributedStateManager
from userphone.services.match_engine import MatchEngine
from userphone.services.matching_service import QueueMatchingService
from userphone.services.queue_manager import QueueManager

# Load environment variables
load_dotenv()

# Environment variable parsing
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")

APP_ADDR = os.getenv("HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "8000"))
# "memory" runs a single process without Redis
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "redis")
DISTRIBUTED_STATE = os.getenv("DISTRIBUTED_STATE", "true").lower() == "true"

logger = structlog.get_logger(__name__)


def build_cache_store(config: CallingConfig) -> BaseCacheStore:
    if CACHE_BACKEND == "memory":
        return MemoryCacheStore()
    return RedisCacheStore.from_url(config.redis_url)


def build_call_manager(
    config: CallingConfig,
    store: BaseCacheStore,
    repository: CallRepository,
    metrics: CallMetrics,
    state_manager: Optional[DistributedStateManager] = None,
) -> CallManager:
    """Wire the call manager and its collaborators over one cache store."""
    call_cache = CallCache(store, config)
    queue = QueueManager(store)
    return CallManager(
        call_cache=call_cache,
        queue=queue,
        match_engine=MatchEngine(queue, call_cache, window=config.metrics_window),
        repository=repository,
        notifier=WebhookNotificationClient(),
        provisioner=DiscordChannelProvisioner(
            api_base=config.discord_api_base,
            bot_token=config.discord_bot_token,
            webhook_name=config.bot_display_name,
            avatar_url=config.bot_avatar_url or None,
        ),
        leaderboard=CacheLeaderboardUpdater(store),
        event_sink=LoggingEventSink(),
        metrics=metrics,
        config=config,
        state_manager=state_manager,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    config = CallingConfig.from_env()
    configure_logging(config.log_level, config.log_json)
    await init_db()

    store = build_cache_store(config)
    repository = CallRepository(AsyncSessionLocal)
    metrics = CallMetrics(
        window=config.metrics_window,
        command_sla_ms=config.command_sla_ms,
        matching_sla_ms=config.matching_sla_ms,
    )
    state_manager = (
        DistributedStateManager(
            store,
            state_ttl_secs=config.active_call_ttl_secs,
            message_limit=config.message_log_limit,
        )
        if DISTRIBUTED_STATE
        else None
    )
    manager = build_call_manager(config, store, repository, metrics, state_manager)
    cleanup = CallCleanupService(
        repository,
        older_than_hours=config.cleanup_age_hours,
        interval_secs=config.cleanup_interval_secs,
        state_manager=state_manager,
    )
    matching = QueueMatchingService(
        manager, interval_secs=config.matching_interval_secs
    )

    app.state.cache_store = store
    app.state.call_metrics = metrics
    app.state.match_engine = manager.match_engine
    app.state.call_manager = manager
    app.state.cleanup_service = cleanup

    cleanup.start()
    matching.start()
    logger.info(
        "Call engine started",
        cache_backend=CACHE_BACKEND,
        distributed_state=state_manager is not None,
        version=COMMIT_HASH,
    )
    yield
    # Shutdown
    await matching.stop()
    await cleanup.stop()
    await manager.close()
    await store.close()
    await close_db()


app = FastAPI(
    title="Userphone Call Engine",
    description="Matchmaking and session relay for cross-server calls",
    version=COMMIT_HASH,
    lifespan=lifespan,
)

# Include routers
app.include_router(calls_router, prefix="/api/calls", tags=["calls"])
app.include_router(metrics_router, prefix="/api/metrics", tags=["metrics"])
app.include_router(
    maintenance_router, prefix="/api/maintenance", tags=["maintenance"]
)


@app.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    store: BaseCacheStore = Depends(get_cache_store),
) -> Dict[str, Optional[str]]:
    """Health check endpoint with database and cache connectivity."""
    try:
        # Test database connection
        result = await db.execute(text("SELECT 1"))
        db_status = "connected" if result.scalar() == 1 else "error"
    except Exception:
        db_status = "disconnected"

    cache_status = "connected" if await store.ping() else "disconnected"
    healthy = db_status == "connected" and cache_status == "connected"

    return {
        "status": "healthy" if healthy else "degraded",
        "database": db_status,
        "cache": cache_status,
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)
