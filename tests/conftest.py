from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import os

import pytest
from fakes import (
    FakeClock,
    FakeProvisioner,
    RecordingEventSink,
    RecordingLeaderboard,
    RecordingNotifier,
)

# The app reads COMMIT_HASH at import and FastAPI requires a non-empty version.
os.environ.setdefault("COMMIT_HASH", "test")

from userphone.cache.memory_cache_store import MemoryCacheStore
from userphone.config import CallingConfig
from userphone.repositories.call_repository import CallRepository
from userphone.services.call_cache import CallCache
from userphone.services.call_manager import CallManager
from userphone.services.call_metrics import CallMetrics
from userphone.services.distributed_state_manager import DistributedStateManager
from userphone.services.match_engine import MatchEngine
from userphone.services.queue_manager import QueueManager


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def config() -> CallingConfig:
    return CallingConfig()


@pytest.fixture
def call_cache(store: MemoryCacheStore, config: CallingConfig) -> CallCache:
    return CallCache(store, config)


@pytest.fixture
def queue(store: MemoryCacheStore) -> QueueManager:
    return QueueManager(store)


@pytest.fixture
def match_engine(queue: QueueManager, call_cache: CallCache) -> MatchEngine:
    return MatchEngine(queue, call_cache)


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create a mock database session for unit tests."""
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async

    return mock_session


@pytest.fixture
def session_factory(mock_db: AsyncMock) -> MagicMock:
    """async_sessionmaker stand-in whose sessions are all ``mock_db``."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = mock_db
    factory.return_value.__aexit__.return_value = False
    return factory


@pytest.fixture
def repository() -> MagicMock:
    return MagicMock(spec=CallRepository)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def leaderboard() -> RecordingLeaderboard:
    return RecordingLeaderboard()


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def metrics() -> CallMetrics:
    return CallMetrics()


@pytest.fixture
def make_manager(
    call_cache: CallCache,
    queue: QueueManager,
    match_engine: MatchEngine,
    repository: MagicMock,
    notifier: RecordingNotifier,
    provisioner: FakeProvisioner,
    leaderboard: RecordingLeaderboard,
    event_sink: RecordingEventSink,
    metrics: CallMetrics,
    config: CallingConfig,
) -> Callable[..., CallManager]:
    def _make(state_manager: Optional[DistributedStateManager] = None) -> CallManager:
        return CallManager(
            call_cache=call_cache,
            queue=queue,
            match_engine=match_engine,
            repository=repository,
            notifier=notifier,
            provisioner=provisioner,
            leaderboard=leaderboard,
            event_sink=event_sink,
            metrics=metrics,
            config=config,
            state_manager=state_manager,
        )

    return _make


@pytest.fixture
def manager(make_manager: Callable[..., CallManager]) -> CallManager:
    return make_manager()
