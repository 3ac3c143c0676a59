from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from userphone.cache.base_cache_store import BaseCacheStore
from userphone.clients.base_leaderboard_updater import (
    BaseLeaderboardUpdater,
    LeaderboardKind,
)

# Monthly boards are kept for two months
LEADERBOARD_TTL_SECS = 60 * 24 * 60 * 60


class CacheLeaderboardUpdater(BaseLeaderboardUpdater):
    """Monthly call leaderboards stored as sorted sets."""

    def __init__(
        self,
        store: BaseCacheStore,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.now = now or (lambda: datetime.now(timezone.utc))

    def leaderboard_key(self, kind: LeaderboardKind) -> str:
        """e.g. ``leaderboard:calls:users:2025-02``"""
        return f"leaderboard:calls:{kind}s:{self.now().strftime('%Y-%m')}"

    async def update_leaderboard(self, kind: LeaderboardKind, target_id: str) -> None:
        key = self.leaderboard_key(kind)
        await self.store.zincrby(key, 1, target_id)
        await self.store.expire(key, LEADERBOARD_TTL_SECS)

    async def get_leaderboard(
        self, kind: LeaderboardKind, limit: int = 10
    ) -> List[Tuple[str, float]]:
        return await self.store.zrevrange_with_scores(
            self.leaderboard_key(kind), 0, limit - 1
        )
