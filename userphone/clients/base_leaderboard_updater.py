from abc import ABC, abstractmethod
from typing import List, Literal, Tuple

LeaderboardKind = Literal["user", "guild"]


class BaseLeaderboardUpdater(ABC):
    """Abstract base class for call leaderboards."""

    @abstractmethod
    async def update_leaderboard(self, kind: LeaderboardKind, target_id: str) -> None:
        """Credit one call to a user or guild on the current leaderboard."""

    @abstractmethod
    async def get_leaderboard(
        self, kind: LeaderboardKind, limit: int = 10
    ) -> List[Tuple[str, float]]:
        """Return the top ``limit`` entries as (target_id, score), highest first."""
