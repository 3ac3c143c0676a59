from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple


class BaseCacheStore(ABC):
    """Abstract TTL key/value store with Redis-style list, hash and sorted-set ops.

    List indices follow Redis conventions: ``stop`` is inclusive and negative
    indices count from the tail.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the string stored at key, or None."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a string, optionally expiring after ttl seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if the key exists and has not expired."""

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        """Set a TTL in seconds on an existing key."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Increment an integer counter (created at 0) and return the new value."""

    @abstractmethod
    async def lpush(self, key: str, *values: str) -> int:
        """Prepend values and return the new list length."""

    @abstractmethod
    async def rpush(self, key: str, *values: str) -> int:
        """Append values and return the new list length."""

    @abstractmethod
    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        """Return list elements between start and stop inclusive."""

    @abstractmethod
    async def lrem(self, key: str, count: int, value: str) -> int:
        """Remove occurrences of value; count semantics follow Redis LREM."""

    @abstractmethod
    async def ltrim(self, key: str, start: int, stop: int) -> None:
        """Keep only list elements between start and stop inclusive."""

    @abstractmethod
    async def llen(self, key: str) -> int:
        """Return the list length (0 for a missing key)."""

    @abstractmethod
    async def hset(self, key: str, field: str, value: str) -> None:
        """Set a hash field."""

    @abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        """Return a hash field, or None."""

    @abstractmethod
    async def hdel(self, key: str, *fields: str) -> int:
        """Delete hash fields and return how many existed."""

    @abstractmethod
    async def hgetall(self, key: str) -> Dict[str, str]:
        """Return every field of a hash."""

    @abstractmethod
    async def zincrby(self, key: str, amount: float, member: str) -> float:
        """Increment a sorted-set member's score and return the new score."""

    @abstractmethod
    async def zrevrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        """Return members ordered by descending score with their scores."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store is reachable."""

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
