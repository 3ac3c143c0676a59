import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from userphone.cache.base_cache_store import BaseCacheStore


def _redis_range(start: int, stop: int, length: int) -> Tuple[int, int]:
    """Convert inclusive Redis indices into a Python slice (lo, hi)."""
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    if stop >= length:
        stop = length - 1
    if start > stop:
        return 0, 0
    return start, stop + 1


class _SortedSet(dict):
    """Marker type for sorted-set values."""


class MemoryCacheStore(BaseCacheStore):
    """In-process LRU store with per-key TTL.

    Suitable for single-process deployments where no other shard needs to
    observe the state, and for tests (pass ``clock`` to control expiry).
    """

    def __init__(
        self,
        *,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        # key -> [value, expires_at]
        self.cache: OrderedDict[str, List[Any]] = OrderedDict()
        self.max_size = max_size
        self.clock = clock

    def _get_entry(self, key: str, expected: Type[Any]) -> Optional[List[Any]]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self.clock() >= expires_at:
            del self.cache[key]
            return None
        if not isinstance(entry[0], expected):
            raise TypeError(
                f"WRONGTYPE Operation against key {key!r} holding the wrong kind of value"
            )
        # Move to end (most recently used)
        self.cache.move_to_end(key)
        return entry

    def _put(self, key: str, value: Any, expires_at: Optional[float] = None) -> None:
        if key in self.cache:
            self.cache.move_to_end(key)
        self.cache[key] = [value, expires_at]
        # If we've exceeded max size, remove oldest
        if len(self.cache) > self.max_size:
            self.cache.popitem(last=False)

    def _get_or_create(self, key: str, factory: Type[Any]) -> List[Any]:
        entry = self._get_entry(key, factory)
        if entry is None:
            self._put(key, factory())
            entry = self.cache[key]
        return entry

    def _drop_if_empty(self, key: str, entry: List[Any]) -> None:
        if not entry[0]:
            self.cache.pop(key, None)

    async def get(self, key: str) -> Optional[str]:
        entry = self._get_entry(key, str)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self.clock() + ttl if ttl is not None else None
        self._put(key, value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if await self.exists(key):
                del self.cache[key]
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        entry = self.cache.get(key)
        if entry is None:
            return False
        if entry[1] is not None and self.clock() >= entry[1]:
            del self.cache[key]
            return False
        return True

    async def expire(self, key: str, ttl: int) -> bool:
        if not await self.exists(key):
            return False
        self.cache[key][1] = self.clock() + ttl
        return True

    async def incr(self, key: str) -> int:
        entry = self._get_entry(key, str)
        if entry is None:
            self._put(key, "1")
            return 1
        value = int(entry[0]) + 1
        entry[0] = str(value)
        return value

    async def lpush(self, key: str, *values: str) -> int:
        entry = self._get_or_create(key, list)
        for value in values:
            entry[0].insert(0, value)
        return len(entry[0])

    async def rpush(self, key: str, *values: str) -> int:
        entry = self._get_or_create(key, list)
        entry[0].extend(values)
        return len(entry[0])

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        entry = self._get_entry(key, list)
        if entry is None:
            return []
        lo, hi = _redis_range(start, stop, len(entry[0]))
        return list(entry[0][lo:hi])

    async def lrem(self, key: str, count: int, value: str) -> int:
        entry = self._get_entry(key, list)
        if entry is None:
            return 0
        items: List[str] = entry[0]
        limit = abs(count) if count != 0 else len(items)
        indices = [i for i, item in enumerate(items) if item == value]
        if count < 0:
            indices = list(reversed(indices))
        doomed = set(indices[:limit])
        entry[0] = [item for i, item in enumerate(items) if i not in doomed]
        self._drop_if_empty(key, entry)
        return len(doomed)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        entry = self._get_entry(key, list)
        if entry is None:
            return
        lo, hi = _redis_range(start, stop, len(entry[0]))
        entry[0] = entry[0][lo:hi]
        self._drop_if_empty(key, entry)

    async def llen(self, key: str) -> int:
        entry = self._get_entry(key, list)
        return len(entry[0]) if entry else 0

    async def hset(self, key: str, field: str, value: str) -> None:
        entry = self._get_or_create(key, dict)
        entry[0][field] = value

    async def hget(self, key: str, field: str) -> Optional[str]:
        entry = self._get_entry(key, dict)
        return entry[0].get(field) if entry else None

    async def hdel(self, key: str, *fields: str) -> int:
        entry = self._get_entry(key, dict)
        if entry is None:
            return 0
        removed = 0
        for field in fields:
            if entry[0].pop(field, None) is not None:
                removed += 1
        self._drop_if_empty(key, entry)
        return removed

    async def hgetall(self, key: str) -> Dict[str, str]:
        entry = self._get_entry(key, dict)
        return dict(entry[0]) if entry else {}

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        entry = self._get_or_create(key, _SortedSet)
        entry[0][member] = entry[0].get(member, 0.0) + amount
        return float(entry[0][member])

    async def zrevrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        entry = self._get_entry(key, _SortedSet)
        if entry is None:
            return []
        ordered = sorted(entry[0].items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
        lo, hi = _redis_range(start, stop, len(ordered))
        return [(member, float(score)) for member, score in ordered[lo:hi]]

    async def ping(self) -> bool:
        return True