from typing import Dict, List, Optional, Tuple

import redis.asyncio as redis

from userphone.cache.base_cache_store import BaseCacheStore


class RedisCacheStore(BaseCacheStore):
    """Cache store backed by redis.asyncio, shared by every bot shard."""

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self.client.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return int(await self.client.exists(key)) > 0

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.client.expire(key, ttl))

    async def incr(self, key: str) -> int:
        return int(await self.client.incr(key))

    async def lpush(self, key: str, *values: str) -> int:
        return int(await self.client.lpush(key, *values))

    async def rpush(self, key: str, *values: str) -> int:
        return int(await self.client.rpush(key, *values))

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        return list(await self.client.lrange(key, start, stop))

    async def lrem(self, key: str, count: int, value: str) -> int:
        return int(await self.client.lrem(key, count, value))

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        await self.client.ltrim(key, start, stop)

    async def llen(self, key: str) -> int:
        return int(await self.client.llen(key))

    async def hset(self, key: str, field: str, value: str) -> None:
        await self.client.hset(key, field, value)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self.client.hget(key, field)

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        return int(await self.client.hdel(key, *fields))

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(await self.client.hgetall(key))

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        return float(await self.client.zincrby(key, amount, member))

    async def zrevrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        results = await self.client.zrevrange(key, start, stop, withscores=True)
        return [(member, float(score)) for member, score in results]

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()
