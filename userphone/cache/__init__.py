# Key/value store adapters used for queues, snapshots and counters
from .base_cache_store import BaseCacheStore
from .memory_cache_store import MemoryCacheStore
from .redis_cache_store import RedisCacheStore

__all__ = ["BaseCacheStore", "MemoryCacheStore", "RedisCacheStore"]
