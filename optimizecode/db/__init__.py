"""Storage package: shared Redis pool and the document stores built on it."""

from optimizecode.db.events import InMemoryEventLedger, RedisEventLedger
from optimizecode.db.history import InMemoryHistoryStore, RedisHistoryStore
from optimizecode.db.profile_store import InMemoryProfileStore, RedisProfileStore
from optimizecode.db.redis import close_redis, init_redis

__all__ = [
    "InMemoryEventLedger",
    "InMemoryHistoryStore",
    "InMemoryProfileStore",
    "RedisEventLedger",
    "RedisHistoryStore",
    "RedisProfileStore",
    "close_redis",
    "init_redis",
]
