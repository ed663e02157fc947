"""Per-user optimization history, newest first, capped."""

from datetime import datetime
from typing import Literal, Protocol

from pydantic import BaseModel
from redis.asyncio import Redis


class InsightsSummary(BaseModel):
    lines_reduced: int
    size_reduction: str
    improvements: list[str]


class OptimizationRecord(BaseModel):
    id: str
    timestamp: datetime
    mode: Literal["single", "batch"]
    language: str | list[str]
    optimization_type: str
    engine: Literal["ai", "fallback"]
    file_count: int = 1
    insights: InsightsSummary


class HistoryStore(Protocol):
    async def append(self, uid: str, record: OptimizationRecord) -> None: ...

    async def list(self, uid: str, limit: int, offset: int) -> tuple[list[OptimizationRecord], int]: ...


class RedisHistoryStore:
    def __init__(self, redis: Redis, max_entries: int = 100):
        self.redis = redis
        self.max_entries = max_entries

    @staticmethod
    def _key(uid: str) -> str:
        return f"history:{uid}"

    async def append(self, uid: str, record: OptimizationRecord) -> None:
        key = self._key(uid)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lpush(key, record.model_dump_json())
            pipe.ltrim(key, 0, self.max_entries - 1)
            await pipe.execute()

    async def list(self, uid: str, limit: int, offset: int) -> tuple[list[OptimizationRecord], int]:
        key = self._key(uid)
        total = await self.redis.llen(key)
        raw = await self.redis.lrange(key, offset, offset + limit - 1)
        return [OptimizationRecord.model_validate_json(item) for item in raw], total


class InMemoryHistoryStore:
    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self._records: dict[str, list[OptimizationRecord]] = {}

    async def append(self, uid: str, record: OptimizationRecord) -> None:
        records = self._records.setdefault(uid, [])
        records.insert(0, record)
        del records[self.max_entries:]

    async def list(self, uid: str, limit: int, offset: int) -> tuple[list[OptimizationRecord], int]:
        records = self._records.get(uid, [])
        return records[offset:offset + limit], len(records)
