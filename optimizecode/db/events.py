"""Ledger of processed webhook event ids."""

from typing import Protocol

from redis.asyncio import Redis

EVENT_TTL_SECONDS = 30 * 24 * 3600


class EventLedger(Protocol):
    async def claim(self, event_id: str) -> bool: ...

    async def release(self, event_id: str) -> None: ...


class RedisEventLedger:
    def __init__(self, redis: Redis, ttl_seconds: int = EVENT_TTL_SECONDS):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(event_id: str) -> str:
        return f"stripe_event:{event_id}"

    async def claim(self, event_id: str) -> bool:
        """Return True if event is new (claimed). False if duplicate."""
        return bool(await self.redis.set(self._key(event_id), "1", nx=True, ex=self.ttl_seconds))

    async def release(self, event_id: str) -> None:
        """Forget a claim so a redelivery of the event is processed."""
        await self.redis.delete(self._key(event_id))


class InMemoryEventLedger:
    def __init__(self):
        self._seen: set[str] = set()

    async def claim(self, event_id: str) -> bool:
        if event_id in self._seen:
            return False
        self._seen.add(event_id)
        return True

    async def release(self, event_id: str) -> None:
        self._seen.discard(event_id)
