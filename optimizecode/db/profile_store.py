"""Profile document storage.

Both implementations expose the same surface: ``get``, ``create_if_absent``
and ``update``. ``update`` applies a pure ``mutate`` function as a single
compare-and-swap step, so a check performed inside ``mutate`` (such as the
daily quota) cannot be raced by another writer. If ``mutate`` raises, nothing
is written and the exception propagates.
"""

import asyncio
import copy
from collections.abc import Callable
from typing import Protocol

import structlog
from redis.asyncio import Redis
from redis.exceptions import WatchError

from optimizecode.core.exceptions import ConcurrentUpdateError, ProfileNotFoundError
from optimizecode.domain.profiles import UserProfile

logger = structlog.get_logger(__name__)

Mutation = Callable[[UserProfile], UserProfile]

MAX_CAS_ATTEMPTS = 10


class ProfileStore(Protocol):
    async def get(self, uid: str) -> UserProfile | None: ...

    async def create_if_absent(self, profile: UserProfile) -> UserProfile: ...

    async def update(self, uid: str, mutate: Mutation) -> UserProfile: ...

    async def find_by_customer_id(self, customer_id: str) -> UserProfile | None: ...

    async def ping(self) -> bool: ...


class RedisProfileStore:
    """One JSON document per user under ``profile:{uid}``.

    A secondary key ``billing_customer:{customer_id}`` maps payment-provider
    customers back to user ids for webhook handling.
    """

    def __init__(self, redis: Redis, max_attempts: int = MAX_CAS_ATTEMPTS):
        self.redis = redis
        self.max_attempts = max_attempts

    @staticmethod
    def _key(uid: str) -> str:
        return f"profile:{uid}"

    @staticmethod
    def _customer_key(customer_id: str) -> str:
        return f"billing_customer:{customer_id}"

    async def get(self, uid: str) -> UserProfile | None:
        raw = await self.redis.get(self._key(uid))
        if raw is None:
            return None
        return UserProfile.model_validate_json(raw)

    async def create_if_absent(self, profile: UserProfile) -> UserProfile:
        created = await self.redis.set(self._key(profile.uid), profile.model_dump_json(), nx=True)
        if created:
            logger.info("profile_created", user_id=profile.uid, plan=profile.subscription.plan.value)
            return profile
        existing = await self.get(profile.uid)
        if existing is None:
            raise ProfileNotFoundError(profile.uid)
        return existing

    async def update(self, uid: str, mutate: Mutation) -> UserProfile:
        key = self._key(uid)
        async with self.redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise ProfileNotFoundError(uid)
                    updated = mutate(UserProfile.model_validate_json(raw))
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json())
                    customer_id = updated.subscription.billing_customer_id
                    if customer_id:
                        pipe.set(self._customer_key(customer_id), uid)
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("profile_cas_conflict", user_id=uid, attempt=attempt)
                    continue
        logger.warning("profile_cas_exhausted", user_id=uid, attempts=self.max_attempts)
        raise ConcurrentUpdateError("Profile is being updated concurrently, try again")

    async def find_by_customer_id(self, customer_id: str) -> UserProfile | None:
        uid = await self.redis.get(self._customer_key(customer_id))
        if uid is None:
            return None
        return await self.get(uid)

    async def ping(self) -> bool:
        return bool(await self.redis.ping())


class InMemoryProfileStore:
    """Dict-backed store for demo mode and tests; updates serialize on one lock."""

    def __init__(self):
        self._profiles: dict[str, UserProfile] = {}
        self._lock = asyncio.Lock()

    async def get(self, uid: str) -> UserProfile | None:
        profile = self._profiles.get(uid)
        return copy.deepcopy(profile) if profile is not None else None

    async def create_if_absent(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            existing = self._profiles.get(profile.uid)
            if existing is not None:
                return copy.deepcopy(existing)
            self._profiles[profile.uid] = copy.deepcopy(profile)
            logger.info("profile_created", user_id=profile.uid, plan=profile.subscription.plan.value)
            return profile

    async def update(self, uid: str, mutate: Mutation) -> UserProfile:
        async with self._lock:
            current = self._profiles.get(uid)
            if current is None:
                raise ProfileNotFoundError(uid)
            updated = mutate(copy.deepcopy(current))
            self._profiles[uid] = copy.deepcopy(updated)
            return updated

    async def find_by_customer_id(self, customer_id: str) -> UserProfile | None:
        for profile in self._profiles.values():
            if profile.subscription.billing_customer_id == customer_id:
                return copy.deepcopy(profile)
        return None

    async def ping(self) -> bool:
        return True
