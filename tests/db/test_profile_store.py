"""Tests for profile storage: creation, compare-and-swap updates, customer lookup.

Both the Redis store (against fakeredis) and the in-memory store are run
through the same behavioural checks.
"""

import asyncio
from unittest.mock import patch

import fakeredis
import pytest
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from optimizecode.core.exceptions import ConcurrentUpdateError, ProfileNotFoundError
from optimizecode.db.profile_store import InMemoryProfileStore, RedisProfileStore
from optimizecode.domain.profiles import apply_usage, quota_status

pytestmark = pytest.mark.unit


class LimitReached(Exception):
    pass


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture(params=["redis", "memory"])
def store(request, fake_redis):
    if request.param == "redis":
        return RedisProfileStore(fake_redis)
    return InMemoryProfileStore()


def _reserve(now):
    def mutate(profile):
        if not quota_status(profile, now).allowed:
            raise LimitReached()
        return apply_usage(profile, now)

    return mutate


# ============================================================================
# create / get
# ============================================================================


async def test_get_missing_returns_none(store):
    assert await store.get("nobody") is None


async def test_create_if_absent_creates_once(store, make_profile):
    first = make_profile(uid="u1", used_today=3)
    second = make_profile(uid="u1", used_today=0)

    created = await store.create_if_absent(first)
    again = await store.create_if_absent(second)

    assert created.usage.optimizations_today == 3
    assert again.usage.optimizations_today == 3
    stored = await store.get("u1")
    assert stored == first


async def test_ping(store):
    assert await store.ping() is True


# ============================================================================
# update
# ============================================================================


async def test_update_persists_mutation(store, make_profile, now):
    await store.create_if_absent(make_profile(uid="u1"))

    updated = await store.update("u1", lambda p: apply_usage(p, now))

    assert updated.usage.optimizations_today == 1
    assert (await store.get("u1")).usage.optimizations_today == 1


async def test_update_missing_profile_raises(store):
    with pytest.raises(ProfileNotFoundError):
        await store.update("ghost", lambda p: p)


async def test_failed_mutation_writes_nothing(store, make_profile, now):
    await store.create_if_absent(make_profile(uid="u1", used_today=10))

    with pytest.raises(LimitReached):
        await store.update("u1", _reserve(now))

    assert (await store.get("u1")).usage.optimizations_today == 10


async def test_concurrent_reservations_at_limit_admit_exactly_one(store, make_profile, now):
    await store.create_if_absent(make_profile(uid="u1", used_today=9))

    results = await asyncio.gather(
        store.update("u1", _reserve(now)),
        store.update("u1", _reserve(now)),
        return_exceptions=True,
    )

    admitted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, LimitReached)]
    assert len(admitted) == 1
    assert len(rejected) == 1
    assert (await store.get("u1")).usage.optimizations_today == 10


async def test_many_concurrent_reservations_never_exceed_limit(store, make_profile, now):
    await store.create_if_absent(make_profile(uid="u1", used_today=5))

    results = await asyncio.gather(
        *(store.update("u1", _reserve(now)) for _ in range(8)),
        return_exceptions=True,
    )

    admitted = [r for r in results if not isinstance(r, Exception)]
    assert len(admitted) == 5
    assert (await store.get("u1")).usage.optimizations_today == 10


# ============================================================================
# customer index
# ============================================================================


async def test_find_by_customer_id(store, make_profile):
    await store.create_if_absent(make_profile(uid="u1"))

    def attach(profile):
        sub = profile.subscription.model_copy(update={"billing_customer_id": "cus_123"})
        return profile.model_copy(update={"subscription": sub})

    await store.update("u1", attach)

    found = await store.find_by_customer_id("cus_123")
    assert found is not None
    assert found.uid == "u1"
    assert await store.find_by_customer_id("cus_unknown") is None


# ============================================================================
# Redis specifics
# ============================================================================


async def test_redis_document_key_layout(fake_redis, make_profile):
    store = RedisProfileStore(fake_redis)
    await store.create_if_absent(make_profile(uid="u1"))

    assert await fake_redis.exists("profile:u1") == 1


async def test_redis_cas_gives_up_after_max_attempts(fake_redis, make_profile, now):
    store = RedisProfileStore(fake_redis, max_attempts=3)
    await store.create_if_absent(make_profile(uid="u1"))
    calls = 0

    def counting(profile):
        nonlocal calls
        calls += 1
        return apply_usage(profile, now)

    async def always_conflict(self, raise_on_error=True):
        await self.reset()
        raise WatchError()

    with patch.object(Pipeline, "execute", always_conflict):
        with pytest.raises(ConcurrentUpdateError):
            await store.update("u1", counting)

    assert calls == 3
    assert (await store.get("u1")).usage.optimizations_today == 0
