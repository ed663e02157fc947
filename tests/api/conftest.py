"""API-specific test fixtures.

The app runs in demo mode against in-memory capabilities: the fixed
``demo-token`` authenticates as the demo user, and profiles are provisioned on
first request.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from optimizecode.core.capabilities import build_in_memory_capabilities
from optimizecode.core.config import Settings
from optimizecode.core.identity import DEMO_EMAIL, DEMO_TOKEN, DEMO_UID
from optimizecode.domain.plans import Plan, change_plan
from optimizecode.domain.profiles import new_profile, utc_now
from optimizecode.main import create_app
from tests.conftest import FakeGenerator

AUTH = {"Authorization": f"Bearer {DEMO_TOKEN}"}


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        demo_mode=True,
        debug=True,
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_test_dummy",
        stripe_price_pro_monthly="price_test_pro_mo",
        stripe_price_pro_yearly="price_test_pro_yr",
        stripe_price_unleashed_monthly="price_test_ul_mo",
        stripe_price_unleashed_yearly="price_test_ul_yr",
    )


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def caps(test_settings, generator):
    return build_in_memory_capabilities(test_settings, generator)


@pytest.fixture
def app(test_settings, caps):
    return create_app(settings=test_settings, capabilities=caps)


@pytest.fixture
def api_client(app):
    """FastAPI test client running the lifespan against in-memory capabilities."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict:
    return dict(AUTH)


@pytest.fixture
def seed_demo_profile(caps):
    """Store the demo user's profile on ``plan`` with ``used_today`` counted today."""

    def _seed(plan: Plan = Plan.FREE, used_today: int = 0, **subscription_fields):
        now = utc_now()
        profile = new_profile(uid=DEMO_UID, email=DEMO_EMAIL, display_name="Demo User", now=now)
        if plan != Plan.FREE:
            profile = change_plan(profile, plan, now)
        profile = profile.model_copy(
            update={
                "usage": profile.usage.model_copy(
                    update={"optimizations_today": used_today, "total_optimizations": used_today}
                ),
                "subscription": profile.subscription.model_copy(update=subscription_fields),
            }
        )
        return asyncio.run(caps.profiles.create_if_absent(profile))

    return _seed


@pytest.fixture
def read_profile(caps):
    def _read(uid: str = DEMO_UID):
        return asyncio.run(caps.profiles.get(uid))

    return _read
