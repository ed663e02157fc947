"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime

import pytest

from optimizecode.core.logging import configure_structlog
from optimizecode.domain.plans import Plan, change_plan
from optimizecode.domain.profiles import new_profile


class FakeGenerator:
    """Scriptable stand-in for the language-model generator.

    Returns ``text`` (or a commented copy of the input) and records every call;
    raises ``exc`` instead when one is given.
    """

    def __init__(self, text: str | None = None, exc: Exception | None = None, model: str = "test-model"):
        self.text = text
        self.exc = exc
        self.model = model
        self.calls: list[dict] = []

    async def rewrite(self, code, language, optimization_type, plan):
        self.calls.append(
            {"code": code, "language": language, "optimization_type": optimization_type, "plan": plan}
        )
        if self.exc is not None:
            raise self.exc
        if self.text is not None:
            return self.text, self.model
        return f"// optimized\n{code}", self.model


@pytest.fixture
def now():
    return datetime(2030, 6, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def make_profile(now):
    """Factory for profiles on a given plan with a given usage count today."""

    def _make(uid: str = "user-1", plan: Plan = Plan.FREE, used_today: int = 0, email: str | None = None):
        profile = new_profile(uid=uid, email=email or f"{uid}@example.com", now=now)
        if plan != Plan.FREE:
            profile = change_plan(profile, plan, now)
        usage = profile.usage.model_copy(
            update={"optimizations_today": used_today, "total_optimizations": used_today}
        )
        return profile.model_copy(update={"usage": usage})

    return _make


@pytest.fixture
def restore_logging():
    """Point logging back at stdout after a test configured it onto a captured stream."""
    yield
    configure_structlog()
