"""Collaborator wiring chosen once at startup.

Routes and services never inspect configuration to decide between real and
in-memory implementations; they receive a ``Capabilities`` instance built by
``build_capabilities`` and stored on ``app.state``.
"""

from dataclasses import dataclass

import structlog
from fastapi import Request
from redis.asyncio import Redis

from optimizecode.core.config import Settings
from optimizecode.core.identity import DemoIdentityProvider, FirebaseIdentityProvider, IdentityProvider
from optimizecode.db.events import EventLedger, InMemoryEventLedger, RedisEventLedger
from optimizecode.db.history import HistoryStore, InMemoryHistoryStore, RedisHistoryStore
from optimizecode.db.profile_store import InMemoryProfileStore, ProfileStore, RedisProfileStore
from optimizecode.services.generation import AnthropicGenerator, CodeGenerator

logger = structlog.get_logger(__name__)


@dataclass
class Capabilities:
    identity: IdentityProvider
    profiles: ProfileStore
    history: HistoryStore
    events: EventLedger
    generator: CodeGenerator | None
    demo: bool = False


def build_generator(settings: Settings) -> CodeGenerator | None:
    if not settings.anthropic_api_key:
        logger.info("generator_disabled", reason="no_api_key")
        return None
    return AnthropicGenerator(settings)


def build_in_memory_capabilities(
    settings: Settings,
    generator: CodeGenerator | None = None,
) -> Capabilities:
    return Capabilities(
        identity=DemoIdentityProvider(),
        profiles=InMemoryProfileStore(),
        history=InMemoryHistoryStore(max_entries=settings.history_max_entries),
        events=InMemoryEventLedger(),
        generator=generator,
        demo=True,
    )


def build_capabilities(settings: Settings, redis: Redis | None = None) -> Capabilities:
    """Select real or in-memory collaborators from ``settings``.

    Demo mode (explicit, or no identity project configured) uses in-memory
    identity and stores. Otherwise ``redis`` must be provided.
    """
    generator = build_generator(settings)

    if settings.uses_demo_identity:
        logger.info("capabilities_built", mode="demo", generator=generator is not None)
        return build_in_memory_capabilities(settings, generator)

    if redis is None:
        raise RuntimeError("Redis client required outside demo mode")

    logger.info("capabilities_built", mode="production", generator=generator is not None)
    return Capabilities(
        identity=FirebaseIdentityProvider(
            project_id=settings.firebase_project_id,
            api_key=settings.firebase_api_key,
            jwks_url=settings.identity_jwks_url,
            toolkit_url=settings.identity_toolkit_url,
        ),
        profiles=RedisProfileStore(redis),
        history=RedisHistoryStore(redis, max_entries=settings.history_max_entries),
        events=RedisEventLedger(redis),
        generator=generator,
    )


def get_capabilities(request: Request) -> Capabilities:
    """FastAPI dependency returning the process-wide ``Capabilities``."""
    return request.app.state.capabilities


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was created with."""
    return request.app.state.settings
