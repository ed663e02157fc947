"""Daily optimization quota accounting with midnight UTC reset."""

from datetime import datetime

import structlog

from optimizecode.core.exceptions import ProfileNotFoundError, QuotaExceededError
from optimizecode.db.profile_store import ProfileStore
from optimizecode.domain.profiles import (
    QuotaStatus,
    UserProfile,
    apply_usage,
    quota_status,
    roll_over,
    utc_now,
)

logger = structlog.get_logger(__name__)


class UsageService:
    """Track daily optimization usage against the plan's limit."""

    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    async def check_and_reserve(self, user_id: str, now: datetime | None = None) -> QuotaStatus:
        """Admit one optimization request and count it, as a single atomic step.

        Args:
            user_id: User identifier
            now: Current time (for deterministic testing)

        Returns:
            Quota status after the reservation

        Raises:
            QuotaExceededError: if the daily limit is already used up
        """
        now = now or utc_now()

        def _reserve(profile: UserProfile) -> UserProfile:
            status = quota_status(profile, now)
            if not status.allowed:
                raise QuotaExceededError(used=status.used, limit=status.limit)
            return apply_usage(profile, now)

        try:
            updated = await self.profiles.update(user_id, _reserve)
        except QuotaExceededError as exc:
            logger.info("quota_exceeded", user_id=user_id, used=exc.used, limit=exc.limit)
            raise

        status = quota_status(updated, now)
        logger.debug("quota_reserved", user_id=user_id, used=status.used, limit=status.limit)
        return status

    async def peek_quota(self, user_id: str, now: datetime | None = None) -> QuotaStatus:
        """Read-only quota status; a stale day window reads as zero used."""
        now = now or utc_now()
        profile = await self.profiles.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return quota_status(profile, now)

    async def record_usage(self, user_id: str, now: datetime | None = None) -> UserProfile:
        """Count one optimization without checking the limit."""
        now = now or utc_now()
        return await self.profiles.update(user_id, lambda profile: apply_usage(profile, now))

    async def sync_day_window(self, user_id: str, now: datetime | None = None) -> UserProfile:
        """Persist the daily reset if the stored window is from an earlier day."""
        now = now or utc_now()
        profile = await self.profiles.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        if roll_over(profile, now) is profile:
            return profile
        return await self.profiles.update(user_id, lambda p: roll_over(p, now))
