"""Bearer-token authentication and plan gating for FastAPI routes."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from optimizecode.core.capabilities import Capabilities, get_capabilities
from optimizecode.core.exceptions import AuthenticationError, PlanRequiredError, ProfileNotFoundError
from optimizecode.core.identity import Principal
from optimizecode.domain.plans import Plan, meets_plan
from optimizecode.domain.profiles import UserProfile, effective_plan, new_profile

_bearer_scheme = HTTPBearer(auto_error=False)


async def provision_profile(caps: Capabilities, principal: Principal) -> UserProfile:
    """Return the stored profile for ``principal``, creating a free-tier one on first sight."""
    existing = await caps.profiles.get(principal.uid)
    if existing is not None:
        return existing
    return await caps.profiles.create_if_absent(
        new_profile(
            uid=principal.uid,
            email=principal.email,
            display_name=principal.display_name,
            email_verified=principal.email_verified,
        )
    )


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    caps: Capabilities = Depends(get_capabilities),
) -> Principal:
    """FastAPI dependency that verifies the bearer token.

    Also provisions a profile for accounts seen for the first time.

    Usage::

        @router.get("/protected")
        async def protected(user: Principal = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise AuthenticationError("No authentication token provided")

    principal = await caps.identity.verify(credentials.credentials)
    await provision_profile(caps, principal)

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = principal.uid
    return principal


async def get_current_profile(
    user: Principal = Depends(require_auth),
    caps: Capabilities = Depends(get_capabilities),
) -> UserProfile:
    profile = await caps.profiles.get(user.uid)
    if profile is None:
        raise ProfileNotFoundError(user.uid)
    return profile


def require_plan(required: Plan):
    """Build a dependency that rejects profiles below ``required``."""

    async def _require_plan(profile: UserProfile = Depends(get_current_profile)) -> UserProfile:
        plan = effective_plan(profile)
        if not meets_plan(plan, required):
            raise PlanRequiredError(
                current_plan=plan.value,
                required_plan=Plan(required).value,
            )
        return profile

    return _require_plan
