"""Account routes: register, login, token verification, password reset."""

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from optimizecode.core.auth import get_current_profile, provision_profile, require_auth
from optimizecode.core.capabilities import Capabilities, get_capabilities
from optimizecode.core.exceptions import UpstreamProviderError
from optimizecode.core.identity import Principal
from optimizecode.domain.profiles import UserProfile

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    display_name: str | None = Field(default=None, min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class VerifyRequest(BaseModel):
    token: str = Field(min_length=1)


class ResetPasswordRequest(BaseModel):
    email: EmailStr


class PrincipalOut(BaseModel):
    uid: str
    email: str
    display_name: str | None = None
    email_verified: bool = False


class AuthResponse(BaseModel):
    message: str
    user: PrincipalOut
    token: str


class VerifyResponse(BaseModel):
    message: str
    user: PrincipalOut


class ProfileResponse(BaseModel):
    user: PrincipalOut
    profile: UserProfile


def _principal_out(principal: Principal) -> PrincipalOut:
    return PrincipalOut(
        uid=principal.uid,
        email=principal.email,
        display_name=principal.display_name,
        email_verified=principal.email_verified,
    )


# ── Endpoints ───────────────────────────────────────────────────────


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest, caps: Capabilities = Depends(get_capabilities)):
    """Create an account and its free-tier profile."""
    session = await caps.identity.register(body.email, body.password, body.display_name)
    await provision_profile(caps, session.principal)
    logger.info("user_registered", user_id=session.principal.uid)
    return AuthResponse(
        message="User registered successfully",
        user=_principal_out(session.principal),
        token=session.token,
    )


@router.post("/auth/login", response_model=AuthResponse)
async def login(body: LoginRequest, caps: Capabilities = Depends(get_capabilities)):
    session = await caps.identity.login(body.email, body.password)
    await provision_profile(caps, session.principal)
    return AuthResponse(message="Login successful", user=_principal_out(session.principal), token=session.token)


@router.post("/auth/logout")
async def logout():
    """Tokens are discarded client-side; nothing is held server-side."""
    return {"message": "Logout successful"}


@router.post("/auth/verify", response_model=VerifyResponse)
async def verify(body: VerifyRequest, caps: Capabilities = Depends(get_capabilities)):
    principal = await caps.identity.verify(body.token)
    return VerifyResponse(message="Token is valid", user=_principal_out(principal))


@router.get("/auth/profile", response_model=ProfileResponse)
async def auth_profile(
    user: Principal = Depends(require_auth),
    profile: UserProfile = Depends(get_current_profile),
):
    return ProfileResponse(user=_principal_out(user), profile=profile)


@router.post("/auth/reset-password")
async def reset_password(body: ResetPasswordRequest, caps: Capabilities = Depends(get_capabilities)):
    """Always acknowledges, whether or not the address has an account."""
    try:
        await caps.identity.send_password_reset(body.email)
    except UpstreamProviderError as exc:
        logger.warning("password_reset_failed", error=exc.message)
    return {"message": "If an account exists for this email, a password reset link has been sent"}
