"""Identity providers: token verification and account operations.

``FirebaseIdentityProvider`` verifies RS256 ID tokens against the provider's
JWKS and talks to the Identity Toolkit REST API for account operations.
``DemoIdentityProvider`` keeps everything in memory and accepts the fixed
``demo-token`` sentinel.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass, field
from typing import Protocol

import httpx
import jwt as pyjwt
import structlog
from jwt import PyJWKClient

from optimizecode.core.exceptions import (
    AuthenticationError,
    UpstreamProviderError,
    ValidationFailedError,
)

logger = structlog.get_logger(__name__)

DEMO_TOKEN = "demo-token"
DEMO_UID = "demo-user-id"
DEMO_EMAIL = "demo@optimizecode.ai"
DEMO_NAME = "Demo User"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity extracted from a verified token."""

    uid: str
    email: str
    display_name: str | None = None
    email_verified: bool = False
    claims: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AuthSession:
    principal: Principal
    token: str


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> Principal: ...

    async def register(self, email: str, password: str, display_name: str | None = None) -> AuthSession: ...

    async def login(self, email: str, password: str) -> AuthSession: ...

    async def send_password_reset(self, email: str) -> None: ...


# ── Firebase-compatible provider ────────────────────────────────────

_CREDENTIAL_ERRORS = {"EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS", "USER_DISABLED"}
_INPUT_ERRORS = {
    "EMAIL_EXISTS": "An account with this email already exists",
    "INVALID_EMAIL": "Invalid email address",
    "WEAK_PASSWORD": "Password must be at least 6 characters",
}


class FirebaseIdentityProvider:
    def __init__(
        self,
        project_id: str,
        api_key: str,
        jwks_url: str,
        toolkit_url: str = "https://identitytoolkit.googleapis.com/v1",
        jwks_client: PyJWKClient | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.project_id = project_id
        self.api_key = api_key
        self.toolkit_url = toolkit_url.rstrip("/")
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self._jwks_client = jwks_client or PyJWKClient(jwks_url, cache_keys=True, lifespan=300)
        self._http_client = http_client
        self._timeout = timeout

    async def verify(self, token: str) -> Principal:
        """Verify and decode an ID token.

        Raises ``AuthenticationError`` on any validation failure.
        """
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            payload = pyjwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={"require": ["sub", "exp", "iat", "aud", "iss"]},
            )
        except pyjwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except pyjwt.MissingRequiredClaimError as exc:
            raise AuthenticationError(f"Missing required claim: {exc}")
        except pyjwt.InvalidAudienceError:
            raise AuthenticationError("Invalid audience (aud mismatch)")
        except pyjwt.InvalidIssuerError:
            raise AuthenticationError("Invalid issuer (iss mismatch)")
        except pyjwt.PyJWKClientError as exc:
            raise AuthenticationError(f"Unable to resolve signing key: {exc}")
        except pyjwt.InvalidTokenError as exc:
            raise AuthenticationError(f"Invalid token: {exc}")

        sub = payload.get("sub")
        if not sub:
            raise AuthenticationError("Token missing sub claim")

        return Principal(
            uid=sub,
            email=payload.get("email", ""),
            display_name=payload.get("name"),
            email_verified=bool(payload.get("email_verified", False)),
            claims=payload,
        )

    async def _call(self, method: str, body: dict) -> dict:
        url = f"{self.toolkit_url}/accounts:{method}"
        params = {"key": self.api_key}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, params=params, json=body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, params=params, json=body)
        except httpx.HTTPError as exc:
            logger.error("identity_request_failed", method=method, error=str(exc))
            raise UpstreamProviderError("identity", "Identity provider unavailable", status_code=503) from exc

        if response.status_code == 200:
            return response.json()

        try:
            message = response.json().get("error", {}).get("message", "")
        except ValueError:
            message = ""
        code = message.split(" ", 1)[0].split(":", 1)[0]
        logger.warning("identity_request_rejected", method=method, status=response.status_code, code=code)
        if code in _CREDENTIAL_ERRORS:
            raise AuthenticationError("Invalid email or password")
        if code in _INPUT_ERRORS:
            raise ValidationFailedError(_INPUT_ERRORS[code])
        raise UpstreamProviderError("identity", f"Identity provider error: {code or response.status_code}")

    async def register(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        data = await self._call(
            "signUp", {"email": email, "password": password, "returnSecureToken": True}
        )
        token = data["idToken"]
        name = display_name or email.split("@")[0]
        updated = await self._call(
            "update", {"idToken": token, "displayName": name, "returnSecureToken": True}
        )
        token = updated.get("idToken", token)
        principal = Principal(uid=data["localId"], email=data.get("email", email), display_name=name)
        logger.info("identity_registered", user_id=principal.uid)
        return AuthSession(principal=principal, token=token)

    async def login(self, email: str, password: str) -> AuthSession:
        data = await self._call(
            "signInWithPassword", {"email": email, "password": password, "returnSecureToken": True}
        )
        principal = Principal(
            uid=data["localId"],
            email=data.get("email", email),
            display_name=data.get("displayName") or None,
        )
        return AuthSession(principal=principal, token=data["idToken"])

    async def send_password_reset(self, email: str) -> None:
        try:
            await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        except AuthenticationError:
            # Unknown addresses are not disclosed to the caller.
            logger.info("password_reset_unknown_email")


# ── In-memory demo provider ─────────────────────────────────────────


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)


@dataclass
class _DemoAccount:
    principal: Principal
    salt: bytes
    password_hash: bytes
    token: str


class DemoIdentityProvider:
    """Accepts ``demo-token`` as the demo user and issues opaque tokens for local accounts.

    Logging in with an email that was never registered yields the demo
    session.
    """

    def __init__(self):
        self.demo_principal = Principal(
            uid=DEMO_UID, email=DEMO_EMAIL, display_name=DEMO_NAME, email_verified=True
        )
        self._accounts: dict[str, _DemoAccount] = {}
        self._tokens: dict[str, Principal] = {}

    async def verify(self, token: str) -> Principal:
        if token == DEMO_TOKEN:
            return self.demo_principal
        principal = self._tokens.get(token)
        if principal is None:
            raise AuthenticationError("Invalid authentication token")
        return principal

    async def register(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        key = email.lower()
        if key in self._accounts or key == DEMO_EMAIL:
            raise ValidationFailedError(_INPUT_ERRORS["EMAIL_EXISTS"])
        principal = Principal(
            uid=f"user_{secrets.token_hex(8)}",
            email=email,
            display_name=display_name or email.split("@")[0],
        )
        salt = secrets.token_bytes(16)
        token = f"{DEMO_TOKEN}-{secrets.token_urlsafe(16)}"
        self._accounts[key] = _DemoAccount(principal, salt, _hash_password(password, salt), token)
        self._tokens[token] = principal
        return AuthSession(principal=principal, token=token)

    async def login(self, email: str, password: str) -> AuthSession:
        account = self._accounts.get(email.lower())
        if account is None:
            return AuthSession(principal=self.demo_principal, token=DEMO_TOKEN)
        if not hmac.compare_digest(account.password_hash, _hash_password(password, account.salt)):
            raise AuthenticationError("Invalid email or password")
        return AuthSession(principal=account.principal, token=account.token)

    async def send_password_reset(self, email: str) -> None:
        logger.info("password_reset_requested", demo=True)
