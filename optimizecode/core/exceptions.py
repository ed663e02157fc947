"""Domain exceptions.

Each error carries the HTTP status it maps to and a ``detail()`` payload;
the global handler in ``optimizecode.main`` renders them into the standard
``{"detail": ..., "debug_id": ...}`` envelope.
"""

from typing import Any


class OptimizeCodeError(Exception):
    """Base exception for the OptimizeCode application."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationFailedError(OptimizeCodeError):
    """Raised when request content is well-formed but semantically invalid."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "errors": self.errors}


class AuthenticationError(OptimizeCodeError):
    """Raised when a token is missing, malformed, or rejected by the identity provider."""

    status_code = 401
    code = "unauthorized"


class PlanRequiredError(OptimizeCodeError):
    """Raised when a feature needs a higher subscription tier."""

    status_code = 403
    code = "plan_required"

    def __init__(self, current_plan: str, required_plan: str):
        self.current_plan = current_plan
        self.required_plan = required_plan
        super().__init__(
            f"This feature requires {required_plan} subscription or higher. Current plan: {current_plan}"
        )

    def detail(self) -> dict[str, Any]:
        return {
            **super().detail(),
            "current_plan": self.current_plan,
            "required_plan": self.required_plan,
            "upgrade_url": "/pricing",
        }


class ProfileNotFoundError(OptimizeCodeError):
    """Raised when no profile document exists for a user id."""

    status_code = 404
    code = "profile_not_found"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User profile not found")


class PayloadTooLargeError(OptimizeCodeError):
    """Raised when submitted code exceeds the plan's character or size limit."""

    status_code = 413
    code = "content_too_large"

    def __init__(self, current_size: int, max_size: int, message: str | None = None):
        self.current_size = current_size
        self.max_size = max_size
        super().__init__(message or f"Code exceeds character limit of {max_size:,} characters")

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "current_size": self.current_size, "max_size": self.max_size}


class TooManyFilesError(OptimizeCodeError):
    """Raised when a batch holds more files than the plan allows."""

    status_code = 413
    code = "too_many_files"

    def __init__(self, file_count: int, max_files: int):
        self.file_count = file_count
        self.max_files = max_files
        super().__init__(f"File limit exceeded. Your plan allows {max_files} files per optimization.")

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "file_count": self.file_count, "max_files": self.max_files}


class QuotaExceededError(OptimizeCodeError):
    """Raised when the daily optimization quota is used up."""

    status_code = 429
    code = "usage_limit_exceeded"

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__(
            f"Daily optimization limit reached ({limit}). Upgrade your plan for more optimizations."
        )

    def detail(self) -> dict[str, Any]:
        return {
            **super().detail(),
            "used": self.used,
            "limit": self.limit,
            "remaining": max(0, self.limit - self.used),
            "upgrade_required": True,
        }


class UpstreamProviderError(OptimizeCodeError):
    """Raised when the identity or billing provider fails."""

    status_code = 502
    code = "upstream_error"

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "provider": self.provider}


class WebhookRejectedError(OptimizeCodeError):
    """Raised when a webhook delivery fails signature or payload checks."""

    status_code = 400
    code = "invalid_webhook"


class ConcurrentUpdateError(OptimizeCodeError):
    """Raised when a compare-and-swap update keeps losing the race."""

    status_code = 503
    code = "concurrent_update"
