from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "OptimizeCode API"
    debug: bool = False
    # In-memory identity + stores; also forced when no identity project is configured
    demo_mode: bool = False

    # API
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Redis (profile documents, history, webhook ledger)
    redis_url: str = "redis://localhost:6379"
    redis_max_connections: int = 20
    redis_socket_timeout_seconds: float = 5.0
    history_max_entries: int = 100

    # Identity (Firebase-compatible)
    firebase_project_id: str = ""
    firebase_api_key: str = ""
    identity_jwks_url: str = (
        "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    )
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"

    # Anthropic
    anthropic_api_key: str = ""
    free_model: str = "claude-3-5-haiku-20241022"
    pro_model: str = "claude-sonnet-4-20250514"
    unleashed_model: str = "claude-sonnet-4-20250514"
    generation_timeout_seconds: float = 60.0

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_pro_monthly: str = ""
    stripe_price_pro_yearly: str = ""
    stripe_price_unleashed_monthly: str = ""
    stripe_price_unleashed_yearly: str = ""

    # Metrics
    metrics_enabled: bool = False
    aws_region: str = "us-east-1"

    @property
    def uses_demo_identity(self) -> bool:
        return self.demo_mode or not self.firebase_project_id


@lru_cache
def get_settings() -> Settings:
    return Settings()
