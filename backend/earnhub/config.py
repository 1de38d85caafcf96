"""Configuration settings for the EarnHub backend."""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    # New key system (preferred)
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_publishable_key: str | None = None  # Client/public access
    # Legacy keys
    supabase_service_role_key: str | None = None
    supabase_anon_key: str | None = None

    # JWT - Supabase project secret, used to verify user access tokens
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    jwt_expire_minutes: int = 60

    # Generative AI (OpenAI-compatible chat completions)
    ai_api_key: str | None = None  # Without a key every AI check falls back to manual review
    ai_base_url: str = "https://api.deepseek.com"
    ai_model: str = "deepseek-chat"
    ai_timeout_seconds: float = 30.0

    # Games
    game_fee_percent: Decimal = Decimal("5")  # Taken from profit only
    min_bet: Decimal = Decimal("1")
    max_bet: Decimal = Decimal("10000")
    big_win_threshold: Decimal = Decimal("50")

    # Earnings
    default_commission_percent: Decimal = Decimal("5")
    worker_reward_share: Decimal = Decimal("0.70")

    # Payments
    deposit_auto_approve_limit: Decimal = Decimal("25000")
    ai_auto_approve_confidence: int = 90
    auto_suspend_on_risk: bool = False

    # System config cache
    config_cache_seconds: int = 30

    # App
    debug: bool = False
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
