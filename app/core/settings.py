# app/core/settings.py
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === Algemene app settings ===
    app_env: str = "local"  # local | development | production
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    # === Database (record store) ===
    database_url: str = "sqlite:///./painter_leads.db"

    # === Stripe ===
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "gbp"
    STRIPE_WEBHOOK_TOLERANCE_SEC: int = 300
    PAYMENT_RETURN_URL: str = Field(
        "http://localhost:8000/payment-success",
        description="Where the provider sends the painter back after 3-D Secure",
    )

    # === Sessions ===
    SESSION_TTL_MINUTES: int = 60
    SESSION_COOKIE_NAME: str = "session_token"
    SESSION_COOKIE_SECURE: bool = False

    # === E-mail ===
    ADMIN_EMAIL: str = "admin@painter-near-me.co.uk"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Painter Near Me"

    # === Logging / monitoring ===
    log_level: str = "INFO"
    SENTRY_DSN: Optional[str] = None

    # === Rate limiting ===
    rate_limit_purchase: str = "10/minute"
    rate_limit_bids: str = "20/minute"
    rate_limit_login: str = "10/minute"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance met simpele env-overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
        s.SESSION_COOKIE_SECURE = True
        s.rate_limit_purchase = "5/minute"
    elif env == "development":
        s.log_level = "DEBUG"

    return s


settings = get_settings()
