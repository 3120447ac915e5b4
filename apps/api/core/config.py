"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # A full URL wins over the POSTGRES_* parts (e.g. the Supabase pooler URL).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="kava")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Supabase (auth cookie + storage)
    SUPABASE_URL: Optional[str] = Field(default=None)
    SUPABASE_SERVICE_KEY: Optional[str] = Field(default=None)
    # When unset, the access token's `sub` is read without signature verification.
    SUPABASE_JWT_SECRET: Optional[str] = Field(default=None)
    SUPABASE_JWT_AUDIENCE: str = Field(default="authenticated")

    # Storage buckets
    CHECKIN_MEDIA_BUCKET: str = Field(default="checkin-media")
    PROGRESS_PHOTO_BUCKET: str = Field(default="progress-photos")
    PROGRESS_PHOTO_MAX_BYTES: int = Field(default=10 * 1024 * 1024)

    # All day bucketing (completions, compliance) happens in this zone.
    USER_TIMEZONE: str = Field(default="America/Denver")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Email Configuration (Resend)
    EMAIL_ENABLED: bool = Field(default=False)
    RESEND_API_KEY: Optional[str] = Field(default=None)
    RESEND_API_URL: str = Field(default="https://api.resend.com/emails")
    FROM_EMAIL: str = Field(default="noreply@kavatraining.com")
    FROM_NAME: str = Field(default="Kava Training")

    # Check-in forms
    CHECK_IN_FORM_DEFAULT_EXPIRY_DAYS: int = Field(default=7, ge=1, le=90)
    CHECK_IN_FORM_PURGE_AFTER_DAYS: int = Field(default=30, ge=1)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Web app base URL (links in invitation and notification emails).
    WEB_APP_BASE_URL: str = Field(default="http://localhost:3000")

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    # Failed invoice payments before a client is locked to `payment_required`.
    PAYMENT_FAILURE_LOCKOUT_ATTEMPTS: int = Field(default=3, ge=1)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions


# Global settings instance
settings = Settings()
