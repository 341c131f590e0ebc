"""Configuration management for the LegacyGuard personalization service."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Sandboxed environments may not expose .env; rely on the process env
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Environment
    LEGACYGUARD_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")

    # HTTP
    CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Browser origins allowed to call the API",
    )

    # Auth
    ADMIN_API_KEY: str | None = Field(default=None, description="Key accepted in X-API-Key header")

    # PostHog (optional, analytics disabled when unset)
    POSTHOG_API_KEY: str | None = Field(default=None, description="PostHog project API key")
    POSTHOG_HOST: str = Field(default="https://app.posthog.com", description="PostHog host")

    # Background jobs
    ENABLE_BACKGROUND_JOBS: bool = Field(
        default=True, description="Start periodic refresh loops in the app lifespan"
    )
    CONTENT_REFRESH_SECONDS: int = Field(
        default=3600, description="Content optimizer reload/optimize interval"
    )
    RECOMMENDATION_REFRESH_SECONDS: int = Field(
        default=300, description="Recommendation cache purge interval"
    )
    ADAPTIVE_UI_EVALUATION_SECONDS: int = Field(
        default=30, description="Adaptive UI rule evaluation interval"
    )

    # Behavior tracker
    TRACKER_BUFFER_SIZE: int = Field(default=50, description="Interactions buffered before flush")
    TRACKER_FLUSH_SECONDS: int = Field(default=30, description="Interaction flush interval")

    # Webhooks
    WEBHOOK_RETRY_POLL_SECONDS: int = Field(default=60, description="Retry processor interval")
    WEBHOOK_TIMEOUT_SECONDS: float = Field(default=30.0, description="Outbound webhook timeout")
    WEBHOOK_USER_AGENT: str = Field(
        default="LegacyGuard-Webhooks/1.0", description="User-Agent for outbound webhooks"
    )

    # Guardians
    GUARDIAN_INVITATION_DAYS: int = Field(default=7, description="Invitation token lifetime")

    # Recommendations
    RECOMMENDATION_TOP_CONTENT_IDS: list[str] = Field(
        default_factory=list,
        description="Content ids considered for performance-based recommendations",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
