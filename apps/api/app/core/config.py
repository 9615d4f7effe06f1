"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.04.00"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_SEND: int = 10  # Per client, on send, resume and send-test; 0 = off
    REDIS_URL: str = ""  # Empty = in-memory limiter storage

    # Mail transport (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "onboarding@resend.dev"
    RESEND_TIMEOUT_SECONDS: float = 10.0
    RESEND_MAX_ATTEMPTS: int = 3

    # Campaign send loop
    CAMPAIGN_SEND_DELAY_SECONDS: float = 0.1  # Fixed pause between recipients
    CAMPAIGN_CHECKPOINT_INTERVAL: int = 10  # Persist total_sent every N successes
    CAMPAIGN_INLINE_DISPATCH: bool = True  # False = leave jobs to the worker

    # Subscriptions / usage
    SUBSCRIPTION_CACHE_TTL_SECONDS: float = 60.0
    USAGE_ACCOUNTING_MODE: str = "optimistic"  # 'optimistic' | 'atomic'

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in ("dev", "development", "local", "test")

    @property
    def atomic_usage(self) -> bool:
        """Use the conditional-increment usage path instead of check-then-commit."""
        return self.USAGE_ACCOUNTING_MODE.lower() == "atomic"


settings = Settings()
