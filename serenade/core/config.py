"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Public base URL used for Stripe redirects, signed URLs and email links.
    app_url: str = "http://localhost:3000"
    # CORS: comma-separated origins. Empty = built-in default list.
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_connect_timeout: int = 5

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # IDENTITY PROVIDER (HS256 access tokens)
    # ===========================================
    auth_jwt_secret: str  # Required, no default
    auth_jwt_audience: str | None = "authenticated"

    # ===========================================
    # STRIPE
    # ===========================================
    stripe_secret_key: str  # Required, no default
    stripe_webhook_secret: str  # Required, no default
    stripe_currency: str = "gbp"
    stripe_webhook_tolerance_seconds: int = 300

    # ===========================================
    # SONG GENERATION
    # ===========================================
    # Shared secret for the internal chain trigger (/api/generate/start)
    generation_secret: str  # Required, no default
    audio_provider: str = "elevenlabs"
    elevenlabs_api_key: str = ""
    elevenlabs_api_url: str = "https://api.elevenlabs.io"
    elevenlabs_model: str = "music_v1"
    elevenlabs_timeout: float = 55.0
    # Transport retry budget inside a single provider call (429/5xx/network only)
    audio_generation_retry_max_attempts: int = 2
    audio_generation_retry_backoff_seconds: float = 2.0
    # Variants stuck in "generating" longer than this are treated as failed
    generation_stale_minutes: int = 15

    # ===========================================
    # MODERATION (external classifier, optional)
    # ===========================================
    moderation_api_url: str = ""
    moderation_timeout: float = 5.0

    # ===========================================
    # STORAGE
    # ===========================================
    storage_base_path: str = "/data/songs"
    storage_signing_secret: str  # Required, no default
    signed_url_ttl_seconds: int = 7200

    # ===========================================
    # EMAIL
    # ===========================================
    email_api_key: str = ""  # Optional: empty = emails are logged and skipped
    email_api_url: str = "https://api.resend.com"
    email_from: str = "Serenade <songs@serenade.local>"
    email_timeout: float = 10.0

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Optional; admin routes answer 403 when unset

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("generation_secret", "storage_signing_secret")
    @classmethod
    def validate_secret_strength(cls, v: str) -> str:
        """Ensure shared secrets are reasonably secure."""
        if len(v) < 16:
            raise ValueError("secret must be at least 16 characters")
        if v in ("changeme", "secret", "password"):
            raise ValueError("secret is too weak, please change it")
        return v

    @field_validator("stripe_currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
