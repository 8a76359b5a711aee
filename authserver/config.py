from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        # Case-insensitive so DATABASE_URL and database_url both work
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────
    database_url: str = "sqlite:///./auth.db"
    # Create tables on startup instead of running Alembic (dev / tests only)
    db_auto_create: bool = False

    # ── Tokens ────────────────────────────────────────────────
    access_token_secret: str = Field(
        validation_alias=AliasChoices("access_token_secret", "jwt_secret"),
    )
    access_token_expires: str = "15m"
    algorithm: str = "HS256"
    # Variable name kept as deployed: REFRESH_TOKEN_TLL_DAYS
    refresh_token_tll_days: int = 30
    session_secret: Optional[str] = None
    session_max_age_days: int = 7

    # ── OTP / passwords ───────────────────────────────────────
    otp_expiry_minutes: int = 15
    otp_max_attempts: int = 5
    bcrypt_salt_rounds: int = 10
    reset_token_ttl_minutes: int = 60

    # ── SMTP ──────────────────────────────────────────────────
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    mail_from: Optional[str] = None
    app_name: str = "Authentication Service"

    # ── GitHub ────────────────────────────────────────────────
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = 5.0

    # ── App ───────────────────────────────────────────────────
    environment: str = "development"
    frontend_url: str = "http://localhost:3000"
    cors_origins: str = ""
    rate_limit_enabled: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)

    @property
    def session_signing_key(self) -> str:
        return self.session_secret or self.access_token_secret

    @property
    def cors_origins_list(self) -> list[str]:
        """FRONTEND_URL plus any comma-separated CORS_ORIGINS, de-duplicated."""
        origins = [self.frontend_url.rstrip("/")]
        for origin in self.cors_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader: reads .env once and reuses.
    Use this everywhere instead of instantiating Settings() directly.
    """
    return Settings()


# Module-level singleton for convenience imports
settings = get_settings()
