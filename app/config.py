import logging
import sys
from functools import lru_cache

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # ── Database ──────────────────────────────────────────────
    database_url: str

    # ── JWT ───────────────────────────────────────────────────
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_verified_seconds: int = 60 * 60 * 24
    access_token_expire_unverified_seconds: int = 60 * 5
    password_reset_token_expire_seconds: int = 60 * 5
    refresh_token_expire_days: int = 7

    # ── OTP / hashing ─────────────────────────────────────────
    otp_expire_minutes: int = 10
    otp_resend_cooldown_seconds: int = 60
    bcrypt_rounds: int = 10

    # ── SMTP ──────────────────────────────────────────────────
    mail_username: str
    mail_password: str
    mail_from: str
    mail_from_name: str = "Account Service"
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_suppress_send: bool = False
    mail_max_attempts: int = 3
    mail_retry_backoff_seconds: float = 2.0

    # ── App ───────────────────────────────────────────────────
    port: int = 3000
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
    )
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"
    rate_limit_enabled: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        """Split comma-separated origins into a list, stripping whitespace."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def allow_any_origin(self) -> bool:
        return self.environment.lower() in {"development", "local"}

    class Config:
        env_file = ".env"
        # Case-insensitive so JWT_SECRET and jwt_secret both work
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader — reads .env once and reuses.
    Use this everywhere instead of instantiating Settings() directly.
    """
    return Settings()


try:
    settings = get_settings()
except ValidationError as exc:
    missing = ", ".join(
        str(err["loc"][0]).upper() for err in exc.errors() if err["type"] == "missing"
    )
    logger.error(f"Missing or invalid environment variables: {missing or exc}")
    sys.exit(1)
