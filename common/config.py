"""LCA backend configuration, read once from the environment (.env)."""

import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

INSECURE_DEV_SECRET = "insecure_dev_secret_change_me"
DEFAULT_SQLITE_URL = "sqlite:///./lca.db"


def _build_database_url() -> str:
    """DATABASE_URL wins; otherwise MariaDB credentials, otherwise a local SQLite file."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_vars = {name: os.getenv(name) for name in ("DB_USER", "DB_PASS", "DB_HOST", "DB_NAME")}
    missing = [name for name, value in db_vars.items() if not value]
    if not missing:
        return (
            f"mysql+pymysql://{db_vars['DB_USER']}:{db_vars['DB_PASS']}"
            f"@{db_vars['DB_HOST']}/{db_vars['DB_NAME']}"
        )

    if len(missing) < len(db_vars):
        logger.error(f"Missing database environment variables: {', '.join(missing)}. Falling back to SQLite.")
    return DEFAULT_SQLITE_URL


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration, injected into handlers with Depends(get_settings)."""

    jwt_secret_key: str = INSECURE_DEV_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    otp_expiration_minutes: int = 10

    database_url: str = DEFAULT_SQLITE_URL

    # --- Emissions API (Climatiq) ---
    climatiq_api_key: Optional[str] = None
    climatiq_api_url: str = "https://api.climatiq.io/data/v1/estimate"
    upstream_timeout_seconds: float = 15.0

    # --- Chat completions API ---
    openai_api_key: Optional[str] = None
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-3.5-turbo"
    chat_timeout_seconds: float = 30.0

    # --- OTP mail ---
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587

    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        secret = os.getenv("JWT_SECRET_KEY")
        if not secret:
            logger.warning("JWT_SECRET_KEY is not set. Using an insecure default key for development.")
            secret = INSECURE_DEV_SECRET

        origins = tuple(
            origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
        )

        return cls(
            jwt_secret_key=secret,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
            otp_expiration_minutes=int(os.getenv("OTP_EXPIRATION_MINUTES", 10)),
            database_url=_build_database_url(),
            climatiq_api_key=os.getenv("CLIMATIQ_API_KEY") or None,
            climatiq_api_url=os.getenv("CLIMATIQ_API_URL", cls.climatiq_api_url),
            upstream_timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", 15)),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_api_url=os.getenv("OPENAI_API_URL", cls.openai_api_url),
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            chat_timeout_seconds=float(os.getenv("CHAT_TIMEOUT_SECONDS", 30)),
            email_user=os.getenv("EMAIL_USER") or None,
            email_pass=os.getenv("EMAIL_PASS") or None,
            smtp_host=os.getenv("SMTP_HOST", cls.smtp_host),
            smtp_port=int(os.getenv("SMTP_PORT", 587)),
            cors_origins=origins or ("*",),
        )


@lru_cache()
def get_settings() -> Settings:
    """FastAPI dependency: settings are built once per process."""
    return Settings.from_env()
