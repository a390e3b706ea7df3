"""Environment-driven configuration for the submission service."""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
TELEGRAM_API_BASE_URL = "https://api.telegram.org"
WORKOS_API_BASE_URL = "https://api.workos.com"

DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 3
DEFAULT_HTTP_TIMEOUT_SECONDS = 5


@dataclass(frozen=True)
class Settings:
    """Snapshot of the environment taken when the settings are loaded."""
    turnstile_secret_key: Optional[str]
    turnstile_enforce: bool
    turnstile_verify_url: str
    turnstile_timeout_seconds: float
    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]
    telegram_api_base_url: str
    telegram_timeout_seconds: float
    rate_limit_window_seconds: int
    rate_limit_max_requests: int
    rate_limit_backend: str
    database_url: Optional[str]
    workos_api_key: Optional[str]
    workos_api_base_url: str
    workos_invite_expires_days: int
    unsubscribe_jwt_secret: Optional[str]
    cors_allowed_origins: Tuple[str, ...]
    log_level: str

    @property
    def turnstile_configured(self) -> bool:
        return bool(self.turnstile_secret_key)

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def workos_configured(self) -> bool:
        return bool(self.workos_api_key)


def _get_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logging.warning(f"{name}={raw!r} is not an integer, using default {default}")
        return default
    if value <= 0:
        logging.warning(f"{name} must be positive, using default {default}")
        return default
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logging.warning(f"{name}={raw!r} is not a number, using default {default}")
        return default
    return value if value > 0 else default


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Read the current environment into a Settings instance."""
    # Heroku uses postgres:// but SQLAlchemy 2.0+ requires postgresql://
    database_url = _get_str("DATABASE_URL")
    if database_url and database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    origins = os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:3000")

    return Settings(
        turnstile_secret_key=_get_str("TURNSTILE_SECRET_KEY"),
        turnstile_enforce=_get_bool("TURNSTILE_ENFORCE"),
        turnstile_verify_url=_get_str("TURNSTILE_VERIFY_URL") or TURNSTILE_VERIFY_URL,
        turnstile_timeout_seconds=_get_float("TURNSTILE_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        telegram_bot_token=_get_str("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=_get_str("TELEGRAM_CHAT_ID"),
        telegram_api_base_url=(_get_str("TELEGRAM_API_BASE_URL") or TELEGRAM_API_BASE_URL).rstrip("/"),
        telegram_timeout_seconds=_get_float("TELEGRAM_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        rate_limit_window_seconds=_get_int("RATE_LIMIT_WINDOW_SECONDS", DEFAULT_RATE_LIMIT_WINDOW_SECONDS),
        rate_limit_max_requests=_get_int("RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS),
        rate_limit_backend=(_get_str("RATE_LIMIT_BACKEND") or "memory").lower(),
        database_url=database_url,
        workos_api_key=_get_str("WORKOS_API_KEY"),
        workos_api_base_url=(_get_str("WORKOS_API_BASE_URL") or WORKOS_API_BASE_URL).rstrip("/"),
        workos_invite_expires_days=_get_int("WORKOS_INVITE_EXPIRES_DAYS", 7),
        unsubscribe_jwt_secret=_get_str("UNSUBSCRIBE_JWT_SECRET"),
        cors_allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        log_level=(_get_str("LOG_LEVEL") or "INFO").upper(),
    )
