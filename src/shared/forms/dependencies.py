"""Dependency providers for the form routes.

The rate limiter is process-wide state (process start to process stop);
everything else is cheap and rebuilt from the environment per request.
"""

import logging
from threading import Lock
from typing import Optional

from fastapi import Depends

from src.shared.config.settings import Settings, load_settings
from src.shared.forms.pipeline import FormServices
from src.shared.invitations.workos import WorkOSInvitationSender
from src.shared.notifications.telegram import TelegramDispatcher
from src.shared.rate_limit.database import SqlRateLimitStore, create_rate_limit_engine
from src.shared.rate_limit.rate_limiter import InMemoryRateLimitStore, RateLimiter, RateLimitStore
from src.shared.turnstile.turnstile import TurnstileVerifier

_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = Lock()


def get_settings() -> Settings:
    return load_settings()


def build_rate_limit_store(settings: Settings) -> RateLimitStore:
    if settings.rate_limit_backend == "database":
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required when RATE_LIMIT_BACKEND=database")
        return SqlRateLimitStore(create_rate_limit_engine(settings.database_url))
    if settings.rate_limit_backend == "memory":
        logging.warning(
            "Rate limiting uses the in-memory store: limits apply per process only. "
            "Set RATE_LIMIT_BACKEND=database when running more than one worker."
        )
        return InMemoryRateLimitStore()
    raise RuntimeError("RATE_LIMIT_BACKEND must be 'memory' or 'database'")


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter, creating it on first use."""
    global _rate_limiter
    with _rate_limiter_lock:
        if _rate_limiter is None:
            settings = load_settings()
            _rate_limiter = RateLimiter(
                build_rate_limit_store(settings),
                window_seconds=settings.rate_limit_window_seconds,
                max_requests=settings.rate_limit_max_requests,
            )
        return _rate_limiter


def reset_rate_limiter() -> None:
    """Drop the process-wide limiter so the next request rebuilds it from settings."""
    global _rate_limiter
    with _rate_limiter_lock:
        _rate_limiter = None


def get_dispatcher(settings: Settings = Depends(get_settings)) -> Optional[TelegramDispatcher]:
    # None lets the handler report CONFIG_ERROR only once validation has passed
    if not settings.telegram_configured:
        return None
    return TelegramDispatcher.from_settings(settings)


def get_form_services(
    settings: Settings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    dispatcher: Optional[TelegramDispatcher] = Depends(get_dispatcher),
) -> FormServices:
    return FormServices(
        settings=settings,
        rate_limiter=rate_limiter,
        verifier=TurnstileVerifier.from_settings(settings),
        dispatcher=dispatcher,
        invitation_sender=WorkOSInvitationSender.from_settings(settings),
    )
