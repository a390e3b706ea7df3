from __future__ import annotations

from typing import Optional

import pytest
from fastapi.testclient import TestClient

from src.app import app
from src.shared.config.settings import load_settings
from src.shared.forms.dependencies import get_form_services
from src.shared.forms.errors import DispatchError
from src.shared.forms.pipeline import FormServices
from src.shared.invitations.workos import InvitationResult, WorkOSConfigError
from src.shared.rate_limit.rate_limiter import RateLimiter
from src.shared.turnstile.turnstile import TurnstileVerificationError, VerificationResult

ENV_VARS = [
    "TURNSTILE_SECRET_KEY",
    "TURNSTILE_ENFORCE",
    "TURNSTILE_VERIFY_URL",
    "TURNSTILE_TIMEOUT_SECONDS",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "TELEGRAM_API_BASE_URL",
    "TELEGRAM_TIMEOUT_SECONDS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_MAX_REQUESTS",
    "RATE_LIMIT_BACKEND",
    "DATABASE_URL",
    "WORKOS_API_KEY",
    "WORKOS_API_BASE_URL",
    "WORKOS_INVITE_EXPIRES_DAYS",
    "UNSUBSCRIBE_JWT_SECRET",
]


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDispatcher:
    def __init__(self) -> None:
        self.sent = []
        self.fail = False

    def dispatch(self, message) -> None:
        if self.fail:
            raise DispatchError("Telegram API error 502: Bad Gateway")
        self.sent.append(message)


class FakeVerifier:
    """Behaves like the Turnstile API: each token passes at most once."""

    def __init__(self) -> None:
        self.used: set[str] = set()
        self.rejected: set[str] = set()
        self.calls: list[tuple[str, Optional[str]]] = []

    def verify(self, token, remote_ip=None, idempotency_key=None) -> VerificationResult:
        self.calls.append((token, remote_ip))
        if not token:
            raise TurnstileVerificationError("Turnstile token is required", ["missing-input-response"])
        if token in self.rejected:
            raise TurnstileVerificationError("Turnstile verification failed", ["invalid-input-response"])
        if token in self.used:
            raise TurnstileVerificationError("Turnstile verification failed", ["timeout-or-duplicate"])
        self.used.add(token)
        return VerificationResult(success=True, hostname="raisedash.com")


class FakeInvitationSender:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.sent: list[str] = []
        self.error: Optional[Exception] = None

    def send_invitation(self, email: str, organization_id=None) -> InvitationResult:
        if not self.configured:
            raise WorkOSConfigError("WORKOS_API_KEY environment variable is not set")
        if self.error is not None:
            raise self.error
        self.sent.append(email)
        return InvitationResult(id="inv_1", email=email, state="pending", expires_at=None, created_at=None)


class Harness:
    def __init__(self) -> None:
        self.clock = FakeClock()
        self.limiter = RateLimiter(window_seconds=60, max_requests=3, clock=self.clock)
        self.dispatcher = FakeDispatcher()
        self.verifier = FakeVerifier()
        self.invitations = FakeInvitationSender()
        self.telegram_enabled = True

    def services(self) -> FormServices:
        return FormServices(
            settings=load_settings(),
            rate_limiter=self.limiter,
            verifier=self.verifier,
            dispatcher=self.dispatcher if self.telegram_enabled else None,
            invitation_sender=self.invitations,
        )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def harness():
    h = Harness()
    app.dependency_overrides[get_form_services] = h.services
    yield h
    app.dependency_overrides.clear()


@pytest.fixture
def client(harness):
    # Not used as a context manager: startup (and the sweeper thread) stays off
    return TestClient(app)


@pytest.fixture
def turnstile_enabled(monkeypatch):
    monkeypatch.setenv("TURNSTILE_SECRET_KEY", "test-secret")
