"""
Cloudflare Turnstile server-side verification.

Verifies the single-use token a browser obtained from the Turnstile widget.
Documentation: https://developers.cloudflare.com/turnstile/get-started/server-side-validation/
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple

import requests

from src.shared.config.settings import Settings, TURNSTILE_VERIFY_URL, DEFAULT_HTTP_TIMEOUT_SECONDS
from src.shared.forms.errors import CaptchaError, ConfigError


class TurnstileConfigError(ConfigError):
    """Raised when the Turnstile secret key is not configured."""


class TurnstileVerificationError(CaptchaError):
    """Raised when a token fails verification or the upstream call fails."""

    def __init__(self, message: str, error_codes: Optional[Iterable[str]] = None):
        codes = list(error_codes or [])
        super().__init__(
            get_turnstile_error_message(codes),
            kind=CaptchaFailureKind.from_error_codes(codes),
            error_codes=codes,
        )
        self.detail = message


class CaptchaFailureKind(str, Enum):
    MISSING = "missing"
    INVALID = "invalid"
    EXPIRED_OR_DUPLICATE = "expired_or_duplicate"
    BAD_REQUEST = "bad_request"
    INTERNAL = "internal"

    @classmethod
    def from_error_codes(cls, error_codes: Iterable[str]) -> "CaptchaFailureKind":
        codes = set(error_codes)
        if "timeout-or-duplicate" in codes:
            return cls.EXPIRED_OR_DUPLICATE
        if "invalid-input-response" in codes:
            return cls.INVALID
        if "missing-input-response" in codes or "missing-input-secret" in codes:
            return cls.MISSING
        if "bad-request" in codes:
            return cls.BAD_REQUEST
        return cls.INTERNAL


_ERROR_MESSAGES = {
    CaptchaFailureKind.EXPIRED_OR_DUPLICATE: "Verification expired. Please try again.",
    CaptchaFailureKind.INVALID: "Invalid verification. Please complete the challenge again.",
    CaptchaFailureKind.MISSING: "Verification required. Please complete the challenge.",
    CaptchaFailureKind.BAD_REQUEST: "Invalid request. Please refresh and try again.",
    CaptchaFailureKind.INTERNAL: "Verification failed. Please try again.",
}


def get_turnstile_error_message(error_codes: Iterable[str]) -> str:
    """Convert Turnstile error codes to a user-facing message."""
    return _ERROR_MESSAGES[CaptchaFailureKind.from_error_codes(error_codes)]


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one siteverify call. Produced once per token, never cached."""
    success: bool
    error_codes: List[str] = field(default_factory=list)
    challenge_ts: Optional[str] = None
    hostname: Optional[str] = None
    action: Optional[str] = None
    cdata: Optional[str] = None


class TurnstileVerifier:
    """
    Verifies Turnstile tokens against the Cloudflare siteverify endpoint.

    Usage:
        verifier = TurnstileVerifier(secret_key)
        result = verifier.verify(token, remote_ip='203.0.113.7')
    """

    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TurnstileVerifier":
        return cls(
            settings.turnstile_secret_key,
            verify_url=settings.turnstile_verify_url,
            timeout=settings.turnstile_timeout_seconds,
        )

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None,
               idempotency_key: Optional[str] = None) -> VerificationResult:
        """
        Verify a Turnstile token.

        Args:
            token: The Turnstile response token from the browser
            remote_ip: Optional visitor IP address
            idempotency_key: Optional key that lets Cloudflare dedupe a retried call

        Returns:
            VerificationResult for a token that passed

        Raises:
            TurnstileConfigError: If no secret key is configured
            TurnstileVerificationError: If the token is missing, rejected, or the call fails
        """
        if not self.secret_key:
            raise TurnstileConfigError("TURNSTILE_SECRET_KEY environment variable is not set")

        if not token:
            raise TurnstileVerificationError("Turnstile token is required", ["missing-input-response"])

        payload = {
            'secret': self.secret_key,
            'response': token,
        }
        if remote_ip:
            payload['remoteip'] = remote_ip
        if idempotency_key:
            payload['idempotency_key'] = idempotency_key

        try:
            response = self._session.post(self.verify_url, data=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logging.error("Turnstile verification timeout")
            raise TurnstileVerificationError("Turnstile verification timed out", ["internal-error"])
        except requests.exceptions.RequestException as e:
            logging.error(f"Turnstile verification network error: {e}")
            raise TurnstileVerificationError("Failed to verify Turnstile token", ["internal-error"])

        if not 200 <= response.status_code < 300:
            logging.error(f"Turnstile API returned status {response.status_code}")
            raise TurnstileVerificationError(
                f"Turnstile API returned status {response.status_code}", ["internal-error"]
            )

        try:
            body = response.json()
        except ValueError:
            logging.error("Turnstile API returned a non-JSON body")
            raise TurnstileVerificationError("Unreadable Turnstile response", ["internal-error"])

        result = VerificationResult(
            success=bool(body.get('success')),
            error_codes=list(body.get('error-codes') or []),
            challenge_ts=body.get('challenge_ts'),
            hostname=body.get('hostname'),
            action=body.get('action'),
            cdata=body.get('cdata'),
        )

        if not result.success:
            raise TurnstileVerificationError("Turnstile verification failed", result.error_codes)

        return result


def get_client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    """
    Extract the visitor IP from proxy headers.
    Checks Cloudflare, then x-real-ip, then the first x-forwarded-for entry.
    Header lookup is case-insensitive.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    cf_ip = (lowered.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        return cf_ip
    real_ip = (lowered.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return fallback


def validate_turnstile_config(settings: Settings) -> Tuple[bool, List[str]]:
    """Report whether Turnstile is configured and which variables are missing."""
    missing = [] if settings.turnstile_secret_key else ["TURNSTILE_SECRET_KEY"]
    return not missing, missing
