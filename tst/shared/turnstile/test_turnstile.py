from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.shared.forms.errors import ConfigError
from src.shared.turnstile.turnstile import (
    CaptchaFailureKind,
    TurnstileVerificationError,
    TurnstileVerifier,
    get_client_ip,
    get_turnstile_error_message,
)


def make_verifier(status_code: int = 200, body=None, exc: Exception = None):
    session = MagicMock()
    if exc is not None:
        session.post.side_effect = exc
    else:
        response = MagicMock()
        response.status_code = status_code
        if isinstance(body, Exception):
            response.json.side_effect = body
        else:
            response.json.return_value = body if body is not None else {}
        session.post.return_value = response
    return TurnstileVerifier("secret", verify_url="https://verify.test", timeout=2, session=session), session


def test_verify_success_posts_form_data() -> None:
    verifier, session = make_verifier(body={"success": True, "hostname": "raisedash.com"})

    result = verifier.verify("token-1", remote_ip="203.0.113.7")

    assert result.success
    assert result.hostname == "raisedash.com"
    session.post.assert_called_once_with(
        "https://verify.test",
        data={"secret": "secret", "response": "token-1", "remoteip": "203.0.113.7"},
        timeout=2,
    )


def test_verify_rejected_token_carries_error_codes() -> None:
    verifier, _ = make_verifier(body={"success": False, "error-codes": ["timeout-or-duplicate"]})

    with pytest.raises(TurnstileVerificationError) as excinfo:
        verifier.verify("token-1")

    err = excinfo.value
    assert err.error_codes == ["timeout-or-duplicate"]
    assert err.kind is CaptchaFailureKind.EXPIRED_OR_DUPLICATE
    assert err.code == "TURNSTILE_FAILED"
    assert err.status_code == 400


def test_verify_missing_token_makes_no_call() -> None:
    verifier, session = make_verifier()

    with pytest.raises(TurnstileVerificationError) as excinfo:
        verifier.verify("")

    assert excinfo.value.kind is CaptchaFailureKind.MISSING
    session.post.assert_not_called()


def test_verify_without_secret_is_config_error() -> None:
    verifier = TurnstileVerifier(None, session=MagicMock())

    with pytest.raises(ConfigError):
        verifier.verify("token")


@pytest.mark.parametrize("kwargs", [
    {"exc": requests.exceptions.Timeout()},
    {"exc": requests.exceptions.ConnectionError()},
    {"status_code": 503},
    {"body": ValueError("not json")},
])
def test_upstream_failures_are_internal_errors(kwargs) -> None:
    verifier, _ = make_verifier(**kwargs)

    with pytest.raises(TurnstileVerificationError) as excinfo:
        verifier.verify("token")

    assert excinfo.value.error_codes == ["internal-error"]
    assert excinfo.value.kind is CaptchaFailureKind.INTERNAL


def test_error_messages_per_kind() -> None:
    assert get_turnstile_error_message(["invalid-input-response"]) == (
        "Invalid verification. Please complete the challenge again."
    )
    assert get_turnstile_error_message(["bad-request"]) == "Invalid request. Please refresh and try again."
    assert get_turnstile_error_message([]) == "Verification failed. Please try again."


def test_client_ip_prefers_cloudflare_header() -> None:
    headers = {"CF-Connecting-IP": "1.1.1.1", "X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3"}

    assert get_client_ip(headers) == "1.1.1.1"


def test_client_ip_uses_first_forwarded_entry() -> None:
    assert get_client_ip({"x-forwarded-for": "1.2.3.4, 5.6.7.8"}) == "1.2.3.4"


def test_client_ip_falls_back() -> None:
    assert get_client_ip({}, fallback="127.0.0.1") == "127.0.0.1"
    assert get_client_ip({"X-Real-IP": "  "}) is None
