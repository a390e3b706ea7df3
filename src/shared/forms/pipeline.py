"""Submission pipeline shared by every form endpoint.

Received -> Validated -> (CaptchaVerified) -> RateLimitChecked -> Dispatched -> Completed.
Any step may reject the submission by raising a SubmissionError, which
app.py turns into the JSON error contract.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import BackgroundTasks

from src.shared.config.settings import Settings
from src.shared.forms.errors import (
    CaptchaError,
    ConfigError,
    DispatchError,
    RateLimitError,
    SubmissionValidationError,
)
from src.shared.forms.schemas import SubmissionBase, SubmissionKind, SubmissionResponse
from src.shared.invitations.workos import WorkOSInvitationSender
from src.shared.notifications.telegram import NotificationMessage, TelegramConfigError, TelegramDispatcher
from src.shared.rate_limit.rate_limiter import RateLimiter
from src.shared.turnstile.turnstile import (
    CaptchaFailureKind,
    TurnstileVerificationError,
    TurnstileVerifier,
    VerificationResult,
)
from src.shared.validation.input_validation import (
    FieldRules,
    mask_email,
    validate,
    validate_required_fields,
)


class CaptchaPolicy(str, Enum):
    ENABLED = "enabled"
    # No secret configured: local development, challenge skipped
    DISABLED = "disabled"
    # TURNSTILE_ENFORCE set without a secret: refuse submissions
    MISCONFIGURED = "misconfigured"


def captcha_policy(settings: Settings) -> CaptchaPolicy:
    if settings.turnstile_configured:
        return CaptchaPolicy.ENABLED
    if settings.turnstile_enforce:
        return CaptchaPolicy.MISCONFIGURED
    return CaptchaPolicy.DISABLED


@dataclass
class FormServices:
    """Collaborators a handler needs; built per request by dependencies.py."""
    settings: Settings
    rate_limiter: RateLimiter
    verifier: TurnstileVerifier
    dispatcher: Optional[TelegramDispatcher] = None
    invitation_sender: Optional[WorkOSInvitationSender] = None


class SubmissionHandler:
    """
    Orchestrates one form type. Subclasses declare their fields and override
    the hooks (validate_extra, identity_key, format_message, deliver).
    """
    kind: SubmissionKind
    log_prefix: str = "form"
    required_fields: Tuple[str, ...] = ()
    field_rules: FieldRules = FieldRules()
    # Messages for invalid fields; the first matching one becomes the error text
    field_messages: Mapping[str, str] = {}
    email_field: Optional[str] = "email"
    success_message: str = "Submission received successfully"
    # Low-priority kinds dispatch after the response and only log failures
    fire_and_forget: bool = False
    # Forms posted by widgets that never render a Turnstile challenge opt out
    requires_captcha: bool = True

    def __init__(self, services: FormServices):
        self.services = services

    # Validation

    def required_fields_for(self, submission: SubmissionBase) -> Tuple[str, ...]:
        return self.required_fields

    def validate_submission(self, submission: SubmissionBase) -> None:
        """Raise SubmissionValidationError describing every bad field."""
        payload = submission.as_payload()
        required = self.required_fields_for(submission)
        problems = validate(payload, required, self.field_rules)
        if problems:
            missing = validate_required_fields(payload, required)
            if missing:
                raise self.missing_fields_error(missing)
            if self.email_field and self.email_field in problems:
                raise SubmissionValidationError("Invalid email format", code="INVALID_EMAIL")
            message = next(
                (self.field_messages[name] for name in problems if name in self.field_messages),
                "Invalid field values",
            )
            raise SubmissionValidationError(message, extra={"invalidFields": problems})
        self.validate_extra(submission)

    def missing_fields_error(self, missing) -> SubmissionValidationError:
        return SubmissionValidationError("Missing required fields", extra={"missingFields": list(missing)})

    def validate_extra(self, submission: SubmissionBase) -> None:
        """Form-specific checks beyond required fields and formats."""

    def is_spam(self, submission: SubmissionBase) -> bool:
        """True when a honeypot field was filled in."""
        return bool(getattr(submission, "website", None))

    # CAPTCHA

    def verify_challenge(self, token: Optional[str], client_ip: Optional[str]) -> Optional[VerificationResult]:
        policy = captcha_policy(self.services.settings)
        if policy is CaptchaPolicy.DISABLED:
            logging.debug(f"[{self.log_prefix}] Turnstile disabled (no secret configured), skipping challenge")
            return None
        if policy is CaptchaPolicy.MISCONFIGURED:
            raise ConfigError("TURNSTILE_ENFORCE is set but TURNSTILE_SECRET_KEY is missing")
        if not token:
            raise CaptchaError(
                "Please complete the verification challenge",
                code="TURNSTILE_REQUIRED",
                kind=CaptchaFailureKind.MISSING,
                error_codes=["missing-input-response"],
            )
        try:
            return self.services.verifier.verify(token, remote_ip=client_ip)
        except TurnstileVerificationError as e:
            # The client must fetch a new token; this one is spent
            logging.warning(f"[{self.log_prefix}] Turnstile verification failed: {e.error_codes}")
            raise

    # Rate limiting

    def identity_key(self, submission: SubmissionBase) -> Optional[str]:
        return None

    def check_rate_limit(self, submission: SubmissionBase) -> None:
        identity = self.identity_key(submission)
        if identity is None:
            return
        # Keys are namespaced per form so one identity's forms do not share a counter
        if not self.services.rate_limiter.check_and_increment(f"{self.kind.value}:{identity}"):
            raise RateLimitError("Too many requests. Please try again later.")

    # Delivery

    def ensure_configured(self) -> None:
        """Raise ConfigError before any budget is spent if delivery cannot happen."""
        if not self.fire_and_forget and self.services.dispatcher is None:
            raise TelegramConfigError(
                "Telegram configuration missing. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
            )

    def format_message(self, submission: SubmissionBase) -> str:
        raise NotImplementedError

    def notify(self, text: str, background_tasks: Optional[BackgroundTasks] = None) -> None:
        message = NotificationMessage(text=text)
        dispatcher = self.services.dispatcher

        if self.fire_and_forget:
            if dispatcher is None:
                logging.error(f"[{self.log_prefix}] Telegram not configured, notification dropped")
                return
            if background_tasks is not None:
                background_tasks.add_task(self._dispatch_logged, dispatcher, message)
            else:
                threading.Thread(target=self._dispatch_logged, args=(dispatcher, message), daemon=True).start()
            return

        if dispatcher is None:
            raise TelegramConfigError(
                "Telegram configuration missing. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
            )
        dispatcher.dispatch(message)

    def _dispatch_logged(self, dispatcher: TelegramDispatcher, message: NotificationMessage) -> None:
        try:
            dispatcher.dispatch(message)
        except DispatchError as e:
            logging.error(f"[{self.log_prefix}] Notification failed (not surfaced to caller): {e}")

    def deliver(self, submission: SubmissionBase,
                background_tasks: Optional[BackgroundTasks]) -> Dict[str, Any]:
        """Send the submission onward; returns extra response fields."""
        self.notify(self.format_message(submission), background_tasks)
        return {}

    # Response

    def echo_email(self, submission: SubmissionBase) -> Optional[str]:
        email = getattr(submission, "email", None)
        return email.strip().lower() if email else None

    def success_response(self, submission: SubmissionBase, **extra) -> SubmissionResponse:
        return SubmissionResponse(
            success=True,
            message=self.success_message,
            email=self.echo_email(submission),
            **extra,
        )

    def handle(self, submission: SubmissionBase, client_ip: Optional[str] = None,
               background_tasks: Optional[BackgroundTasks] = None) -> SubmissionResponse:
        """Run the submission through every stage and return the success response."""
        self.validate_submission(submission)

        if self.is_spam(submission):
            # Bots get the normal success body and spend neither a challenge nor a counter
            logging.info(f"[{self.log_prefix}] Honeypot filled, dropping submission")
            return self.success_response(submission)

        if self.requires_captcha:
            self.verify_challenge(submission.turnstile_token, client_ip)
        self.ensure_configured()
        self.check_rate_limit(submission)
        extra = self.deliver(submission, background_tasks)

        logging.info(
            f"[{self.log_prefix}] Submission received: email={mask_email(self.echo_email(submission))}"
        )
        return self.success_response(submission, **extra)
