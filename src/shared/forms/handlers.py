"""Per-form orchestrators built on SubmissionHandler."""

import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks

from src.shared.forms.errors import ConfigError, DispatchError, SubmissionError, SubmissionValidationError
from src.shared.forms.pipeline import FormServices, SubmissionHandler
from src.shared.forms.schemas import (
    AccountDeletionRequest,
    ContactForm,
    DemoRequest,
    EmailCaptureRequest,
    InviteRequest,
    JobApplication,
    SubmissionKind,
    SubmissionResponse,
    UnsubscribeNotice,
    UnsubscribeRequest,
)
from src.shared.forms.unsubscribe import UNSUBSCRIBE_SUBJECT, verify_unsubscribe_token
from src.shared.invitations.workos import WorkOSAPIError, WorkOSConfigError
from src.shared.notifications.formatting import format_notification
from src.shared.notifications.telegram import NotificationMessage, TelegramConfigError
from src.shared.validation.input_validation import (
    FieldRules,
    mask_email,
    normalize_email,
    normalize_phone,
)

# Must match the fleet size options offered by both demo forms
ALLOWED_COMPANY_SIZES = [
    # Enterprise demo form
    "1-25",
    "26-100",
    "101-500",
    "501-1000",
    "1000+",
    # Get-started qualification page
    "1-10",
    "11-50",
    "51-100",
    "101-250",
    "251+",
]

ACCOUNT_DELETION_PRODUCTS = ["raisedash", "raisedash_vertex"]

CONTACT_MESSAGE_MIN_LENGTH = 10
COVER_LETTER_MIN_LENGTH = 50


class ContactHandler(SubmissionHandler):
    kind = SubmissionKind.CONTACT
    log_prefix = "contact"
    required_fields = ("name", "email", "subject", "message")
    field_rules = FieldRules(
        email_fields=("email",),
        min_lengths={"message": CONTACT_MESSAGE_MIN_LENGTH},
    )
    field_messages = {"message": f"Message must be at least {CONTACT_MESSAGE_MIN_LENGTH} characters"}
    success_message = "Contact form submitted successfully"

    def identity_key(self, submission: ContactForm) -> Optional[str]:
        return normalize_email(submission.email)

    def format_message(self, submission: ContactForm) -> str:
        return format_notification(SubmissionKind.CONTACT, submission)


class DemoRequestHandler(SubmissionHandler):
    kind = SubmissionKind.DEMO
    log_prefix = "request-demo"
    required_fields = ("email", "companyName", "companySize", "fullName", "role")
    field_rules = FieldRules(email_fields=("email",), phone_fields=("phone",))
    field_messages = {"phone": "Phone number must have at least 10 digits"}
    success_message = "Demo request submitted successfully"

    def validate_extra(self, submission: DemoRequest) -> None:
        if submission.company_size not in ALLOWED_COMPANY_SIZES:
            raise SubmissionValidationError(
                "Invalid company size selection",
                extra={"allowedValues": ALLOWED_COMPANY_SIZES},
            )

    def identity_key(self, submission: DemoRequest) -> Optional[str]:
        return normalize_email(submission.email)

    def format_message(self, submission: DemoRequest) -> str:
        return format_notification(SubmissionKind.DEMO, submission)

    def deliver(self, submission: DemoRequest,
                background_tasks: Optional[BackgroundTasks]) -> Dict[str, Any]:
        self.notify(self.format_message(submission), background_tasks)

        # The Telegram notification is primary; the invitation is best effort
        sender = self.services.invitation_sender
        if sender is None or not sender.configured:
            logging.info(f"[{self.log_prefix}] WorkOS not configured, skipping invitation")
            return {"invite_sent": False}
        email = normalize_email(submission.email)
        try:
            sender.send_invitation(email)
        except SubmissionError as e:
            logging.error(f"[{self.log_prefix}] Failed to send WorkOS invitation: {e}")
            return {"invite_sent": False}
        logging.info(f"[{self.log_prefix}] WorkOS invitation sent: email={mask_email(email)}")
        return {"invite_sent": True}


class JobApplicationHandler(SubmissionHandler):
    kind = SubmissionKind.JOB_APPLICATION
    log_prefix = "job-application"
    required_fields = ("jobTitle", "firstName", "lastName", "email", "phone", "experience", "coverLetter")
    field_rules = FieldRules(
        email_fields=("email",),
        phone_fields=("phone",),
        url_fields=("linkedinUrl",),
        min_lengths={"coverLetter": COVER_LETTER_MIN_LENGTH},
    )
    field_messages = {
        "coverLetter": f"Cover letter must be at least {COVER_LETTER_MIN_LENGTH} characters",
        "phone": "Phone number must have at least 10 digits",
        "linkedinUrl": "LinkedIn URL must be a valid URL",
    }
    success_message = "Job application submitted successfully"

    def identity_key(self, submission: JobApplication) -> Optional[str]:
        return normalize_email(submission.email)

    def format_message(self, submission: JobApplication) -> str:
        return format_notification(SubmissionKind.JOB_APPLICATION, submission)


class InviteHandler(SubmissionHandler):
    kind = SubmissionKind.INVITE
    log_prefix = "invite"
    required_fields = ("email",)
    field_rules = FieldRules(email_fields=("email",))
    success_message = "Invitation sent successfully. Please check your email."

    def missing_fields_error(self, missing) -> SubmissionValidationError:
        return SubmissionValidationError("Email is required", code="MISSING_EMAIL")

    def identity_key(self, submission: InviteRequest) -> Optional[str]:
        return normalize_email(submission.email)

    def ensure_configured(self) -> None:
        sender = self.services.invitation_sender
        if sender is None or not sender.configured:
            raise WorkOSConfigError("WORKOS_API_KEY environment variable is not set")

    def deliver(self, submission: InviteRequest,
                background_tasks: Optional[BackgroundTasks]) -> Dict[str, Any]:
        try:
            self.services.invitation_sender.send_invitation(normalize_email(submission.email))
        except WorkOSAPIError as e:
            if e.status_code_upstream == 422:
                raise SubmissionValidationError("Invalid email address") from e
            raise
        return {}


class AccountDeletionHandler(SubmissionHandler):
    kind = SubmissionKind.ACCOUNT_DELETION
    log_prefix = "request-account-deletion"
    required_fields = ("product", "fullName")
    field_rules = FieldRules(email_fields=("email",), phone_fields=("phone",))
    field_messages = {"phone": "Phone number must have at least 10 digits"}
    success_message = "Account deletion request submitted successfully"

    def required_fields_for(self, submission: AccountDeletionRequest):
        if submission.product == "raisedash":
            return self.required_fields + ("email",)
        if submission.product == "raisedash_vertex":
            return self.required_fields + ("phone",)
        return self.required_fields

    def validate_extra(self, submission: AccountDeletionRequest) -> None:
        if submission.product not in ACCOUNT_DELETION_PRODUCTS:
            raise SubmissionValidationError(
                "Invalid product selection",
                extra={"allowedValues": ACCOUNT_DELETION_PRODUCTS},
            )

    def identity_key(self, submission: AccountDeletionRequest) -> Optional[str]:
        if submission.email:
            return normalize_email(submission.email)
        if submission.phone:
            return f"phone:{normalize_phone(submission.phone)}"
        return None

    def format_message(self, submission: AccountDeletionRequest) -> str:
        return format_notification(SubmissionKind.ACCOUNT_DELETION, submission)


class EmailCaptureHandler(SubmissionHandler):
    kind = SubmissionKind.EMAIL_CAPTURE
    log_prefix = "email-capture"
    required_fields = ("email",)
    field_rules = FieldRules(email_fields=("email",))
    success_message = "Email captured"
    fire_and_forget = True
    # The footer capture widget posts only {email, source}
    requires_captcha = False

    def missing_fields_error(self, missing) -> SubmissionValidationError:
        return SubmissionValidationError("Email is required", code="MISSING_EMAIL")

    def identity_key(self, submission: EmailCaptureRequest) -> Optional[str]:
        return normalize_email(submission.email)

    def format_message(self, submission: EmailCaptureRequest) -> str:
        normalized = submission.model_copy(update={
            "email": normalize_email(submission.email),
            "source": submission.source or "Homepage",
        })
        return format_notification(SubmissionKind.EMAIL_CAPTURE, normalized)


class UnsubscribeHandler:
    """
    Records an unsubscribe request from a signed email link.
    The signed token replaces the CAPTCHA and rate limit; dispatch is blocking.
    """
    log_prefix = "unsubscribe"

    def __init__(self, services: FormServices):
        self.services = services

    def handle(self, submission: UnsubscribeRequest, client_ip: Optional[str] = None,
               user_agent: Optional[str] = None) -> SubmissionResponse:
        if not submission.token:
            raise SubmissionValidationError("Missing token")

        secret = self.services.settings.unsubscribe_jwt_secret
        if not secret:
            raise ConfigError("UNSUBSCRIBE_JWT_SECRET is not set")

        verification = verify_unsubscribe_token(submission.token, secret)
        if not verification.valid:
            raise SubmissionValidationError(
                "Invalid token",
                status_code=401,
                extra={"reason": verification.reason},
            )

        claims = verification.claims or {}
        email = claims.get("email")
        if claims.get("sub") != UNSUBSCRIBE_SUBJECT or not isinstance(email, str) or not email:
            raise SubmissionValidationError("Invalid claims")

        dispatcher = self.services.dispatcher
        if dispatcher is None:
            raise TelegramConfigError(
                "Telegram configuration missing. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
            )
        notice = UnsubscribeNotice(email=email, ip=client_ip, user_agent=user_agent)
        try:
            dispatcher.dispatch(NotificationMessage(text=format_notification(SubmissionKind.UNSUBSCRIBE, notice)))
        except DispatchError as e:
            raise DispatchError(str(e), status_code=502) from e

        logging.info(f"[{self.log_prefix}] Unsubscribe recorded: email={mask_email(email)}")
        return SubmissionResponse(success=True, message="You have been unsubscribed")
