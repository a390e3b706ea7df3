"""Pydantic schemas for form submissions and the shared response contract.

Every payload field is optional at parse time: the Validator, not the JSON
parser, decides what is missing so all violations come back in one response.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from src.shared.validation.input_validation import sanitize_text, MAX_LONG_TEXT_LENGTH


class SubmissionKind(str, Enum):
    CONTACT = "contact"
    DEMO = "demo"
    JOB_APPLICATION = "job_application"
    INVITE = "invite"
    ACCOUNT_DELETION = "account_deletion"
    EMAIL_CAPTURE = "email_capture"
    UNSUBSCRIBE = "unsubscribe"


class SubmissionBase(BaseModel):
    """Common configuration: camelCase JSON, unknown keys ignored, text sanitized."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    kind: ClassVar[SubmissionKind]

    turnstile_token: Optional[str] = None

    @field_validator("*")
    @classmethod
    def sanitize_strings(cls, v):
        """Strip whitespace and control characters from every text field."""
        if isinstance(v, str):
            return sanitize_text(v, max_length=MAX_LONG_TEXT_LENGTH)
        return v

    def as_payload(self) -> dict:
        """Payload as the client named it, for validation and error reporting."""
        return self.model_dump(by_alias=True, exclude={"turnstile_token"})


class ContactForm(SubmissionBase):
    """Schema for contact form submission."""
    kind: ClassVar[SubmissionKind] = SubmissionKind.CONTACT

    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    inquiry_type: Optional[str] = None
    # Honeypot: hidden in the form, real users leave it empty
    website: Optional[str] = None


class DemoRequest(SubmissionBase):
    """Schema for demo request submission."""
    kind: ClassVar[SubmissionKind] = SubmissionKind.DEMO

    email: Optional[str] = None
    company_name: Optional[str] = None
    company_size: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None


class JobApplication(SubmissionBase):
    """Schema for job application submission."""
    kind: ClassVar[SubmissionKind] = SubmissionKind.JOB_APPLICATION

    job_title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    experience: Optional[str] = None
    cover_letter: Optional[str] = None


class InviteRequest(SubmissionBase):
    kind: ClassVar[SubmissionKind] = SubmissionKind.INVITE

    email: Optional[str] = None


class AccountDeletionRequest(SubmissionBase):
    """Schema for account deletion requests; email or phone depending on product."""
    kind: ClassVar[SubmissionKind] = SubmissionKind.ACCOUNT_DELETION

    product: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    reason: Optional[str] = None


class EmailCaptureRequest(SubmissionBase):
    kind: ClassVar[SubmissionKind] = SubmissionKind.EMAIL_CAPTURE

    email: Optional[str] = None
    source: Optional[str] = None


class UnsubscribeRequest(SubmissionBase):
    kind: ClassVar[SubmissionKind] = SubmissionKind.UNSUBSCRIBE

    token: Optional[str] = None


@dataclass(frozen=True)
class UnsubscribeNotice:
    """Verified unsubscribe event handed to the formatter."""
    email: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None


SubmissionRequest = Union[
    ContactForm,
    DemoRequest,
    JobApplication,
    InviteRequest,
    AccountDeletionRequest,
    EmailCaptureRequest,
]


class SubmissionResponse(BaseModel):
    """Schema for every form endpoint response. Unset keys are left out of the JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    email: Optional[str] = None
    invite_sent: Optional[bool] = None
    missing_fields: Optional[List[str]] = None
    invalid_fields: Optional[List[str]] = None
    allowed_values: Optional[List[str]] = None
