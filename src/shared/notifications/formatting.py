"""Notification templates for the operator Telegram chat.

One template per submission kind. Output uses Telegram's legacy Markdown
(`*bold*`, `_italic_`); every value typed by a submitter is escaped so it
cannot open or close markup. A message never exceeds Telegram's
sendMessage limit: short fields are capped and the one free-text block of
a template gets whatever room is left, with a visible marker when cut.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from src.shared.forms.schemas import (
    AccountDeletionRequest,
    ContactForm,
    DemoRequest,
    EmailCaptureRequest,
    JobApplication,
    SubmissionKind,
    UnsubscribeNotice,
)
from src.shared.validation.input_validation import sanitize_text

NOT_PROVIDED = "Not provided"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

# Telegram rejects longer sendMessage texts with 400
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
MAX_FIELD_CHARS = 300
TRUNCATED_MARKER = " (truncated)"

PRODUCT_LABELS = {
    "raisedash": "Raisedash",
    "raisedash_vertex": "Raisedash Vertex",
}


def escape_markdown(value: str) -> str:
    """Escape the characters Telegram legacy Markdown treats as entity delimiters."""
    for ch in "_*`[":
        value = value.replace(ch, f"\\{ch}")
    return value


def clip_escaped(text: str, limit: int) -> str:
    """Escape text and cut it so the result, marker included, fits in limit characters."""
    escaped = escape_markdown(text)
    if len(escaped) <= limit:
        return escaped
    room = max(limit - len(TRUNCATED_MARKER), 0)
    cut = text[:room]
    # Cut the raw text, never the escaped one, so no escape pair is split
    while len(escape_markdown(cut)) > room:
        cut = cut[:room - (len(escape_markdown(cut)) - len(cut))]
    return escape_markdown(cut) + TRUNCATED_MARKER


def _value(value: Optional[str], limit: int = MAX_FIELD_CHARS) -> str:
    """Clean and escape a user-supplied value, or return the placeholder."""
    cleaned = sanitize_text(value) if value is not None else None
    if not cleaned:
        return NOT_PROVIDED
    return clip_escaped(cleaned, limit)


def _fit(render: Callable[[str], str], long_text: Optional[str]) -> str:
    """Render a template, giving its free-text block the room left under the message limit."""
    room = TELEGRAM_MAX_MESSAGE_LENGTH - len(render(""))
    return render(_value(long_text, limit=room))


def _timestamp(now: Optional[datetime]) -> str:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _footer(form_type: str) -> str:
    return f"---\n_Form Type:_ {form_type}"


def format_contact_message(data: ContactForm, now: Optional[datetime] = None) -> str:
    def render(message: str) -> str:
        return f"""🔔 *New Contact Form Submission*

📅 *Date:* {_timestamp(now)}
👤 *Name:* {_value(data.name)}
📧 *Email:* {_value(data.email)}
🏢 *Company:* {_value(data.company)}
📋 *Inquiry Type:* {_value(data.inquiry_type)}
📝 *Subject:* {_value(data.subject)}

💬 *Message:*
{message}

{_footer("Contact Form")}"""

    return _fit(render, data.message)


def format_demo_message(data: DemoRequest, now: Optional[datetime] = None) -> str:
    return f"""🔔 *New Demo Request*

📅 *Date:* {_timestamp(now)}
👤 *Name:* {_value(data.full_name)}
💼 *Role:* {_value(data.role)}
📧 *Email:* {_value(data.email)}
📞 *Phone:* {_value(data.phone)}
🏢 *Company:* {_value(data.company_name)}
🚚 *Fleet Size:* {_value(data.company_size)}

{_footer("Demo Request")}"""


def format_job_application_message(data: JobApplication, now: Optional[datetime] = None) -> str:
    first = sanitize_text(data.first_name) or ""
    last = sanitize_text(data.last_name) or ""

    def render(cover_letter: str) -> str:
        return f"""🔔 *New Job Application*

📅 *Date:* {_timestamp(now)}
💼 *Position:* {_value(data.job_title)}
👤 *Name:* {_value(f"{first} {last}")}
📧 *Email:* {_value(data.email)}
📞 *Phone:* {_value(data.phone)}
🔗 *LinkedIn:* {_value(data.linkedin_url)}
💼 *Experience:* {_value(data.experience)}

📝 *Cover Letter:*
{cover_letter}

{_footer("Job Application")}"""

    return _fit(render, data.cover_letter)


def format_account_deletion_message(data: AccountDeletionRequest, now: Optional[datetime] = None) -> str:
    product = PRODUCT_LABELS.get(data.product or "", data.product)

    def render(reason: str) -> str:
        return f"""🗑 *Account Deletion Request*

📅 *Date:* {_timestamp(now)}
📦 *Product:* {_value(product)}
👤 *Name:* {_value(data.full_name)}
📧 *Email:* {_value(data.email)}
📞 *Phone:* {_value(data.phone)}

📝 *Reason:*
{reason}

{_footer("Account Deletion")}"""

    return _fit(render, data.reason)


def format_unsubscribe_message(data: UnsubscribeNotice, now: Optional[datetime] = None) -> str:
    return f"""🔕 *Unsubscribe Request*

📅 *Date:* {_timestamp(now)}
📧 *Email:* {_value(data.email)}
🌐 *IP:* {_value(data.ip)}
🖥 *User Agent:* {_value(data.user_agent)}

{_footer("Unsubscribe")}"""


def format_email_capture_message(data: EmailCaptureRequest, now: Optional[datetime] = None) -> str:
    return f"""📬 *New Email Capture*

📅 *Date:* {_timestamp(now)}
📧 *Email:* {_value(data.email)}
📍 *Source:* {_value(data.source)}

{_footer("Email Capture")}"""


_FORMATTERS: Dict[SubmissionKind, Callable] = {
    SubmissionKind.CONTACT: format_contact_message,
    SubmissionKind.DEMO: format_demo_message,
    SubmissionKind.JOB_APPLICATION: format_job_application_message,
    SubmissionKind.ACCOUNT_DELETION: format_account_deletion_message,
    SubmissionKind.UNSUBSCRIBE: format_unsubscribe_message,
    SubmissionKind.EMAIL_CAPTURE: format_email_capture_message,
}


def format_notification(kind: SubmissionKind, data, now: Optional[datetime] = None) -> str:
    """Return the notification text for a submission kind."""
    formatter = _FORMATTERS.get(kind)
    if formatter is None:
        raise ValueError(f"Unsupported notification kind: {kind}")
    return formatter(data, now)
