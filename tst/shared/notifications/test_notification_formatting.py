from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.shared.forms.schemas import (
    AccountDeletionRequest,
    ContactForm,
    DemoRequest,
    EmailCaptureRequest,
    JobApplication,
    SubmissionKind,
    UnsubscribeNotice,
)
from src.shared.notifications.formatting import clip_escaped, escape_markdown, format_notification

NOW = datetime(2025, 3, 1, 14, 5, 9, tzinfo=timezone.utc)


def test_escape_markdown() -> None:
    assert escape_markdown("a_b*c`d[e]") == "a\\_b\\*c\\`d\\[e]"
    assert escape_markdown("plain text") == "plain text"


def test_contact_message_layout() -> None:
    form = ContactForm(
        name="Jane Carrier",
        email="jane@example.com",
        subject="Pricing",
        message="Line one\nLine two",
    )

    text = format_notification(SubmissionKind.CONTACT, form, NOW)

    assert text.startswith("🔔 *New Contact Form Submission*")
    assert "📅 *Date:* 2025-03-01 14:05:09 UTC" in text
    assert "👤 *Name:* Jane Carrier" in text
    assert "🏢 *Company:* Not provided" in text
    assert "Line one\nLine two" in text
    assert text.endswith("_Form Type:_ Contact Form")


def test_user_text_cannot_break_markup() -> None:
    form = ContactForm(name="*evil_", email="x@example.com", subject="[link](http://x)", message="`code`")

    text = format_notification(SubmissionKind.CONTACT, form, NOW)

    assert "\\*evil\\_" in text
    assert "\\[link](http://x)" in text
    assert "\\`code\\`" in text


def test_demo_message_includes_fleet_size() -> None:
    demo = DemoRequest(
        email="ops@acme.com",
        company_name="Acme",
        company_size="1000+",
        full_name="Sam",
        role="COO",
    )

    text = format_notification(SubmissionKind.DEMO, demo, NOW)

    assert "🚚 *Fleet Size:* 1000+" in text
    assert "📞 *Phone:* Not provided" in text


def test_job_application_joins_names() -> None:
    application = JobApplication(
        job_title="Engineer",
        first_name="Alex",
        last_name="Driver",
        email="alex@example.com",
        phone="5551234567",
        experience="5 years",
        cover_letter="Cover letter text",
    )

    text = format_notification(SubmissionKind.JOB_APPLICATION, application, NOW)

    assert "👤 *Name:* Alex Driver" in text
    assert "🔗 *LinkedIn:* Not provided" in text


def test_account_deletion_uses_product_label() -> None:
    request = AccountDeletionRequest(product="raisedash", full_name="Pat", email="pat@example.com")

    text = format_notification(SubmissionKind.ACCOUNT_DELETION, request, NOW)

    assert "📦 *Product:* Raisedash\n" in text


def test_unsubscribe_and_email_capture() -> None:
    notice = UnsubscribeNotice(email="reader@example.com", ip="198.51.100.4")
    capture = EmailCaptureRequest(email="lead@example.com", source="Footer")

    unsubscribe_text = format_notification(SubmissionKind.UNSUBSCRIBE, notice, NOW)
    capture_text = format_notification(SubmissionKind.EMAIL_CAPTURE, capture, NOW)

    assert "🖥 *User Agent:* Not provided" in unsubscribe_text
    assert "📍 *Source:* Footer" in capture_text


def test_naive_timestamps_are_treated_as_utc() -> None:
    text = format_notification(
        SubmissionKind.EMAIL_CAPTURE,
        EmailCaptureRequest(email="lead@example.com"),
        datetime(2025, 1, 2, 3, 4, 5),
    )

    assert "2025-01-02 03:04:05 UTC" in text


def test_invite_has_no_notification_template() -> None:
    with pytest.raises(ValueError):
        format_notification(SubmissionKind.INVITE, object())


def test_clip_never_splits_an_escape() -> None:
    clipped = clip_escaped("a_" * 100, 50)

    assert len(clipped) <= 50
    assert clipped.endswith(" (truncated)")
    body = clipped[: -len(" (truncated)")]
    assert not body.endswith("\\")


def test_oversized_fields_stay_within_telegram_limit() -> None:
    form = ContactForm(
        name="n" * 5000,
        email="x@example.com",
        company="_" * 5000,
        subject="s" * 5000,
        message="*" * 5000,
    )

    text = format_notification(SubmissionKind.CONTACT, form, NOW)

    assert len(text) <= 4096
    assert text.count("(truncated)") == 4


def test_short_deletion_reason_is_kept_whole() -> None:
    request = AccountDeletionRequest(product="raisedash", full_name="Pat", reason="r" * 1500)

    text = format_notification(SubmissionKind.ACCOUNT_DELETION, request, NOW)

    assert "r" * 1500 in text
    assert "(truncated)" not in text
