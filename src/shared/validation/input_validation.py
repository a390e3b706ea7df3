"""
Input validation and normalization utilities for form submissions.
All checks are pure: they report problems instead of raising, so a handler
can collect every violation in one response.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlparse


# Simple local@domain.tld shape, not full RFC 5322
EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PHONE_DIGITS = 10

# Maximum lengths for free-text fields after sanitization
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255
MAX_SHORT_TEXT_LENGTH = 200
MAX_LONG_TEXT_LENGTH = 5000

# Control characters other than newline and tab break the Telegram parser
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b-\x1f\x7f-\x9f]')


@dataclass(frozen=True)
class FieldRules:
    """Format rules applied to fields that are present and non-empty."""
    email_fields: Tuple[str, ...] = ()
    phone_fields: Tuple[str, ...] = ()
    url_fields: Tuple[str, ...] = ()
    min_lengths: Dict[str, int] = field(default_factory=dict)


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def validate_required_fields(data: Mapping[str, Any], required_fields: Iterable[str]) -> List[str]:
    """
    Return the required fields that are absent, None or blank after trimming.

    Args:
        data: Submitted payload
        required_fields: Field names that must carry a value

    Returns:
        Missing field names, in the order they were requested
    """
    return [name for name in required_fields if _is_blank(data.get(name))]


def is_valid_email(email: Optional[str]) -> bool:
    if not isinstance(email, str):
        return False
    return bool(EMAIL_REGEX.match(email))


def is_valid_phone(phone: Optional[str]) -> bool:
    """A phone number is valid when it has at least 10 digits."""
    if not isinstance(phone, str):
        return False
    return len(normalize_phone(phone)) >= MIN_PHONE_DIGITS


def is_valid_url(url: Optional[str]) -> bool:
    """A URL is valid when it parses as absolute, with both scheme and host."""
    if not isinstance(url, str) or any(ch.isspace() for ch in url.strip()):
        return False
    try:
        parsed = urlparse(url.strip())
        # Accessing port raises ValueError for malformed ports
        parsed.port
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def has_min_length(value: Optional[str], min_length: int) -> bool:
    if not isinstance(value, str):
        return False
    return len(value.strip()) >= min_length


def find_invalid_fields(data: Mapping[str, Any], rules: FieldRules) -> List[str]:
    """
    Return the fields that carry a value which breaks a format rule.
    Empty values are skipped here; use validate_required_fields for those.
    """
    invalid: List[str] = []

    def flag(name: str) -> None:
        if name not in invalid:
            invalid.append(name)

    for name in rules.email_fields:
        value = data.get(name)
        if not _is_blank(value) and not is_valid_email(str(value).strip()):
            flag(name)
    for name in rules.phone_fields:
        value = data.get(name)
        if not _is_blank(value) and not is_valid_phone(str(value)):
            flag(name)
    for name in rules.url_fields:
        value = data.get(name)
        if not _is_blank(value) and not is_valid_url(str(value)):
            flag(name)
    for name, min_length in rules.min_lengths.items():
        value = data.get(name)
        if not _is_blank(value) and not has_min_length(str(value), min_length):
            flag(name)
    return invalid


def validate(data: Mapping[str, Any], required_fields: Iterable[str],
             rules: Optional[FieldRules] = None) -> List[str]:
    """
    Validate a payload and return every missing or invalid field name.
    Missing fields come first; a field is reported once. Never raises.
    """
    problems = validate_required_fields(data, required_fields)
    if rules is not None:
        for name in find_invalid_fields(data, rules):
            if name not in problems:
                problems.append(name)
    return problems


def normalize_email(email: str) -> str:
    """Normalize an email address for use as an identity key."""
    return email.strip().lower()


def normalize_phone(phone: str) -> str:
    return re.sub(r'\D', '', phone)


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Strip whitespace and control characters from free text.

    Args:
        text: Input text to sanitize (None passes through)
        max_length: Maximum allowed length (None for no limit)

    Returns:
        Sanitized text, or None when the input was None
    """
    if text is None:
        return None
    text = _CONTROL_CHARS.sub("", text).strip()
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def mask_email(email: Optional[str]) -> str:
    """Mask an email address for logs: jo***@example.com."""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"
