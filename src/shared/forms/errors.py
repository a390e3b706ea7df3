"""Error taxonomy for form submissions.

Each error knows the HTTP status and machine-readable code it maps to, so
the exception handlers in app.py can build the JSON contract uniformly.
"""

from typing import Any, Dict, Optional


class SubmissionError(Exception):
    """Base class for every error reported at the submission boundary."""
    status_code: int = 400
    code: Optional[str] = "VALIDATION_ERROR"
    # When set, replaces the internal message in the response body
    public_message: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    @property
    def error(self) -> str:
        return self.public_message or str(self)

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"success": False, "error": self.error}
        if self.code:
            content["code"] = self.code
        content.update(self.extra)
        return content


class SubmissionValidationError(SubmissionError):
    """Client-fixable payload problem (400). Never retried automatically."""


class CaptchaError(SubmissionError):
    """The client must complete a fresh challenge before resubmitting (400)."""
    code = "TURNSTILE_FAILED"

    def __init__(self, message: str, *, kind: Any = None, error_codes=None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.kind = kind
        self.error_codes = list(error_codes or [])


class RateLimitError(SubmissionError):
    """Too many submissions for one identity inside the window (429)."""
    status_code = 429
    code = "RATE_LIMITED"


class ConfigError(SubmissionError):
    """Operator-fixable configuration problem; end users only see a generic failure."""
    status_code = 500
    code = "CONFIG_ERROR"
    public_message = "Service temporarily unavailable"


class DispatchError(SubmissionError):
    """Delivery to an upstream API failed (network error or non-2xx)."""
    status_code = 500
    code = "API_ERROR"
    public_message = "Failed to send notification"
