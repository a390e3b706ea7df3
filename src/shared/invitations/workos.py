"""WorkOS user management invitations, sent to people who ask for access."""

from dataclasses import dataclass
from typing import Optional

import requests

from src.shared.config.settings import Settings, WORKOS_API_BASE_URL, DEFAULT_HTTP_TIMEOUT_SECONDS
from src.shared.forms.errors import ConfigError, DispatchError


class WorkOSConfigError(ConfigError):
    """Raised when WORKOS_API_KEY is not set."""


class WorkOSAPIError(DispatchError):
    """Raised when the WorkOS API rejects the invitation or cannot be reached."""
    public_message = "Failed to send invitation. Please try again."

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code_upstream = status_code
        self.error_code = error_code


@dataclass(frozen=True)
class InvitationResult:
    id: str
    email: str
    state: str
    expires_at: Optional[str]
    created_at: Optional[str]


class WorkOSInvitationSender:
    """Sends general app invitations (no organization) through the WorkOS REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        api_base_url: str = WORKOS_API_BASE_URL,
        expires_in_days: int = 7,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key
        self.api_base_url = api_base_url.rstrip("/")
        self.expires_in_days = expires_in_days
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkOSInvitationSender":
        return cls(
            settings.workos_api_key,
            api_base_url=settings.workos_api_base_url,
            expires_in_days=settings.workos_invite_expires_days,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def send_invitation(self, email: str, organization_id: Optional[str] = None) -> InvitationResult:
        """
        Send an invitation email to the given address.

        Raises:
            WorkOSConfigError: If no API key is configured
            WorkOSAPIError: On network failure or a non-2xx response
        """
        if not self._api_key:
            raise WorkOSConfigError("WORKOS_API_KEY environment variable is not set")

        payload = {"email": email, "expires_in_days": self.expires_in_days}
        if organization_id:
            payload["organization_id"] = organization_id

        try:
            response = self._session.post(
                f"{self.api_base_url}/user_management/invitations",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise WorkOSAPIError(f"WorkOS request failed: {type(e).__name__}") from None

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not 200 <= response.status_code < 300:
            raise WorkOSAPIError(
                body.get("message") or f"WorkOS API returned status {response.status_code}",
                status_code=response.status_code,
                error_code=body.get("code"),
            )

        return InvitationResult(
            id=body.get("id", ""),
            email=body.get("email", email),
            state=body.get("state", "pending"),
            expires_at=body.get("expires_at"),
            created_at=body.get("created_at"),
        )
