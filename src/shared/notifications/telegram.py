"""Telegram Bot API dispatcher for operator notifications."""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from src.shared.config.settings import Settings, TELEGRAM_API_BASE_URL, DEFAULT_HTTP_TIMEOUT_SECONDS
from src.shared.forms.errors import ConfigError, DispatchError

MAX_ERROR_BODY_CHARS = 300


class TelegramConfigError(ConfigError):
    """Raised when the bot token or chat id is missing."""


@dataclass(frozen=True)
class NotificationMessage:
    """Formatted text plus delivery metadata."""
    text: str
    parse_mode: str = "Markdown"
    # Overrides the dispatcher's default chat when set
    chat_id: Optional[str] = None


class TelegramDispatcher:
    """Sends notifications through the Bot API sendMessage method."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base_url: str = TELEGRAM_API_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        if not bot_token or not chat_id:
            raise TelegramConfigError(
                "Telegram configuration missing. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID."
            )
        self._bot_token = bot_token
        self.chat_id = chat_id
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramDispatcher":
        return cls(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            api_base_url=settings.telegram_api_base_url,
            timeout=settings.telegram_timeout_seconds,
        )

    def _endpoint(self) -> str:
        # The Bot API endpoint is derived from the token; never log it.
        return f"{self.api_base_url}/bot{self._bot_token}/sendMessage"

    def dispatch(self, message: NotificationMessage) -> None:
        """
        Deliver one message.

        Raises:
            DispatchError: On network failure or a non-2xx response
        """
        payload = {
            "chat_id": message.chat_id or self.chat_id,
            "text": message.text,
            "parse_mode": message.parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            response = self._session.post(self._endpoint(), json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            # Exception text can embed the URL, and with it the token
            raise DispatchError(f"Telegram request failed: {type(e).__name__}") from None

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:MAX_ERROR_BODY_CHARS]
            raise DispatchError(f"Telegram API error {response.status_code}: {body}")

        logging.info("Telegram notification delivered")
