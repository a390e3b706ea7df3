from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.shared.config.settings import load_settings
from src.shared.forms.errors import DispatchError
from src.shared.notifications.telegram import NotificationMessage, TelegramConfigError, TelegramDispatcher


def make_dispatcher(status_code: int = 200, text: str = '{"ok":true}', exc: Exception = None):
    session = MagicMock()
    if exc is not None:
        session.post.side_effect = exc
    else:
        session.post.return_value = MagicMock(status_code=status_code, text=text)
    dispatcher = TelegramDispatcher(
        "123:token",
        "-100200",
        api_base_url="https://telegram.test/",
        timeout=3,
        session=session,
    )
    return dispatcher, session


def test_dispatch_posts_send_message() -> None:
    dispatcher, session = make_dispatcher()

    dispatcher.dispatch(NotificationMessage(text="*hello*"))

    session.post.assert_called_once_with(
        "https://telegram.test/bot123:token/sendMessage",
        json={
            "chat_id": "-100200",
            "text": "*hello*",
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        },
        timeout=3,
    )


def test_message_chat_id_overrides_default() -> None:
    dispatcher, session = make_dispatcher()

    dispatcher.dispatch(NotificationMessage(text="hi", chat_id="42"))

    assert session.post.call_args.kwargs["json"]["chat_id"] == "42"


def test_non_2xx_is_dispatch_error_with_truncated_body() -> None:
    dispatcher, _ = make_dispatcher(status_code=400, text="x" * 1000)

    with pytest.raises(DispatchError) as excinfo:
        dispatcher.dispatch(NotificationMessage(text="hi"))

    assert str(excinfo.value) == "Telegram API error 400: " + "x" * 300
    assert excinfo.value.error == "Failed to send notification"
    assert excinfo.value.code == "API_ERROR"


def test_network_error_does_not_leak_token() -> None:
    exc = requests.exceptions.ConnectionError("https://telegram.test/bot123:token/sendMessage unreachable")
    dispatcher, _ = make_dispatcher(exc=exc)

    with pytest.raises(DispatchError) as excinfo:
        dispatcher.dispatch(NotificationMessage(text="hi"))

    assert "123:token" not in str(excinfo.value)


def test_missing_configuration() -> None:
    with pytest.raises(TelegramConfigError):
        TelegramDispatcher("", "-100")
    with pytest.raises(TelegramConfigError):
        TelegramDispatcher.from_settings(load_settings())


def test_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-1")
    monkeypatch.setenv("TELEGRAM_TIMEOUT_SECONDS", "2.5")

    dispatcher = TelegramDispatcher.from_settings(load_settings())

    assert dispatcher.chat_id == "-1"
    assert dispatcher.timeout == 2.5
