"""Telegram Bot API client and the notifier built on top of it."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from applywatch.changes import ChangeEvent
from applywatch.config import TelegramConfig

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Raised when a notification could not be delivered."""


class TelegramError(DeliveryError):
    """Raised when a Bot API call fails or returns ``ok: false``."""


class TelegramApi:
    """Thin wrapper around the Bot API methods the bot needs.

    Every method is a ``POST /bot<token>/<method>`` with a JSON body; the
    response has the shape ``{"ok": bool, "result": ..., "description":
    str}``.
    """

    def __init__(
        self,
        config: TelegramConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        base_url = f"{config.api_base_url.rstrip('/')}/bot{config.bot_token}"
        # long polling keeps the request open for poll_timeout seconds
        timeout = httpx.Timeout(config.request_timeout, read=config.request_timeout + config.poll_timeout)
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    # ------------------------------------------------------------------
    # Public API
    def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        return self._call("sendMessage", params)

    def edit_message_text(self, chat_id: int, message_id: int, text: str) -> Dict[str, Any]:
        return self._call("editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text})

    def edit_inline_message_text(self, inline_message_id: str, text: str) -> Dict[str, Any]:
        return self._call("editMessageText", {"inline_message_id": inline_message_id, "text": text})

    def answer_callback_query(self, callback_query_id: str) -> Any:
        return self._call("answerCallbackQuery", {"callback_query_id": callback_query_id})

    def get_updates(self, offset: Optional[int] = None, timeout: Optional[int] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "timeout": self._config.poll_timeout if timeout is None else timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            params["offset"] = offset
        result = self._call("getUpdates", params)
        return list(result or [])

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "TelegramApi":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    def _call(self, method: str, params: Dict[str, Any]) -> Any:
        try:
            response = self._client.post(f"/{method}", json=params)
        except httpx.HTTPError as exc:
            raise TelegramError(f"{method}: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise TelegramError(f"{method}: HTTP {response.status_code} with non-JSON body") from exc
        if not isinstance(payload, dict) or not payload.get("ok"):
            description = payload.get("description") if isinstance(payload, dict) else None
            raise TelegramError(f"{method}: {description or f'HTTP {response.status_code}'}")
        return payload.get("result")


class TelegramNotifier:
    """Deliver change events to each account's private chat."""

    def __init__(self, api: TelegramApi, config: TelegramConfig) -> None:
        self._api = api
        self._config = config

    def format(self, change: ChangeEvent) -> str:
        """Build the message that will be sent to Telegram."""

        return f"Progress update: {change.describe()}"

    def notify(self, account: int, change: ChangeEvent) -> None:
        """Send ``change`` to ``account``; raises :class:`DeliveryError` on failure."""

        text = self.format(change)
        if self._config.dry_run:
            logger.info("Dry run, not sending to %s: %s", account, text)
            return
        # private chat ids equal user ids
        self._api.send_message(account, text)


def inline_keyboard(rows: Sequence[Sequence[Tuple[str, str]]]) -> Dict[str, Any]:
    """Build an ``InlineKeyboardMarkup`` from ``(label, callback_data)`` rows."""

    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": data} for label, data in row] for row in rows
        ]
    }


__all__ = [
    "DeliveryError",
    "TelegramApi",
    "TelegramError",
    "TelegramNotifier",
    "inline_keyboard",
]
