"""Long-polling loop that feeds Telegram updates to the command handler."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Mapping, Optional

from applywatch.bot.commands import CommandHandler
from applywatch.notifiers.telegram import DeliveryError, TelegramApi

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


class UpdatePoller:
    """Fetch updates with ``getUpdates`` and dispatch them one by one."""

    def __init__(self, api: TelegramApi, handler: CommandHandler) -> None:
        self._api = api
        self._handler = handler
        self._offset: Optional[int] = None

    def run(self, stop_event: threading.Event) -> None:
        logger.info("Listening for bot updates")
        while not stop_event.is_set():
            try:
                updates = self._api.get_updates(offset=self._offset)
            except DeliveryError as exc:
                logger.warning("getUpdates failed: %s", exc)
                stop_event.wait(ERROR_BACKOFF_SECONDS)
                continue
            for update in updates:
                self._offset = int(update["update_id"]) + 1
                self.dispatch(update)

    def dispatch(self, update: Mapping[str, Any]) -> None:
        """Route one update; failures are logged and do not stop polling."""

        started = time.monotonic()
        try:
            if "message" in update:
                self._handler.handle_message(update["message"])
            elif "callback_query" in update:
                self._handler.handle_callback(update["callback_query"])
        except (DeliveryError, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to handle update %s: %s", update.get("update_id"), exc)
        else:
            logger.debug(
                "Handled update %s in %.3fs", update.get("update_id"), time.monotonic() - started
            )


__all__ = ["UpdatePoller"]
