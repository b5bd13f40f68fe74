"""Chat command handling: sign-in, on-demand checks and interval changes."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from applywatch.collectors import (
    ApplicationProgress,
    ClientPool,
    JoinClient,
    JoinError,
    UnknownStepError,
)
from applywatch.notifiers.telegram import TelegramApi, inline_keyboard
from applywatch.services.monitor import Monitor
from applywatch.storage import Repository, StorageError

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join(
    (
        "These commands are supported:",
        "/help - display this text.",
        "/signin <token> - replace your token with a new one, which is the UserInfo cookie "
        "from the recruiter's website.",
        "/get - get the current application state.",
        "/interval - choose how often your application is checked.",
        "/signout - revoke your token and stop receiving notifications.",
    )
)

TURN_OFF = "0"


@dataclass(slots=True)
class CommandContext:
    chat_id: int
    message_id: int
    user_id: Optional[int]
    argument: str


class CommandHandler:
    """Answer bot commands and interval keyboard callbacks.

    Interval changes are written to the interval store first and then
    announced to the :class:`Monitor`, which re-arms the account.
    """

    def __init__(
        self,
        api: TelegramApi,
        clients: ClientPool,
        tokens: Repository[str],
        cache: Repository[ApplicationProgress],
        intervals: Repository[timedelta],
        monitor: Monitor,
        client_factory: Callable[[str], JoinClient],
        interval_options: Sequence[timedelta],
    ) -> None:
        self._api = api
        self._clients = clients
        self._tokens = tokens
        self._cache = cache
        self._intervals = intervals
        self._monitor = monitor
        self._client_factory = client_factory
        self._interval_options = tuple(interval_options)
        self._commands: Dict[str, Callable[[CommandContext], None]] = {
            "help": self.help,
            "start": self.help,
            "signin": self.signin,
            "get": self.get,
            "signout": self.signout,
            "interval": self.interval,
        }

    # ------------------------------------------------------------------
    # Dispatch
    def handle_message(self, message: Mapping[str, Any]) -> None:
        text = (message.get("text") or "").strip()
        if not text.startswith("/"):
            return
        command, _, argument = text[1:].partition(" ")
        name = command.split("@", 1)[0].lower()
        handler = self._commands.get(name)
        if handler is None:
            return
        sender = message.get("from") or {}
        context = CommandContext(
            chat_id=int(message["chat"]["id"]),
            message_id=int(message["message_id"]),
            user_id=int(sender["id"]) if "id" in sender else None,
            argument=argument.strip(),
        )
        handler(context)

    def handle_callback(self, query: Mapping[str, Any]) -> None:
        """Apply an interval picked on the keyboard sent by :meth:`interval`."""

        account = int(query["from"]["id"])
        try:
            minutes = int(query.get("data") or "")
        except ValueError:
            minutes = None
        if minutes is None or (minutes != 0 and minutes not in self._option_minutes()):
            self._api.send_message(account, "Your message carries invalid data thus has no effect.")
            return

        result = self._change_interval(account, minutes)
        message = query.get("message")
        if message is not None:
            self._api.edit_message_text(int(message["chat"]["id"]), int(message["message_id"]), result)
        elif query.get("inline_message_id"):
            self._api.edit_inline_message_text(str(query["inline_message_id"]), result)
        self._api.answer_callback_query(str(query["id"]))

    # ------------------------------------------------------------------
    # Commands
    def help(self, ctx: CommandContext) -> None:
        self._api.send_message(ctx.chat_id, HELP_TEXT)

    def signin(self, ctx: CommandContext) -> None:
        if ctx.user_id is None:
            self._api.send_message(ctx.chat_id, "No user info bound to this context.")
            return
        if not ctx.argument:
            self._api.send_message(ctx.chat_id, "Empty token. This operation has no effect.")
            return

        client = self._client_factory(ctx.argument)
        try:
            progress = client.get_application_progress()
        except JoinError as exc:
            client.close()
            self._api.send_message(ctx.chat_id, f"Invalid token: {exc}")
            return

        account = ctx.user_id
        try:
            self._cache.put(account, progress)
            self._tokens.put(account, ctx.argument)
        except StorageError as exc:
            client.close()
            logger.error("Error while storing token, user id = %s: %s", account, exc)
            self._api.send_message(ctx.chat_id, f"Error updating database. {_contact_admin(account)}")
            return
        self._clients.insert(account, client)
        self._api.send_message(ctx.chat_id, "Token has been updated.")
        # hide the token from the chat history
        self._api.edit_message_text(ctx.chat_id, ctx.message_id, "/signin")

    def get(self, ctx: CommandContext) -> None:
        if ctx.user_id is None:
            self._api.send_message(ctx.chat_id, "No user info is bound to this context.")
            return
        account = ctx.user_id
        if account not in self._clients:
            self._api.send_message(
                ctx.chat_id,
                "No token associated with current context. Use the /signin command to get started.",
            )
            return
        try:
            progress = self._clients.fetch(account)
        except JoinError as exc:
            self._api.send_message(ctx.chat_id, f"Fetch failed because {exc}")
            return
        try:
            self._cache.put(account, progress)
        except StorageError as exc:
            logger.error("Error while caching progress, user id = %s: %s", account, exc)
        self._api.send_message(ctx.chat_id, describe_progress(progress))

    def signout(self, ctx: CommandContext) -> None:
        if ctx.user_id is None:
            self._api.send_message(ctx.chat_id, "No user info bound to this context.")
            return
        account = ctx.user_id
        try:
            with self._tokens.database.transaction():
                revoked = self._tokens.revoke(account)
                if revoked is not None:
                    self._intervals.revoke(account)
        except StorageError as exc:
            logger.error("Error while revoking token, user id = %s: %s", account, exc)
            self._api.send_message(ctx.chat_id, f"Failed to update database. {_contact_admin(account)}")
            return
        if revoked is None:
            self._api.send_message(ctx.chat_id, "No stored token. This operation carries no effect.")
            return
        self._clients.remove(account)
        self._monitor.reschedule(account, None)
        self._api.send_message(ctx.chat_id, "Revoked previously stored token.")

    def interval(self, ctx: CommandContext) -> None:
        if ctx.user_id is None:
            self._api.send_message(ctx.chat_id, "No user info bound to this context.")
            return
        self._api.send_message(
            ctx.chat_id,
            "Choose one of the following intervals.",
            reply_markup=self._interval_keyboard(),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    def _change_interval(self, account: int, minutes: int) -> str:
        interval = timedelta(minutes=minutes) if minutes > 0 else None
        try:
            if interval is not None:
                self._intervals.put(account, interval)
            else:
                self._intervals.revoke(account)
        except StorageError as exc:
            logger.error("Error while updating interval database, user id = %s: %s", account, exc)
            return f"Failed to update database. {_contact_admin(account)}"
        self._monitor.reschedule(account, interval)
        if interval is None:
            return "Polling has been disabled."
        return f"Polling interval has been updated to {minutes}min."

    def _option_minutes(self) -> List[int]:
        return [int(option.total_seconds() // 60) for option in self._interval_options]

    def _interval_keyboard(self) -> Dict[str, Any]:
        buttons = [(f"{minutes}min", str(minutes)) for minutes in self._option_minutes()]
        rows = [buttons[start:start + 3] for start in range(0, len(buttons), 3)]
        rows.append([("Turn Off", TURN_OFF)])
        return inline_keyboard(rows)


def describe_progress(progress: ApplicationProgress) -> str:
    try:
        step = progress.current_step()
    except UnknownStepError as exc:
        return f"Fetch succeeded but can't make sense of the result because {exc}"
    if step is None:
        return "Current progress is empty or doesn't make sense. Check the web page for more info."
    return f"Current progress is {step}."


def _contact_admin(account: int) -> str:
    return f"Please contact the system administrator, with your user id {account}."


__all__ = ["CommandHandler", "describe_progress"]
