"""Telegram bot front end."""

from .commands import CommandHandler, describe_progress
from .dispatcher import UpdatePoller

__all__ = ["CommandHandler", "UpdatePoller", "describe_progress"]
