"""Configuration schema for an applywatch deployment.

This module defines dataclasses that describe how the bot, the progress
monitor and their storage are configured.  Every section except
``telegram`` has usable defaults so a minimal configuration only needs the
bot token.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Sequence

DEFAULT_INTERVAL_OPTIONS = tuple(
    timedelta(minutes=minutes) for minutes in (1, 3, 5, 10, 30, 60, 120, 360, 1440)
)


@dataclass(slots=True)
class JoinApiConfig:
    """Connection parameters for the recruitment site API."""

    base_url: str = "https://join.qq.com"
    request_timeout: float = 10.0


@dataclass(slots=True)
class TelegramConfig:
    """Telegram bot integration, used for both commands and notifications."""

    bot_token: str
    api_base_url: str = "https://api.telegram.org"
    request_timeout: float = 10.0
    poll_timeout: int = 30
    dry_run: bool = False


@dataclass(slots=True)
class StorageConfig:
    """Location of the SQLite database holding tokens, intervals and cache."""

    path: Path = field(default_factory=lambda: Path("./state/applywatch.sqlite3"))


@dataclass(slots=True)
class MonitorConfig:
    """Knobs for the per-account polling monitor."""

    interval_options: Sequence[timedelta] = DEFAULT_INTERVAL_OPTIONS
    shutdown_timeout: timedelta = timedelta(seconds=5)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class AppConfig:
    """Top-level configuration bundle."""

    telegram: TelegramConfig
    join: JoinApiConfig = field(default_factory=JoinApiConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
