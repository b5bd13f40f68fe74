"""Utilities to load :mod:`applywatch.config` structures from YAML files."""
from __future__ import annotations

import datetime as _dt
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .config import (
    AppConfig,
    JoinApiConfig,
    LoggingConfig,
    MonitorConfig,
    StorageConfig,
    TelegramConfig,
)

BOT_TOKEN_ENV = "APPLYWATCH_BOT_TOKEN"

_DURATION_UNITS = {
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}


def load_config(path: Path, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load a configuration file into :class:`AppConfig`.

    The loader accepts human friendly values such as ``"30s"`` or ``"5m"`` for
    durations and converts them into :class:`datetime.timedelta` objects.
    Fields omitted in the YAML file fall back to the defaults declared in
    :mod:`applywatch.config`.  The bot token may be left out of the file and
    supplied through ``APPLYWATCH_BOT_TOKEN`` instead.
    """

    return parse_config(_load_yaml(path), environ)


def parse_config(raw: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    env = os.environ if environ is None else environ

    telegram_section = raw.get("telegram") or {}
    bot_token = telegram_section.get("bot_token") or env.get(BOT_TOKEN_ENV)
    if not bot_token:
        raise ValueError(f"telegram.bot_token is not set and {BOT_TOKEN_ENV} is empty")
    telegram = TelegramConfig(
        bot_token=str(bot_token),
        api_base_url=str(telegram_section.get("api_base_url", "https://api.telegram.org")),
        request_timeout=float(telegram_section.get("request_timeout", 10.0)),
        poll_timeout=int(telegram_section.get("poll_timeout", 30)),
        dry_run=bool(telegram_section.get("dry_run", False)),
    )

    join_section = raw.get("join") or {}
    join = JoinApiConfig(
        base_url=str(join_section.get("base_url", JoinApiConfig().base_url)),
        request_timeout=float(join_section.get("request_timeout", 10.0)),
    )

    storage_section = raw.get("storage") or {}
    storage = StorageConfig(
        path=Path(storage_section["path"]) if storage_section.get("path") else StorageConfig().path,
    )

    monitor_section = raw.get("monitor") or {}
    options = [_parse_duration(item) for item in monitor_section.get("interval_options", [])]
    for option in options:
        if option.total_seconds() < 60 or option.total_seconds() % 60:
            raise ValueError(f"interval option must be a whole number of minutes: {option}")
    monitor = MonitorConfig(
        interval_options=tuple(options) if options else MonitorConfig().interval_options,
        shutdown_timeout=_parse_duration(monitor_section.get("shutdown_timeout", "5s")),
    )

    logging_section = raw.get("logging") or {}
    logging_cfg = LoggingConfig(
        level=str(logging_section.get("level", "INFO")).upper(),
        format=str(logging_section.get("format", LoggingConfig().format)),
    )

    return AppConfig(
        telegram=telegram,
        join=join,
        storage=storage,
        monitor=monitor,
        logging=logging_cfg,
    )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("configuration root must be a mapping")
    return data


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    unit = value[-1].lower()
    if unit not in _DURATION_UNITS:
        raise ValueError(f"unknown duration unit: {value}")
    amount = float(value[:-1])
    base = _DURATION_UNITS[unit]
    return _dt.timedelta(seconds=base.total_seconds() * amount)
