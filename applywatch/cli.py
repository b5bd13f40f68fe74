"""Command line entry point for applywatch."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Sequence

from .bot import CommandHandler, UpdatePoller
from .collectors import ClientPool, JoinClient, JoinError, UnknownStepError
from .config import AppConfig
from .config_loader import load_config
from .notifiers import TelegramApi, TelegramNotifier
from .services import Monitor
from .storage import open_stores

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="applywatch bot")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the log level from the configuration file",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser(
        "run",
        help="Run the Telegram bot and the progress monitor",
    )
    run.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )

    check = sub.add_parser(
        "check-once",
        help="Fetch one account's progress with its stored token and print it",
    )
    check.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )
    check.add_argument(
        "--account",
        type=int,
        required=True,
        help="Telegram user id of the account to check",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    _configure_logging(config, args.log_level)

    if args.command == "run":
        return _command_run(config)
    if args.command == "check-once":
        return _command_check_once(config, args.account)

    parser.error("unknown command")
    return 1


def _configure_logging(config: AppConfig, override: str | None) -> None:
    level = (override or config.logging.level).upper()
    logging.basicConfig(level=level, format=config.logging.format)
    # httpx logs every request at INFO, including the bot token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _command_run(config: AppConfig) -> int:
    stores = open_stores(config.storage.path)
    clients = ClientPool.from_tokens(stores.tokens.entries(), config.join)
    api = TelegramApi(config.telegram)
    monitor = Monitor(
        clients,
        stores.progress,
        stores.intervals,
        TelegramNotifier(api, config.telegram),
    )
    handler = CommandHandler(
        api,
        clients,
        stores.tokens,
        stores.progress,
        stores.intervals,
        monitor,
        client_factory=lambda token: JoinClient(token, config.join),
        interval_options=config.monitor.interval_options,
    )
    poller = UpdatePoller(api, handler)

    stop_event = threading.Event()
    monitor.start()
    try:
        poller.run(stop_event)
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted, shutting down")
    finally:
        stop_event.set()
        monitor.stop(timeout=config.monitor.shutdown_timeout.total_seconds())
        clients.close()
        api.close()
        stores.close()
    return 0


def _command_check_once(config: AppConfig, account: int) -> int:
    stores = open_stores(config.storage.path)
    try:
        token = stores.tokens.get(account)
        if token is None:
            print(f"No token stored for account {account}", file=sys.stderr)
            return 1
        with JoinClient(token, config.join) as client:
            try:
                progress = client.get_application_progress()
            except JoinError as exc:
                print(f"Fetch failed: {exc}", file=sys.stderr)
                return 1
    finally:
        stores.close()

    try:
        step = progress.current_step()
    except UnknownStepError as exc:
        step = f"{exc} error"
    output = {
        "account": account,
        "current_step": str(step) if step is not None else None,
        "progress": progress.to_dict(),
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
