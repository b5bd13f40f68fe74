"""applywatch: notify Telegram users when their application progress changes."""

from .cli import main as cli_main
from .config_loader import load_config

__all__ = [
    "cli_main",
    "load_config",
    "bot",
    "changes",
    "collectors",
    "config",
    "notifiers",
    "services",
    "storage",
]
