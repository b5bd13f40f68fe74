"""Persistent account-indexed stores."""

from .repository import Database, Repository, StorageError, Stores, open_stores

__all__ = ["Database", "Repository", "StorageError", "Stores", "open_stores"]
