"""Account-indexed key-value stores backed by a single SQLite database."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

from applywatch.collectors.progress import ApplicationProgress

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOKENS_TABLE = "tokens"
PROGRESS_TABLE = "progress"
INTERVAL_TABLE = "intervals"


class StorageError(RuntimeError):
    """Raised when a store cannot be read or written."""


class Database:
    """Shared SQLite connection; one re-entrant lock serialises all statements."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._depth = 0
        try:
            if str(path) != ":memory:":
                self._path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL;")
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"cannot open database {path}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._path

    def ensure_table(self, table: str) -> None:
        self.execute(
            f"CREATE TABLE IF NOT EXISTS {table} (account INTEGER PRIMARY KEY, value TEXT NOT NULL)"
        )

    def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> List[Tuple[Any, ...]]:
        """Run one statement in its own transaction and return all rows."""

        with self.transaction() as conn:
            return conn.execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the connection for several statements committed together.

        Nested calls from the same thread join the outermost transaction,
        which commits or rolls back everything at once.
        """

        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return
            self._depth = 1
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
            finally:
                self._depth = 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class Repository(Generic[T]):
    """One table of ``account -> value`` with pluggable text encoding."""

    def __init__(
        self,
        database: Database,
        table: str,
        encode: Callable[[T], str],
        decode: Callable[[str], T],
    ) -> None:
        self._db = database
        self._table = table
        self._encode = encode
        self._decode = decode
        database.ensure_table(table)

    @property
    def database(self) -> Database:
        return self._db

    def get(self, account: int) -> Optional[T]:
        rows = self._db.execute(f"SELECT value FROM {self._table} WHERE account = ?", (account,))
        if not rows:
            return None
        return self._decode_value(rows[0][0])

    def put(self, account: int, value: T) -> None:
        self._db.execute(
            f"INSERT OR REPLACE INTO {self._table} (account, value) VALUES (?, ?)",
            (account, self._encode(value)),
        )

    def revoke(self, account: int) -> Optional[T]:
        """Delete ``account``'s value and return what was stored, if anything."""

        with self._db.transaction() as conn:
            row = conn.execute(f"SELECT value FROM {self._table} WHERE account = ?", (account,)).fetchone()
            if row is None:
                return None
            conn.execute(f"DELETE FROM {self._table} WHERE account = ?", (account,))
        return self._decode_value(row[0])

    def keys(self) -> Iterator[int]:
        rows = self._db.execute(f"SELECT account FROM {self._table} ORDER BY account")
        return iter([int(row[0]) for row in rows])

    def entries(self) -> Iterator[Tuple[int, T]]:
        rows = self._db.execute(f"SELECT account, value FROM {self._table} ORDER BY account")
        return iter([(int(account), self._decode_value(value)) for account, value in rows])

    def _decode_value(self, raw: str) -> T:
        try:
            return self._decode(raw)
        except (ValueError, TypeError) as exc:
            raise StorageError(f"corrupt value in {self._table}: {exc}") from exc


@dataclass(slots=True)
class Stores:
    """The three stores used by the bot, sharing one database."""

    database: Database
    tokens: Repository[str]
    progress: Repository[ApplicationProgress]
    intervals: Repository[timedelta]

    def close(self) -> None:
        self.database.close()


def open_stores(path: Path) -> Stores:
    database = Database(path)
    stores = Stores(
        database=database,
        tokens=Repository(database, TOKENS_TABLE, str, str),
        progress=Repository(database, PROGRESS_TABLE, _encode_progress, _decode_progress),
        intervals=Repository(database, INTERVAL_TABLE, _encode_minutes, _decode_minutes),
    )
    logger.info("Opened state database at %s", database.path)
    return stores


def _encode_progress(progress: ApplicationProgress) -> str:
    return json.dumps(progress.to_dict(), ensure_ascii=False, sort_keys=True)


def _decode_progress(raw: str) -> ApplicationProgress:
    # ProgressParseError is a ValueError
    return ApplicationProgress.from_dict(json.loads(raw))


def _encode_minutes(interval: timedelta) -> str:
    return str(int(interval.total_seconds() // 60))


def _decode_minutes(raw: str) -> timedelta:
    return timedelta(minutes=int(raw))


__all__ = [
    "Database",
    "Repository",
    "StorageError",
    "Stores",
    "open_stores",
]
