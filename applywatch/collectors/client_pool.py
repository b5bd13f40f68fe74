"""Per-account registry of :class:`JoinClient` sessions."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Tuple

from applywatch.collectors.join_client import JoinClient, JoinError
from applywatch.collectors.progress import ApplicationProgress
from applywatch.config import JoinApiConfig

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], JoinClient]


class MissingClientError(JoinError):
    """Raised when an account has no signed-in session."""

    def __init__(self, account: int) -> None:
        super().__init__(f"no client registered for account {account}")
        self.account = account


@dataclass(slots=True)
class _ClientHandle:
    client: JoinClient
    lock: threading.Lock = field(default_factory=threading.Lock)


class ClientPool:
    """Map of account id to a session guarded by its own lock.

    The map itself is protected by a short-lived registry lock; fetches only
    hold the lock of the account being fetched, so a scheduled poll and an
    on-demand ``/get`` for the same account are serialised while unrelated
    accounts proceed in parallel.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: Dict[int, _ClientHandle] = {}

    @classmethod
    def from_tokens(
        cls,
        tokens: Iterable[Tuple[int, str]],
        config: Optional[JoinApiConfig] = None,
        factory: Optional[ClientFactory] = None,
    ) -> "ClientPool":
        """Create a pool with one client per stored ``(account, token)`` pair."""

        make = factory or (lambda token: JoinClient(token, config))
        pool = cls()
        for account, token in tokens:
            pool.insert(account, make(token))
        logger.info("Restored %d client sessions", len(pool))
        return pool

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, account: object) -> bool:
        with self._lock:
            return account in self._handles

    def insert(self, account: int, client: JoinClient) -> None:
        """Register ``client`` for ``account``, closing any previous session."""

        with self._lock:
            previous = self._handles.get(account)
            self._handles[account] = _ClientHandle(client)
        if previous is not None:
            with previous.lock:
                previous.client.close()

    def remove(self, account: int) -> bool:
        with self._lock:
            handle = self._handles.pop(account, None)
        if handle is None:
            return False
        with handle.lock:
            handle.client.close()
        return True

    def fetch(self, account: int) -> ApplicationProgress:
        """Fetch ``account``'s progress while holding only that account's lock."""

        with self._lock:
            handle = self._handles.get(account)
        if handle is None:
            raise MissingClientError(account)
        with handle.lock:
            return handle.client.get_application_progress()

    def close(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            with handle.lock:
                handle.client.close()


__all__ = ["ClientFactory", "ClientPool", "MissingClientError"]
