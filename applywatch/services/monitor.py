"""Per-account polling loop that turns progress changes into notifications."""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator, Optional, Protocol, Tuple

from applywatch.changes import ChangeEvent
from applywatch.collectors.join_client import JoinError, TokenExpiredError
from applywatch.collectors.progress import ApplicationProgress
from applywatch.notifiers import DeliveryError
from applywatch.services.scheduler import DelayQueue
from applywatch.storage import StorageError

logger = logging.getLogger(__name__)


class IntervalStore(Protocol):
    def get(self, account: int) -> Optional[timedelta]:
        ...

    def entries(self) -> Iterator[Tuple[int, timedelta]]:
        ...


class SnapshotCache(Protocol):
    def get(self, account: int) -> Optional[ApplicationProgress]:
        ...

    def put(self, account: int, value: ApplicationProgress) -> None:
        ...


class ProgressSource(Protocol):
    def fetch(self, account: int) -> ApplicationProgress:
        ...


class NotificationSink(Protocol):
    def notify(self, account: int, change: ChangeEvent) -> None:
        ...


@dataclass(frozen=True, slots=True)
class RescheduleSignal:
    """Request to re-arm ``account`` with ``interval``, or stop tracking on ``None``."""

    account: int
    interval: Optional[timedelta]


class Monitor:
    """Polls every tracked account at its own interval.

    The queue is seeded from the interval store.  Each due account is fetched,
    diffed against the cached snapshot and re-armed with the interval stored
    *at that moment*, so a change made while the account was waiting takes
    effect no later than the end of the current cycle.  Interval changes are
    delivered through :meth:`reschedule` and are folded into the queue without
    waiting for the current timer to expire.

    Example:
        monitor = Monitor(clients, stores.progress, stores.intervals, notifier)
        monitor.start()
        monitor.reschedule(account, timedelta(minutes=5))
        monitor.stop()
    """

    def __init__(
        self,
        clients: ProgressSource,
        cache: SnapshotCache,
        intervals: IntervalStore,
        notifier: NotificationSink,
    ) -> None:
        self._clients = clients
        self._cache = cache
        self._intervals = intervals
        self._notifier = notifier
        self._queue: DelayQueue[int] = DelayQueue(intervals.entries())
        # None is the stop sentinel
        self._signals: "queue.Queue[Optional[RescheduleSignal]]" = queue.Queue()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def queue(self) -> DelayQueue[int]:
        return self._queue

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self) -> threading.Thread:
        """Run :meth:`run` on a daemon thread."""

        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stopping.clear()
        self._thread = threading.Thread(target=self.run, name="applywatch-monitor", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop after the cycle in progress and wait for the thread."""

        self._stopping.set()
        self._signals.put(None)
        self._queue.interrupt()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Monitor thread did not stop within %ss", timeout)
            self._thread = None

    def reschedule(self, account: int, interval: Optional[timedelta]) -> None:
        """Queue an interval change for ``account``; ``None`` stops tracking it."""

        self._signals.put(RescheduleSignal(account, interval))
        self._queue.interrupt()

    # ------------------------------------------------------------------
    # Loop
    def run(self) -> None:
        """Serve due accounts one at a time until :meth:`stop` is called."""

        logger.info("Monitor started with %d scheduled accounts", len(self._queue))
        while not self._stopping.is_set():
            account = self._queue.await_next()
            if account is not None:
                self._serve(account)
            elif not len(self._queue):
                signal = self._signals.get()
                if signal is None:
                    break
                self.apply(signal)
            if not self._drain():
                break
        logger.info("Monitor stopped")

    def apply(self, signal: RescheduleSignal) -> None:
        """Fold one reschedule signal into the queue.

        A ``None`` interval is not applied here: the pending node fires once
        more and is then dropped by the re-arm check.
        """

        if signal.interval is None:
            logger.debug("Tracking disabled for account %s", signal.account)
            return
        self._queue.push(signal.account, signal.interval)
        logger.debug("Account %s re-armed in %s", signal.account, signal.interval)

    def handle_due(self, account: int) -> Optional[ChangeEvent]:
        """Poll ``account`` once and deliver a change event if there is one."""

        try:
            previous = self._cache.get(account)
        except StorageError as exc:
            logger.error("Cannot read cached progress of account %s: %s", account, exc)
            return None

        try:
            current = self._clients.fetch(account)
        except TokenExpiredError:
            change = ChangeEvent.revoked()
        except JoinError as exc:
            logger.warning("Fetch failed for account %s: %s", account, exc)
            return None
        else:
            if previous is not None and previous == current:
                return None
            try:
                self._cache.put(account, current)
            except StorageError as exc:
                logger.error("Cannot cache progress of account %s: %s", account, exc)
                return None
            change = ChangeEvent.updated(current)

        self._deliver(account, change)
        return change

    # ------------------------------------------------------------------
    # Internal helpers
    def _serve(self, account: int) -> None:
        try:
            self.handle_due(account)
        except Exception:
            logger.exception("Unexpected error while polling account %s", account)
        try:
            self._rearm(account)
        except Exception:
            logger.exception("Unexpected error while re-arming account %s", account)

    def _rearm(self, account: int) -> None:
        try:
            interval = self._intervals.get(account)
        except StorageError as exc:
            logger.error("Cannot read interval of account %s, not re-arming: %s", account, exc)
            return
        # the node that just fired wins; older duplicates from apply() go
        self._queue.discard(account)
        if interval is not None:
            self._queue.push(account, interval)

    def _deliver(self, account: int, change: ChangeEvent) -> None:
        try:
            self._notifier.notify(account, change)
        except DeliveryError as exc:
            logger.error("Cannot deliver %s change to account %s: %s", change.kind.value, account, exc)

    def _drain(self) -> bool:
        while True:
            try:
                signal = self._signals.get_nowait()
            except queue.Empty:
                return True
            if signal is None:
                return False
            self.apply(signal)


__all__ = [
    "IntervalStore",
    "Monitor",
    "NotificationSink",
    "ProgressSource",
    "RescheduleSignal",
    "SnapshotCache",
]
