"""Relative-time delay queue used to decide which account to poll next."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Generic, Hashable, Iterable, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)

_ZERO = timedelta(0)


@dataclass(slots=True)
class QueueNode(Generic[K]):
    """A pending key and its delay relative to the last pop."""

    key: K
    remaining: timedelta


class DelayQueue(Generic[K]):
    """Priority queue ordered by time left until each key is due.

    ``remaining`` is measured from a shared reference instant that only
    advances when :meth:`await_next` pops the front node; every other node is
    then re-baselined by subtracting the popped delay.  ``push`` may be called
    from any thread while a single consumer sleeps in :meth:`await_next`: the
    consumer waits on the condition and therefore releases the lock, and a
    push that lands at the front wakes it so it restarts against the new
    front.  A restarted wait does not credit the time already slept.

    Example:
        queue = DelayQueue([(1, timedelta(minutes=5))])
        key = queue.await_next()   # returns 1 after ~5 minutes
    """

    def __init__(self, entries: Iterable[Tuple[K, timedelta]] = ()) -> None:
        nodes = [QueueNode(key, self._check_delay(delay)) for key, delay in entries]
        # sort() is stable so equal delays keep their seeding order
        nodes.sort(key=lambda node: node.remaining)
        self._nodes: List[QueueNode[K]] = nodes
        self._cond = threading.Condition()
        self._waiters = 0
        self._version = 0
        self._interrupted = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        with self._cond:
            return any(node.key == key for node in self._nodes)

    def snapshot(self) -> List[Tuple[K, timedelta]]:
        """Return ``(key, remaining)`` pairs in queue order."""

        with self._cond:
            return [(node.key, node.remaining) for node in self._nodes]

    # ------------------------------------------------------------------
    def push(self, key: K, delay: timedelta) -> None:
        """Insert ``key`` to become due after ``delay``.

        Keys are not deduplicated; pushing a queued key adds a second node.
        """

        node = QueueNode(key, self._check_delay(delay))
        with self._cond:
            index = len(self._nodes)
            for position, current in enumerate(self._nodes):
                if node.remaining < current.remaining:
                    index = position
                    break
            self._nodes.insert(index, node)
            if index == 0:
                self._front_changed()

    def discard(self, key: K) -> int:
        """Remove every pending node for ``key`` and return how many there were."""

        with self._cond:
            kept = [node for node in self._nodes if node.key != key]
            removed = len(self._nodes) - len(kept)
            if not removed:
                return 0
            front_removed = self._nodes[0].key == key
            self._nodes = kept
            if front_removed:
                self._front_changed()
            return removed

    def interrupt(self) -> None:
        """Make the outstanding (or next) :meth:`await_next` return ``None``."""

        with self._cond:
            self._interrupted = True
            self._cond.notify_all()

    def await_next(self) -> Optional[K]:
        """Block until the front node is due, pop it and return its key.

        Returns ``None`` straight away when the queue is empty, and when
        :meth:`interrupt` was called; the caller is expected to wait on its
        own source of new work in that case.
        """

        with self._cond:
            self._waiters += 1
            try:
                while True:
                    if self._interrupted:
                        self._interrupted = False
                        return None
                    if not self._nodes:
                        return None
                    deadline = time.monotonic() + self._nodes[0].remaining.total_seconds()
                    if self._wait_until(deadline, self._version):
                        return self._pop_front()
            finally:
                self._waiters -= 1

    # ------------------------------------------------------------------
    def _wait_until(self, deadline: float, version: int) -> bool:
        """Sleep until ``deadline``; False if interrupted or the front changed first."""

        while True:
            left = deadline - time.monotonic()
            if left <= 0:
                return True
            # Condition.wait rejects timeouts above TIMEOUT_MAX
            woken = self._cond.wait_for(
                lambda: self._interrupted or self._version != version,
                timeout=min(left, threading.TIMEOUT_MAX),
            )
            if woken:
                return False

    def _pop_front(self) -> K:
        front = self._nodes.pop(0)
        for node in self._nodes:
            node.remaining = max(node.remaining - front.remaining, _ZERO)
        return front.key

    def _front_changed(self) -> None:
        if self._waiters:
            self._version += 1
            self._cond.notify_all()

    @staticmethod
    def _check_delay(delay: timedelta) -> timedelta:
        if delay < _ZERO:
            raise ValueError(f"delay must not be negative: {delay}")
        return delay


__all__ = ["DelayQueue", "QueueNode"]
