import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from applywatch.services.scheduler import DelayQueue


def ms(value: float) -> timedelta:
    return timedelta(milliseconds=value)


class DelayQueueOrderingTests(unittest.TestCase):
    def test_pops_in_ascending_delay_order(self):
        queue = DelayQueue()
        queue.push("c", ms(30))
        queue.push("a", ms(10))
        queue.push("b", ms(20))

        self.assertEqual([queue.await_next() for _ in range(3)], ["a", "b", "c"])
        self.assertEqual(len(queue), 0)

    def test_seeding_sorts_entries(self):
        queue = DelayQueue([("slow", ms(40)), ("fast", ms(5)), ("mid", ms(20))])
        self.assertEqual([key for key, _ in queue.snapshot()], ["fast", "mid", "slow"])

    def test_ties_are_served_in_insertion_order(self):
        queue = DelayQueue([("first", ms(10)), ("second", ms(10))])
        queue.push("third", ms(10))
        queue.push("zero", ms(0))

        self.assertEqual(
            [key for key, _ in queue.snapshot()], ["zero", "first", "second", "third"]
        )

    def test_duplicate_keys_are_kept(self):
        queue = DelayQueue()
        queue.push(1, ms(50))
        queue.push(1, ms(10))
        self.assertEqual(queue.snapshot(), [(1, ms(10)), (1, ms(50))])

    def test_empty_queue_returns_none_immediately(self):
        queue = DelayQueue()
        started = time.monotonic()
        self.assertIsNone(queue.await_next())
        self.assertLess(time.monotonic() - started, 0.05)

    def test_negative_delay_is_rejected(self):
        with self.assertRaises(ValueError):
            DelayQueue().push("k", timedelta(seconds=-1))


class DelayQueueRebaseTests(unittest.TestCase):
    def test_pop_subtracts_front_delay_from_remaining_nodes(self):
        queue = DelayQueue([("a", ms(10)), ("b", ms(25)), ("c", ms(60))])

        self.assertEqual(queue.await_next(), "a")
        self.assertEqual(queue.snapshot(), [("b", ms(15)), ("c", ms(50))])

        self.assertEqual(queue.await_next(), "b")
        self.assertEqual(queue.snapshot(), [("c", ms(35))])

    def test_equal_delays_clamp_at_zero(self):
        queue = DelayQueue([("a", ms(10)), ("b", ms(10))])
        self.assertEqual(queue.await_next(), "a")
        self.assertEqual(queue.snapshot(), [("b", timedelta(0))])

    def test_matches_sorted_list_simulation(self):
        delays = {"k1": 35, "k2": 5, "k3": 20, "k4": 12, "k5": 28}
        queue = DelayQueue()
        for key, delay in delays.items():
            queue.push(key, ms(delay))

        expected = sorted(delays, key=delays.get)
        elapsed = 0
        for key in expected:
            self.assertEqual(queue.await_next(), key)
            elapsed = delays[key]
            for other, remaining in queue.snapshot():
                self.assertEqual(remaining, ms(delays[other] - elapsed))


class DelayQueueTimingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.executor = ThreadPoolExecutor(max_workers=1)

    def tearDown(self) -> None:
        self.executor.shutdown(wait=True)

    def test_keys_fire_at_their_delays(self):
        queue = DelayQueue([("k1", ms(250)), ("k2", ms(100))])
        started = time.monotonic()

        self.assertEqual(queue.await_next(), "k2")
        first = time.monotonic() - started
        self.assertEqual(queue.await_next(), "k1")
        second = time.monotonic() - started

        self.assertGreaterEqual(first, 0.09)
        self.assertLess(first, 0.2)
        self.assertGreaterEqual(second, 0.24)
        self.assertLess(second, 0.4)

    def test_earlier_push_preempts_outstanding_wait(self):
        queue = DelayQueue([("k1", ms(1000))])
        started = time.monotonic()
        future = self.executor.submit(queue.await_next)

        time.sleep(0.1)
        queue.push("k2", ms(100))

        self.assertEqual(future.result(timeout=2), "k2")
        elapsed = time.monotonic() - started
        self.assertGreaterEqual(elapsed, 0.19)
        self.assertLess(elapsed, 0.5)
        # the interrupted wait is not credited to k1
        self.assertEqual(queue.snapshot(), [("k1", ms(900))])

    def test_later_push_does_not_disturb_wait(self):
        queue = DelayQueue([("k1", ms(150))])
        started = time.monotonic()
        future = self.executor.submit(queue.await_next)

        time.sleep(0.05)
        queue.push("k2", ms(500))

        self.assertEqual(future.result(timeout=2), "k1")
        self.assertLess(time.monotonic() - started, 0.3)
        self.assertEqual(queue.snapshot(), [("k2", ms(350))])

    def test_push_is_not_blocked_by_sleeping_waiter(self):
        queue = DelayQueue([("k1", timedelta(seconds=30))])
        future = self.executor.submit(queue.await_next)
        time.sleep(0.05)

        started = time.monotonic()
        queue.push("k2", timedelta(seconds=20))
        self.assertLess(time.monotonic() - started, 0.05)

        queue.interrupt()
        self.assertIsNone(future.result(timeout=2))
        self.assertEqual(len(queue), 2)

    def test_concurrent_pushes_are_not_lost(self):
        queue = DelayQueue()
        barrier = threading.Barrier(4)

        def producer(offset: int) -> None:
            barrier.wait()
            for index in range(25):
                queue.push((offset, index), ms(offset * 25 + index))

        threads = [threading.Thread(target=producer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        remaining = [delay for _, delay in queue.snapshot()]
        self.assertEqual(len(remaining), 100)
        self.assertEqual(remaining, sorted(remaining))

    def test_delay_beyond_timeout_max_waits_until_interrupted(self):
        queue = DelayQueue([("k1", timedelta(days=200000))])
        future = self.executor.submit(queue.await_next)
        time.sleep(0.05)

        queue.interrupt()
        self.assertIsNone(future.result(timeout=2))
        self.assertEqual(queue.snapshot(), [("k1", timedelta(days=200000))])

    def test_interrupt_before_wait_returns_none_once(self):
        queue = DelayQueue([("k1", ms(10))])
        queue.interrupt()
        self.assertIsNone(queue.await_next())
        self.assertEqual(queue.await_next(), "k1")


class DelayQueueDiscardTests(unittest.TestCase):
    def test_discard_removes_every_node_for_key(self):
        queue = DelayQueue([(1, ms(10)), (2, ms(20)), (1, ms(30))])
        self.assertEqual(queue.discard(1), 2)
        self.assertNotIn(1, queue)
        self.assertEqual(queue.snapshot(), [(2, ms(20))])
        self.assertEqual(queue.discard(1), 0)

    def test_discarding_front_restarts_wait(self):
        queue = DelayQueue([("gone", ms(100)), ("stay", ms(200))])
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(queue.await_next)
            time.sleep(0.02)
            queue.discard("gone")
            self.assertEqual(future.result(timeout=2), "stay")


if __name__ == "__main__":
    unittest.main()
