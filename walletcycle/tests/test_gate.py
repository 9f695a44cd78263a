"""Bounded fan-out: concurrency cap, ordering and failure isolation."""

import asyncio
import unittest

from walletcycle.gate import run_bounded


class RunBoundedTests(unittest.IsolatedAsyncioTestCase):
    async def test_never_more_than_bound_in_flight(self) -> None:
        in_flight = 0
        peak = 0
        started = []

        def make(i):
            async def task():
                nonlocal in_flight, peak
                started.append(i)
                in_flight += 1
                peak = max(peak, in_flight)
                # Finish in reverse order of start to shuffle completion
                await asyncio.sleep(0.01 * (5 - i))
                in_flight -= 1
                return i
            return task

        results = await run_bounded(2, [make(i) for i in range(5)])

        self.assertEqual(results, [0, 1, 2, 3, 4])
        self.assertEqual(peak, 2)
        self.assertEqual(started[:2], [0, 1])

    async def test_later_task_waits_for_a_free_slot(self) -> None:
        first_done = asyncio.Event()
        order = []

        async def slow():
            await asyncio.sleep(0.01)
            order.append("slow")
            first_done.set()
            return "slow"

        async def queued():
            order.append("queued-start" if first_done.is_set() else "queued-early")
            return "queued"

        results = await run_bounded(1, [slow, queued])

        self.assertEqual(results, ["slow", "queued"])
        self.assertEqual(order, ["slow", "queued-start"])

    async def test_failure_does_not_abort_siblings(self) -> None:
        async def ok():
            await asyncio.sleep(0)
            return "ok"

        async def boom():
            raise RuntimeError("rejected")

        results = await run_bounded(2, [ok, boom, ok])

        self.assertEqual(results[0], "ok")
        self.assertIsInstance(results[1], RuntimeError)
        self.assertEqual(results[2], "ok")

    async def test_empty_task_list(self) -> None:
        self.assertEqual(await run_bounded(3, []), [])

    async def test_rejects_non_positive_bound(self) -> None:
        for bad in (0, -1, 1.5, True):
            with self.assertRaises(ValueError):
                await run_bounded(bad, [])


if __name__ == "__main__":
    unittest.main()
