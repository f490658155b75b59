import asyncio
import unittest

from beaconsim.base.loop_runner import AsyncLoopRunner


class CountingLoop(AsyncLoopRunner):
    calls: int = 0
    fail_on: int | None = None

    async def run_step(self):
        self.calls += 1
        if self.calls == self.fail_on:
            raise RuntimeError("step failed")


class TestAsyncLoopRunner(unittest.IsolatedAsyncioTestCase):

    async def test_stops_after_max_steps(self):
        loop = CountingLoop(sleep_min=0.0, sleep_max=0.0, max_steps=4)
        await loop.start()
        await asyncio.wait_for(loop.wait(), timeout=2)
        self.assertEqual(loop.calls, 4)
        self.assertEqual(loop.step, 4)
        self.assertFalse(loop.running)

    async def test_failed_step_does_not_end_the_loop(self):
        loop = CountingLoop(sleep_min=0.0, sleep_max=0.0, max_steps=3, fail_on=2)
        await loop.start()
        await asyncio.wait_for(loop.wait(), timeout=2)
        self.assertEqual(loop.calls, 3)

    async def test_start_twice_is_harmless(self):
        loop = CountingLoop(sleep_min=10.0, sleep_max=10.0)
        await loop.start()
        await loop.start()
        while loop.step < 1:
            await asyncio.sleep(0.01)
        await asyncio.wait_for(loop.stop(), timeout=1)
        self.assertEqual(loop.calls, 1)

    def test_name_defaults_to_class(self):
        self.assertEqual(CountingLoop().name, "CountingLoop")

    def test_sleep_bounds_checked(self):
        with self.assertRaises(ValueError):
            CountingLoop(sleep_min=5.0, sleep_max=1.0)


if __name__ == "__main__":
    unittest.main()
