"""Tests for keyed single-flight and keyed locks."""

import asyncio

import pytest

from postboard.lib.keyed_lock import KeyedLocks, KeyedSingleFlight


class TestKeyedSingleFlight:

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_execution(self):
        flights = KeyedSingleFlight()
        calls = 0
        release = asyncio.Event()

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "done"

        first = asyncio.create_task(flights.run("k", work))
        second = asyncio.create_task(flights.run("k", work))
        await asyncio.sleep(0)
        assert flights.is_running("k")

        release.set()
        assert await asyncio.gather(first, second) == ["done", "done"]
        assert calls == 1
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_independently(self):
        flights = KeyedSingleFlight()
        seen = []

        async def work(key):
            await asyncio.sleep(0)
            seen.append(key)
            return key

        results = await asyncio.gather(
            flights.run("a", lambda: work("a")),
            flights.run("b", lambda: work("b")),
        )
        assert results == ["a", "b"]
        assert sorted(seen) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_sequential_calls_run_again(self):
        flights = KeyedSingleFlight()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return calls

        assert await flights.run("k", work) == 1
        assert await flights.run("k", work) == 2

    @pytest.mark.asyncio
    async def test_exception_propagates_to_every_caller(self):
        flights = KeyedSingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            raise ValueError("boom")

        first = asyncio.create_task(flights.run("k", work))
        second = asyncio.create_task(flights.run("k", work))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_cancelled_leader_does_not_cancel_followers(self):
        """A caller that gives up stops waiting; the shared work and the others carry on."""
        flights = KeyedSingleFlight()
        release = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "done"

        leader = asyncio.create_task(flights.run("k", work))
        follower = asyncio.create_task(flights.run("k", work))
        await asyncio.sleep(0)

        leader.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await follower == "done"
        assert leader.cancelled()
        assert calls == 1
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_work_finishes_when_every_caller_cancels(self):
        flights = KeyedSingleFlight()
        release = asyncio.Event()
        finished = asyncio.Event()

        async def work():
            await release.wait()
            finished.set()
            return "done"

        caller = asyncio.create_task(flights.run("k", work))
        await asyncio.sleep(0)
        caller.cancel()
        await asyncio.sleep(0)

        release.set()
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0)
        assert len(flights) == 0


class TestKeyedLocks:

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        active = 0
        peak = 0

        async def critical():
            nonlocal active, peak
            async with locks.hold("k"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(critical() for _ in range(5)))
        assert peak == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_overlap(self):
        locks = KeyedLocks()
        inside = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                await inside.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        async with locks.hold("b"):
            inside.set()
        await task
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_entry_released_after_exception(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("fail")
        assert len(locks) == 0
