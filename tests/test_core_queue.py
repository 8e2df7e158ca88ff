"""Tests for dynamo_connector._core.queue module."""

import asyncio

import pytest

from dynamo_connector._core.queue import SerialRequestQueue


def recorder(log, name, delay=0.0, result=None, error=None):
    """Thunk that logs its start and end around an optional delay."""
    async def run():
        log.append(f"start:{name}")
        await asyncio.sleep(delay)
        log.append(f"end:{name}")
        if error is not None:
            raise error
        return result if result is not None else name
    return run


class TestEnqueue:
    """Tests for SerialRequestQueue.enqueue()."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        queue = SerialRequestQueue()

        assert await queue.enqueue("one", recorder([], "one", result=42)) == 42
        await queue.close()

    @pytest.mark.asyncio
    async def test_raises_task_error(self):
        queue = SerialRequestQueue()

        with pytest.raises(ValueError, match="bad path"):
            await queue.enqueue("folder", recorder([], "folder", error=ValueError("bad path")))
        await queue.close()

    @pytest.mark.asyncio
    async def test_fifo_without_interleaving(self):
        queue = SerialRequestQueue()
        log = []

        # Later tasks are faster; they must still wait their turn
        delays = [0.05, 0.01, 0.03, 0.0, 0.02]
        results = await asyncio.gather(*(
            queue.enqueue(f"t{i}", recorder(log, f"t{i}", delay))
            for i, delay in enumerate(delays)
        ))

        assert results == ["t0", "t1", "t2", "t3", "t4"]
        expected = []
        for i in range(len(delays)):
            expected += [f"start:t{i}", f"end:t{i}"]
        assert log == expected
        await queue.close()

    @pytest.mark.asyncio
    async def test_failure_does_not_poison_queue(self):
        queue = SerialRequestQueue()
        log = []

        results = await asyncio.gather(
            queue.enqueue("a", recorder(log, "a", 0.01)),
            queue.enqueue("b", recorder(log, "b", 0.01, error=RuntimeError("boom"))),
            queue.enqueue("c", recorder(log, "c", 0.01)),
            return_exceptions=True,
        )

        assert results[0] == "a"
        assert isinstance(results[1], RuntimeError)
        assert results[2] == "c"
        assert log == ["start:a", "end:a", "start:b", "end:b", "start:c", "end:c"]
        await queue.close()

    @pytest.mark.asyncio
    async def test_concurrent_callers_from_separate_tasks(self):
        queue = SerialRequestQueue()
        log = []
        running = {"now": 0, "max": 0}

        async def tracked(name):
            running["now"] += 1
            running["max"] = max(running["max"], running["now"])
            await asyncio.sleep(0.005)
            running["now"] -= 1
            log.append(name)
            return name

        async def caller(i):
            return await queue.enqueue(f"c{i}", lambda: tracked(f"c{i}"))

        tasks = [asyncio.create_task(caller(i)) for i in range(8)]
        await asyncio.gather(*tasks)

        assert running["max"] == 1
        assert log == [f"c{i}" for i in range(8)]
        await queue.close()

    @pytest.mark.asyncio
    async def test_usable_again_after_all_settled(self):
        queue = SerialRequestQueue()

        await queue.enqueue("first", recorder([], "first"))
        await queue.join()

        assert await queue.enqueue("second", recorder([], "second")) == "second"
        assert queue.pending == 0
        await queue.close()


class TestCancellation:
    """Tests for callers that stop waiting."""

    @pytest.mark.asyncio
    async def test_skips_task_whose_caller_timed_out(self):
        queue = SerialRequestQueue()
        log = []

        slow = asyncio.create_task(queue.enqueue("slow", recorder(log, "slow", 0.1)))
        await asyncio.sleep(0)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                queue.enqueue("abandoned", recorder(log, "abandoned")),
                timeout=0.02,
            )

        assert await slow == "slow"
        assert await queue.enqueue("after", recorder(log, "after")) == "after"
        assert "start:abandoned" not in log
        await queue.close()

    @pytest.mark.asyncio
    async def test_started_task_runs_to_completion(self):
        queue = SerialRequestQueue()
        log = []

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                queue.enqueue("run", recorder(log, "run", 0.05)),
                timeout=0.01,
            )
        await queue.join()

        assert log == ["start:run", "end:run"]
        await queue.close()

    @pytest.mark.asyncio
    async def test_close_cancels_waiting_tasks(self):
        queue = SerialRequestQueue()

        first = asyncio.create_task(queue.enqueue("first", recorder([], "first", 1.0)))
        second = asyncio.create_task(queue.enqueue("second", recorder([], "second")))
        await asyncio.sleep(0.01)

        await queue.close()

        for task in (first, second):
            with pytest.raises(asyncio.CancelledError):
                await task

    @pytest.mark.asyncio
    async def test_enqueue_after_close_raises(self):
        queue = SerialRequestQueue()
        await queue.close()

        with pytest.raises(RuntimeError, match="closed"):
            await queue.enqueue("late", recorder([], "late"))

    @pytest.mark.asyncio
    async def test_open_after_close_accepts_tasks(self):
        queue = SerialRequestQueue()
        await queue.enqueue("before", recorder([], "before"))
        await queue.close()

        queue.open()

        assert await queue.enqueue("after", recorder([], "after")) == "after"
        await queue.close()
