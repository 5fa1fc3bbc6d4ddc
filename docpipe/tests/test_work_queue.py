"""Tests for the bounded in-process work queue."""

import asyncio

import pytest

from docpipe.core.errors import QueueSaturated, UnknownHandleError
from docpipe.core.work_queue import WorkQueue, WorkResult, WorkStatus


@pytest.fixture
async def queue():
    q = WorkQueue(max_parallelism=3, max_queue_depth=100)
    await q.start()
    yield q
    await q.stop(drain=False)


class TestWorkQueue:
    async def test_runs_handler_and_reports_result(self, queue: WorkQueue):
        async def double(x):
            return x * 2

        handle = queue.enqueue(double, 21)
        result = await queue.wait(handle)

        assert result.status is WorkStatus.SUCCEEDED
        assert result.value == 42
        assert queue.status(handle) is WorkStatus.SUCCEEDED
        assert queue.result(handle) == result

    @pytest.mark.parametrize("max_parallelism", [1, 2, 5])
    async def test_never_exceeds_max_parallelism(self, max_parallelism):
        queue = WorkQueue(max_parallelism=max_parallelism, max_queue_depth=100)
        await queue.start()
        running = 0
        peak = 0

        async def handler():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        handles = [queue.enqueue(handler) for _ in range(10)]
        await asyncio.gather(*(queue.wait(h) for h in handles))

        assert peak == max_parallelism
        assert all(queue.status(h) is WorkStatus.SUCCEEDED for h in handles)
        await queue.stop()

    async def test_failing_handler_does_not_block_the_pool(self):
        queue = WorkQueue(max_parallelism=1)
        await queue.start()

        async def boom():
            raise RuntimeError("Corrupt file")

        async def ok():
            return "ok"

        failed = queue.enqueue(boom)
        succeeded = queue.enqueue(ok)

        assert (await queue.wait(failed)).error == "Corrupt file"
        assert queue.status(failed) is WorkStatus.FAILED
        assert (await queue.wait(succeeded)).value == "ok"
        await queue.stop()

    async def test_error_without_message_uses_type_name(self, queue: WorkQueue):
        async def boom():
            raise KeyError()

        handle = queue.enqueue(boom)
        assert (await queue.wait(handle)).error == "KeyError"

    async def test_on_complete_fires_exactly_once(self, queue: WorkQueue):
        calls: list[WorkResult] = []

        async def on_complete(result):
            calls.append(result)

        async def handler():
            return "done"

        handle = queue.enqueue(handler, on_complete=on_complete)
        result = await queue.wait(handle)

        # A duplicate completion signal for the same handle is ignored
        assert await queue.complete(handle, WorkResult(handle=handle, status=WorkStatus.FAILED, error="late")) is False

        assert calls == [result]
        assert queue.status(handle) is WorkStatus.SUCCEEDED

    async def test_sync_on_complete_hook_is_supported(self, queue: WorkQueue):
        calls = []

        async def handler():
            return 1

        handle = queue.enqueue(handler, on_complete=calls.append)
        await queue.wait(handle)
        assert len(calls) == 1

    async def test_failing_hook_does_not_break_the_queue(self, queue: WorkQueue):
        def bad_hook(result):
            raise ValueError("hook broke")

        async def handler():
            return 1

        first = queue.enqueue(handler, on_complete=bad_hook)
        second = queue.enqueue(handler)

        assert (await queue.wait(first)).status is WorkStatus.SUCCEEDED
        assert (await queue.wait(second)).status is WorkStatus.SUCCEEDED

    async def test_enqueue_raises_when_saturated(self):
        queue = WorkQueue(max_parallelism=1, max_queue_depth=2)

        async def handler():
            return None

        # Workers are not started, so nothing drains the admission queue
        queue.enqueue(handler)
        queue.enqueue(handler)
        with pytest.raises(QueueSaturated):
            queue.enqueue(handler)

        await queue.start()
        await queue.join()
        await queue.stop()

    async def test_cancel_only_affects_pending_items(self):
        queue = WorkQueue(max_parallelism=1)
        await queue.start()
        release = asyncio.Event()
        hook_calls = []
        ran = []

        async def blocker():
            await release.wait()

        async def victim():
            ran.append(True)

        running = queue.enqueue(blocker)
        pending = queue.enqueue(victim, on_complete=hook_calls.append)
        await asyncio.sleep(0.01)  # let the worker pick up the blocker

        assert queue.status(running) is WorkStatus.RUNNING
        assert await queue.cancel(running) is False
        assert await queue.cancel(pending) is True
        assert await queue.cancel(pending) is False

        release.set()
        await queue.join()

        assert queue.status(pending) is WorkStatus.CANCELED
        assert ran == []
        assert [r.status for r in hook_calls] == [WorkStatus.CANCELED]
        assert queue.status(running) is WorkStatus.SUCCEEDED
        await queue.stop()

    async def test_custom_handle(self, queue: WorkQueue):
        async def handler():
            return None

        assert queue.enqueue(handler, handle="abc") == "abc"
        with pytest.raises(ValueError):
            queue.enqueue(handler, handle="abc")
        await queue.wait("abc")

    async def test_unknown_handle(self, queue: WorkQueue):
        with pytest.raises(UnknownHandleError):
            queue.status("nope")

    async def test_forget_requires_terminal_status(self, queue: WorkQueue):
        async def handler():
            return None

        handle = queue.enqueue(handler)
        await queue.wait(handle)
        queue.forget(handle)
        with pytest.raises(UnknownHandleError):
            queue.status(handle)

    async def test_stop_with_drain_runs_admitted_items(self):
        queue = WorkQueue(max_parallelism=2)
        await queue.start()
        done = []

        async def handler(i):
            await asyncio.sleep(0)
            done.append(i)

        for i in range(5):
            queue.enqueue(handler, i)
        await queue.stop(drain=True)

        assert sorted(done) == [0, 1, 2, 3, 4]
        assert not queue.started

    async def test_finished_items_are_evicted_beyond_retention(self):
        queue = WorkQueue(max_parallelism=2, max_retained=5)
        await queue.start()

        async def handler(i):
            return i

        handles = []
        for i in range(30):
            handle = queue.enqueue(handler, i)
            await queue.wait(handle)
            handles.append(handle)

        assert len(queue._items) == 5
        assert [queue.result(h).value for h in handles[-5:]] == [25, 26, 27, 28, 29]
        with pytest.raises(UnknownHandleError):
            queue.status(handles[0])
        # A late completion for an evicted handle is ignored
        assert await queue.complete(handles[0], WorkResult(handle=handles[0], status=WorkStatus.FAILED)) is False
        await queue.stop()

    async def test_forgotten_handle_can_be_reused(self, queue: WorkQueue):
        async def handler():
            return None

        queue.enqueue(handler, handle="again")
        await queue.wait("again")
        queue.forget("again")

        queue.enqueue(handler, handle="again")
        assert (await queue.wait("again")).status is WorkStatus.SUCCEEDED
