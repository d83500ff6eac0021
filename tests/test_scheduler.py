"""
Scheduler Tests
===============
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from videocanvas.errors import FetchError, SchedulerTaskError
from videocanvas.models.options import VideoCanvasOptions
from videocanvas.scheduler.cache import DownloadCache
from videocanvas.scheduler.preprocessor import VideoPreprocessor
from videocanvas.scheduler.queue import BoundedQueue
from videocanvas.scheduler.task import InvalidTransitionError, Task, TaskState
from videocanvas.scheduler.tasks import DownloadTask, ProcessTask
from videocanvas.stream.payload import unpack_payload


class StubTask:
    """Synchronous task honouring the scheduler contract."""

    def __init__(self, name, fail_on_start=False):
        self.name = name
        self.started = 0
        self.finished = False
        self.fail_on_start = fail_on_start

    def can_start(self):
        return self.started == 0

    def start(self):
        if self.fail_on_start:
            raise RuntimeError(f"{self.name} cannot start")
        self.started += 1

    def can_remove(self):
        return self.finished

    def __repr__(self):
        return self.name


class GatedTask(Task):
    """Task that completes when its gate is opened."""

    kind = "process"

    def __init__(self, name):
        super().__init__(name=name)
        self.gate = asyncio.Event()

    async def run(self):
        await self.gate.wait()
        return self.name


class ValueTask(Task):
    kind = "process"

    def __init__(self, value=None, error=None):
        super().__init__()
        self.value = value
        self.raises = error

    async def run(self):
        if self.raises is not None:
            raise self.raises
        return self.value


class TestBoundedQueue:
    """Tests for admission and dispatch of a single queue."""

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BoundedQueue("download", capacity=0)

    def test_cap_plus_k(self):
        """cap + k submissions leave cap active and k backlogged."""
        queue = BoundedQueue("download", capacity=3)
        tasks = [StubTask(f"T{i}") for i in range(1, 6)]
        for task in tasks:
            queue.submit(task)
        while queue.admit_one():
            pass

        assert queue.active_tasks() == tuple(tasks[:3])
        assert queue.backlog_tasks() == tuple(tasks[3:])
        assert not queue.has_capacity

    def test_two_slot_rotation(self):
        """T1 finishing lets T3 in; T4 stays backlogged."""
        queue = BoundedQueue("process", capacity=2)
        t1, t2, t3, t4 = tasks = [StubTask(f"T{i}") for i in range(1, 5)]
        for task in tasks:
            queue.submit(task)
        while queue.admit_one():
            pass
        assert queue.dispatch() == []
        assert queue.active_tasks() == (t1, t2)
        assert (t1.started, t2.started) == (1, 1)

        t1.finished = True
        queue.dispatch()
        assert queue.admit_one()
        assert not queue.admit_one()
        queue.dispatch()

        assert queue.active_tasks() == (t2, t3)
        assert queue.backlog_tasks() == (t4,)
        assert t3.started == 1
        assert t2.started == 1
        assert t4.started == 0

    def test_fifo_admission(self):
        queue = BoundedQueue("download", capacity=1)
        tasks = [StubTask(f"T{i}") for i in range(1, 4)]
        for task in tasks:
            queue.submit(task)

        admitted = []
        for _ in tasks:
            assert queue.admit_one()
            admitted.append(queue.active_tasks()[0])
            queue.active_tasks()[0].finished = True
            queue.dispatch()
        assert admitted == tasks

    def test_failing_hook_evicts_task(self):
        """A task whose hook raises is reported and evicted; others proceed."""
        queue = BoundedQueue("process", capacity=2)
        bad = StubTask("bad", fail_on_start=True)
        good = StubTask("good")
        queue.submit(bad)
        queue.submit(good)
        queue.admit_one()
        queue.admit_one()

        errors = queue.dispatch()

        assert len(errors) == 1
        assert errors[0].queue == "process"
        assert errors[0].task is bad
        assert isinstance(errors[0].__cause__, RuntimeError)
        assert queue.active_tasks() == (good,)
        assert good.started == 1
        assert queue.metrics()["evicted"] == 1

    def test_admit_next_waits_for_submit(self):
        queue = BoundedQueue("download", capacity=1)
        task = StubTask("late")

        async def scenario():
            waiter = asyncio.ensure_future(queue.admit_next())
            await asyncio.sleep(0.01)
            assert not waiter.done()
            queue.submit(task)
            return await asyncio.wait_for(waiter, timeout=1.0)

        assert asyncio.run(scenario()) is task

    def test_cancel_all(self):
        queue = BoundedQueue("process", capacity=1)
        queue.submit(StubTask("a"))
        queue.submit(StubTask("b"))
        queue.admit_one()
        assert queue.cancel_all() == 2
        assert queue.metrics()["active"] == 0
        assert queue.metrics()["backlog"] == 0


class TestTask:
    """Tests for the task state machine."""

    def test_completes(self):
        async def scenario():
            task = ValueTask(value=42)
            task.start()
            task.start()
            return task, await task.wait()

        task, result = asyncio.run(scenario())
        assert result == 42
        assert task.state is TaskState.COMPLETED
        assert task.can_remove()
        assert not task.can_start()

    def test_failure_propagates(self):
        async def scenario():
            task = ValueTask(error=ValueError("bad source"))
            task.start()
            with pytest.raises(ValueError):
                await task.wait()
            return task

        task = asyncio.run(scenario())
        assert task.state is TaskState.FAILED
        assert isinstance(task.error, ValueError)

    def test_cancel_queued(self):
        async def scenario():
            task = ValueTask(value=1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task.wait()
            return task

        task = asyncio.run(scenario())
        assert task.state is TaskState.CANCELLED
        assert not task.can_start()

    def test_no_backward_transition(self):
        async def scenario():
            task = ValueTask(value=1)
            task.start()
            await task.wait()
            return task

        task = asyncio.run(scenario())
        with pytest.raises(InvalidTransitionError):
            task._transition(TaskState.QUEUED)

    def test_default_names(self):
        task = ValueTask()
        assert task.name == f"process-{task.task_id}"


class TestVideoPreprocessor:
    """Tests for the running scheduler loops."""

    def test_rejects_bad_interval(self):
        with pytest.raises(ValueError):
            VideoPreprocessor(dispatch_interval=0)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            VideoPreprocessor().submit(StubTask("x"), kind="upload")

    def test_live_rotation(self):
        """With cap=2, finishing T1 activates T3 and keeps T4 queued."""
        async def scenario():
            preprocessor = VideoPreprocessor(parallel_process=2, dispatch_interval=0.005)
            preprocessor.start()
            tasks = [GatedTask(f"T{i}") for i in range(1, 5)]
            for task in tasks:
                preprocessor.submit(task)
            await asyncio.sleep(0.05)
            before = [task.state for task in tasks]
            metrics_before = preprocessor.metrics()["process"]

            tasks[0].gate.set()
            assert await tasks[0].wait() == "T1"
            await asyncio.sleep(0.05)
            after = [task.state for task in tasks]
            metrics_after = preprocessor.metrics()["process"]

            await preprocessor.stop()
            return before, metrics_before, after, metrics_after, tasks

        before, metrics_before, after, metrics_after, tasks = asyncio.run(scenario())
        assert before == [TaskState.ACTIVE, TaskState.ACTIVE, TaskState.QUEUED, TaskState.QUEUED]
        assert (metrics_before["active"], metrics_before["backlog"]) == (2, 2)
        assert after == [TaskState.COMPLETED, TaskState.ACTIVE, TaskState.ACTIVE, TaskState.QUEUED]
        assert (metrics_after["active"], metrics_after["backlog"]) == (2, 1)
        assert tasks[3].state is TaskState.CANCELLED

    def test_errors_reach_listeners(self):
        """A failing task is reported and the loops keep running."""
        received = []

        async def scenario():
            preprocessor = VideoPreprocessor(dispatch_interval=0.005)
            preprocessor.add_error_listener(received.append)
            preprocessor.start()
            preprocessor.submit(StubTask("bad", fail_on_start=True), kind="download")
            good = ValueTask(value="ok")
            preprocessor.submit(good)
            result = await asyncio.wait_for(good.wait(), timeout=1.0)
            running = preprocessor.running
            await preprocessor.stop()
            return result, running

        result, running = asyncio.run(scenario())
        assert result == "ok"
        assert running
        assert len(received) == 1
        assert isinstance(received[0], SchedulerTaskError)
        assert received[0].queue == "download"


def _media_app():
    app = web.Application()

    async def clip(request):
        return web.Response(body=b"video-bytes")

    async def mask(request):
        return web.Response(body=b"mask-bytes")

    app.router.add_get("/clip.mp4", clip)
    app.router.add_get("/mask.mp4", mask)
    return app


class TestPreprocessTasks:
    """Tests for download and packing."""

    def test_process_end_to_end(self):
        """process() downloads both sources and packs them."""
        async def scenario():
            server = test_utils.TestServer(_media_app())
            await server.start_server()
            preprocessor = VideoPreprocessor(dispatch_interval=0.005)
            preprocessor.start()
            try:
                options = VideoCanvasOptions(
                    url=str(server.make_url("/clip.mp4")),
                    mask_url=str(server.make_url("/mask.mp4")),
                    start_time=0,
                    end_time=1000,
                )
                payload = await asyncio.wait_for(preprocessor.process(options), timeout=5.0)
                return payload, options, preprocessor.metrics()
            finally:
                await preprocessor.stop()
                await server.close()

        payload, options, metrics = asyncio.run(scenario())
        obj = unpack_payload(payload)
        assert obj == {
            "url": options.url,
            "hasMask": True,
            "buffer": b"video-bytes",
            "maskBuffer": b"mask-bytes",
        }
        assert metrics["cache"]["entries"] == 2

    def test_download_failure(self):
        async def scenario():
            server = test_utils.TestServer(_media_app())
            await server.start_server()
            preprocessor = VideoPreprocessor(dispatch_interval=0.005)
            preprocessor.start()
            try:
                options = VideoCanvasOptions(
                    url=str(server.make_url("/missing.mp4")),
                    start_time=0,
                    end_time=1000,
                    retry_fetchs=0,
                )
                with pytest.raises(FetchError):
                    await asyncio.wait_for(preprocessor.process(options), timeout=5.0)
            finally:
                await preprocessor.stop()
                await server.close()

        asyncio.run(scenario())

    def test_download_cache(self):
        """Cached sources are served without a request."""
        cache = DownloadCache()
        cache.put("https://cdn.example.com/a.mp4", b"cached")

        async def scenario():
            task = DownloadTask("https://cdn.example.com/a.mp4", cache=cache)
            return await task.run()

        assert asyncio.run(scenario()) == (b"cached", None)

    def test_process_task_without_mask(self, canvas_options):
        async def scenario():
            return await ProcessTask(canvas_options, b"video").run()

        obj = unpack_payload(asyncio.run(scenario()))
        assert obj == {"url": canvas_options.url, "hasMask": False, "buffer": b"video"}

    def test_ignore_cache_skips_write(self):
        """Downloads with ignore_cache neither read nor fill the cache."""
        cache = DownloadCache()

        async def scenario():
            server = test_utils.TestServer(_media_app())
            await server.start_server()
            try:
                url = str(server.make_url("/clip.mp4"))
                cache.put(url, b"stale")
                task = DownloadTask(url, ignore_cache=True, cache=cache)
                fresh = await task.run()
                cache.clear()
                task = DownloadTask(url, ignore_cache=True, cache=cache)
                await task.run()
                return fresh
            finally:
                await server.close()

        assert asyncio.run(scenario()) == (b"video-bytes", None)
        assert len(cache) == 0


class TestDownloadCache:
    """Tests for the bounded download cache."""

    def test_invalid_limits(self):
        with pytest.raises(ValueError):
            DownloadCache(max_entries=0)

    def test_evicts_least_recently_used(self):
        cache = DownloadCache(max_entries=2)
        cache.put("a", b"1")
        cache.put("b", b"2")
        assert cache.get("a") == b"1"
        cache.put("c", b"3")

        assert "b" not in cache
        assert "a" in cache and "c" in cache
        assert cache.metrics()["evictions"] == 1

    def test_byte_limit(self):
        cache = DownloadCache(max_entries=10, max_bytes=10)
        cache.put("a", b"x" * 4)
        cache.put("b", b"x" * 4)
        cache.put("c", b"x" * 4)

        assert "a" not in cache
        assert len(cache) == 2
        assert cache.total_bytes == 8

    def test_oversized_body_not_cached(self):
        cache = DownloadCache(max_bytes=4)
        cache.put("big", b"x" * 5)
        assert len(cache) == 0
        assert cache.get("big") is None

    def test_replace_entry(self):
        cache = DownloadCache(max_bytes=10)
        cache.put("a", b"x" * 6)
        cache.put("a", b"x" * 3)
        assert cache.total_bytes == 3
        assert len(cache) == 1
