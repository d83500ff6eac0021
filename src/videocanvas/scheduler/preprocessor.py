"""
Video Preprocessor
==================

Bounded two-stage scheduler: every source is downloaded, then processed,
each stage under its own concurrency cap.

Loops (all on one event loop):
    - Dispatch loop: every `dispatch_interval` seconds, run one dispatch
      pass over both queues (evict finished tasks, start new ones, wake
      admission when capacity is free)
    - Admission loop (one per queue): move backlog tasks into the active
      set, parking while the backlog is empty or the queue is full

Errors raised inside any loop are delivered to the error listeners as
SchedulerTaskError and the loop keeps running.

Example:
    preprocessor = VideoPreprocessor(parallel_downloads=4, parallel_process=2)
    preprocessor.add_error_listener(lambda err: logger.error(err))
    preprocessor.start()

    payload = await preprocessor.process(options)

    await preprocessor.stop()
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from videocanvas.errors import SchedulerTaskError
from videocanvas.models.options import VideoCanvasOptions
from videocanvas.scheduler.cache import DownloadCache
from videocanvas.scheduler.queue import BoundedQueue
from videocanvas.scheduler.task import SchedulableTask
from videocanvas.scheduler.tasks import DownloadTask, ProcessTask


logger = logging.getLogger(__name__)


ErrorListener = Callable[[SchedulerTaskError], None]


class VideoPreprocessor:
    """
    Scheduler owning the download and process queues.

    Attributes:
        parallel_downloads: Download queue admission cap
        parallel_process: Process queue admission cap
        dispatch_interval: Seconds between dispatch passes
    """

    def __init__(
        self,
        parallel_downloads: int = 10,
        parallel_process: int = 10,
        dispatch_interval: float = 0.05,
        download_timeout: float = 60.0,
        cache_max_entries: int = 32,
        cache_max_bytes: int = 512 * 1024 * 1024,
    ) -> None:
        """
        Initialize preprocessor. Call start() to run its loops.

        Args:
            parallel_downloads: Maximum concurrent downloads (>= 1)
            parallel_process: Maximum concurrent process tasks (>= 1)
            dispatch_interval: Seconds between dispatch passes (> 0)
            download_timeout: Total timeout of each download task
            cache_max_entries: Download cache entry limit
            cache_max_bytes: Download cache size limit in bytes
        """
        if dispatch_interval <= 0:
            raise ValueError("dispatch_interval must be > 0")

        self.parallel_downloads = parallel_downloads
        self.parallel_process = parallel_process
        self.dispatch_interval = dispatch_interval
        self.download_timeout = download_timeout

        self._download_queue = BoundedQueue("download", parallel_downloads)
        self._process_queue = BoundedQueue("process", parallel_process)
        self._queues: Dict[str, BoundedQueue] = {
            "download": self._download_queue,
            "process": self._process_queue,
        }

        self._listeners: List[ErrorListener] = []
        self._loop_tasks: List[asyncio.Task] = []
        self._running: bool = False
        self._cache = DownloadCache(cache_max_entries, cache_max_bytes)
        self._errors_reported: int = 0
        self._passes: int = 0

    @property
    def running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the dispatch and admission loops on the running loop."""
        if self._running:
            return
        self._running = True
        loop = asyncio.get_running_loop()
        self._loop_tasks = [
            loop.create_task(self._dispatch_loop(), name="dispatch"),
            loop.create_task(
                self._admission_loop(self._download_queue),
                name="admit_download",
            ),
            loop.create_task(
                self._admission_loop(self._process_queue),
                name="admit_process",
            ),
        ]
        logger.info(
            f"VideoPreprocessor started: parallel_downloads={self.parallel_downloads}, "
            f"parallel_process={self.parallel_process}, "
            f"interval={self.dispatch_interval * 1000:.0f}ms"
        )

    async def stop(self) -> None:
        """Stop the loops and cancel every queued or active task."""
        if not self._running:
            return
        logger.info("VideoPreprocessor stopping...")
        self._running = False

        for task in self._loop_tasks:
            task.cancel()
        await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks = []

        dropped = sum(queue.cancel_all() for queue in self._queues.values())
        logger.info(f"VideoPreprocessor stopped ({dropped} tasks dropped)")

    # -------------------------------------------------------------------------
    # Error channel
    # -------------------------------------------------------------------------

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_error(self, error: SchedulerTaskError) -> None:
        self._errors_reported += 1
        if not self._listeners:
            logger.error(f"Scheduler error: {error}")
            return
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"Scheduler error listener failed: {e}")

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def submit(self, task: SchedulableTask, kind: Optional[str] = None) -> None:
        """
        Submit a task to the queue named by `kind` (or `task.kind`).

        Raises:
            ValueError: If the queue kind is unknown
        """
        kind = kind or getattr(task, "kind", None)
        queue = self._queues.get(kind)
        if queue is None:
            raise ValueError(f"Unknown queue kind: {kind!r}")
        queue.submit(task)

    def create_download_task(
        self,
        url: str,
        mask_url: Optional[str] = None,
        retries: int = 2,
        ignore_cache: bool = False,
    ) -> DownloadTask:
        task = DownloadTask(
            url,
            mask_url=mask_url,
            retries=retries,
            ignore_cache=ignore_cache,
            timeout_seconds=self.download_timeout,
            cache=self._cache,
        )
        self._download_queue.submit(task)
        return task

    def create_process_task(
        self,
        options: VideoCanvasOptions,
        buffer: bytes,
        mask_buffer: Optional[bytes] = None,
    ) -> ProcessTask:
        task = ProcessTask(options, buffer, mask_buffer)
        self._process_queue.submit(task)
        return task

    async def process(self, options: VideoCanvasOptions) -> bytes:
        """
        Download and pack one source.

        Args:
            options: Canvas options naming the source

        Returns:
            Packed payload for VideoCanvas.load()

        Raises:
            FetchError: If the download failed
        """
        download = self.create_download_task(
            options.url,
            mask_url=options.mask_url,
            retries=options.retry_fetchs,
            ignore_cache=options.ignore_cache,
        )
        buffer, mask_buffer = await download.wait()

        process = self.create_process_task(options, buffer, mask_buffer)
        return await process.wait()

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    def dispatch_pass(self) -> None:
        """Run one dispatch pass over both queues."""
        self._passes += 1
        for name, queue in self._queues.items():
            try:
                errors = queue.dispatch()
            except Exception as e:
                error = SchedulerTaskError(f"{name} dispatch pass failed: {e}", queue=name)
                error.__cause__ = e
                errors = [error]
            for error in errors:
                self._emit_error(error)

    async def _dispatch_loop(self) -> None:
        while self._running:
            self.dispatch_pass()
            await asyncio.sleep(self.dispatch_interval)

    async def _admission_loop(self, queue: BoundedQueue) -> None:
        while self._running:
            try:
                await queue.admit_next()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = SchedulerTaskError(
                    f"{queue.name} admission failed: {e}",
                    queue=queue.name,
                )
                error.__cause__ = e
                self._emit_error(error)
                await asyncio.sleep(self.dispatch_interval)

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def metrics(self) -> dict:
        """
        Get scheduler metrics for observability.

        Returns:
            Dict with per-queue metrics and scheduler counters
        """
        return {
            "running": self._running,
            "dispatch_passes": self._passes,
            "errors_reported": self._errors_reported,
            "cache": self._cache.metrics(),
            "download": self._download_queue.metrics(),
            "process": self._process_queue.metrics(),
        }
