"""
Scheduler Module
================

Bounded two-queue task scheduler for video preprocessing.

    - Task: Forward-only task state machine
    - BoundedQueue: Backlog + capped active set
    - DownloadCache: Bounded LRU cache of downloaded media
    - VideoPreprocessor: Download and process queues with dispatch and
      admission loops
"""

from videocanvas.scheduler.cache import DownloadCache
from videocanvas.scheduler.preprocessor import VideoPreprocessor
from videocanvas.scheduler.queue import BoundedQueue
from videocanvas.scheduler.task import SchedulableTask, Task, TaskState
from videocanvas.scheduler.tasks import DownloadTask, ProcessTask


__all__ = [
    "BoundedQueue",
    "DownloadCache",
    "DownloadTask",
    "ProcessTask",
    "SchedulableTask",
    "Task",
    "TaskState",
    "VideoPreprocessor",
]
