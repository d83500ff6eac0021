"""
Bounded Queue
=============

One admission-controlled queue: a FIFO backlog feeding an active set
capped at `capacity`.

Two state machines drive it:
    - Admission (admit_one / admit_next): move the backlog head into the
      active set while below capacity, otherwise park on the wake signal
    - Dispatch (dispatch): evict removable tasks, start startable ones,
      then signal the admission side if capacity is free

Design Rules:
    - len(active) <= capacity at all times
    - Backlog order is FIFO; an admitted task never returns to the backlog
    - Only submit() and the owning scheduler's loops mutate the queue
    - A task whose hook raises is evicted and the error is returned to the
      caller; the pass continues with the next task
"""

import asyncio
import logging
from collections import deque
from typing import Deque, List, Tuple

from videocanvas.errors import SchedulerTaskError
from videocanvas.scheduler.task import SchedulableTask


logger = logging.getLogger(__name__)


class BoundedQueue:
    """
    FIFO backlog plus capped active set.

    Attributes:
        name: Queue name ("download" or "process")
        capacity: Maximum number of active tasks

    Example:
        queue = BoundedQueue("download", capacity=2)
        queue.submit(task)
        queue.admit_one()        # task moves into the active set
        errors = queue.dispatch()  # task.start() is called
    """

    def __init__(self, name: str, capacity: int = 10) -> None:
        """
        Initialize queue.

        Args:
            name: Queue name used in logs and errors
            capacity: Admission cap. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.name = name
        self._capacity = capacity
        self._backlog: Deque[SchedulableTask] = deque()
        self._active: List[SchedulableTask] = []
        self._wake = asyncio.Event()

        self._submitted: int = 0
        self._admitted: int = 0
        self._removed: int = 0
        self._evicted: int = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    @property
    def active_size(self) -> int:
        return len(self._active)

    @property
    def has_capacity(self) -> bool:
        return len(self._active) < self._capacity

    def active_tasks(self) -> Tuple[SchedulableTask, ...]:
        """Snapshot of the active set, in admission order."""
        return tuple(self._active)

    def backlog_tasks(self) -> Tuple[SchedulableTask, ...]:
        """Snapshot of the backlog, head first."""
        return tuple(self._backlog)

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    def submit(self, task: SchedulableTask) -> None:
        """Append `task` to the backlog and wake the admission waiter."""
        self._backlog.append(task)
        self._submitted += 1
        self._wake.set()

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def admit_one(self) -> bool:
        """
        Move the backlog head into the active set if there is room.

        Returns:
            True if a task was admitted.
        """
        if not self._backlog or len(self._active) >= self._capacity:
            return False
        task = self._backlog.popleft()
        self._active.append(task)
        self._admitted += 1
        logger.debug(
            f"{self.name}: admitted {task!r} "
            f"({len(self._active)}/{self._capacity} active)"
        )
        return True

    async def admit_next(self) -> SchedulableTask:
        """
        Admit the next backlog task, suspending until that is possible.

        Returns:
            The admitted task.
        """
        while not self.admit_one():
            self._wake.clear()
            await self._wake.wait()
        return self._active[-1]

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self) -> List[SchedulerTaskError]:
        """
        Run one dispatch pass over the active set.

        Returns:
            Errors raised by task hooks during this pass.
        """
        errors: List[SchedulerTaskError] = []
        kept: List[SchedulableTask] = []

        for task in self._active:
            try:
                if task.can_remove():
                    self._removed += 1
                    continue
                if task.can_start():
                    task.start()
            except Exception as e:
                self._evicted += 1
                error = SchedulerTaskError(
                    f"{self.name} task {task!r} failed: {e}",
                    queue=self.name,
                    task=task,
                )
                error.__cause__ = e
                errors.append(error)
                continue
            kept.append(task)

        self._active = kept

        if len(self._active) < self._capacity:
            self._wake.set()

        return errors

    def cancel_all(self) -> int:
        """
        Drop every task, cancelling those that support it.

        Returns:
            Number of tasks dropped.
        """
        tasks = list(self._active) + list(self._backlog)
        self._active.clear()
        self._backlog.clear()
        for task in tasks:
            cancel = getattr(task, "cancel", None)
            if callable(cancel):
                cancel()
        return len(tasks)

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with capacity, sizes and lifetime counters
        """
        return {
            "capacity": self._capacity,
            "active": len(self._active),
            "backlog": len(self._backlog),
            "submitted": self._submitted,
            "admitted": self._admitted,
            "removed": self._removed,
            "evicted": self._evicted,
        }
