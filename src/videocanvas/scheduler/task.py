"""
Schedulable Tasks
=================

Task contract and the base Task state machine.

The scheduler only ever talks to a task through three members:
    - can_start(): may start() be called now?
    - start():     begin work (returns immediately)
    - can_remove(): has the task reached a terminal state?

State Machine (forward-only, never re-enters QUEUED):
    QUEUED → ACTIVE → COMPLETED
                    → FAILED
    QUEUED / ACTIVE → CANCELLED
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Protocol


logger = logging.getLogger(__name__)


class SchedulableTask(Protocol):
    """Anything the scheduler can run."""

    def can_start(self) -> bool: ...

    def start(self) -> None: ...

    def can_remove(self) -> bool: ...


class TaskState(str, Enum):
    """Lifecycle states of a Task."""

    QUEUED = "QUEUED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


_TRANSITIONS: Dict[TaskState, FrozenSet[TaskState]] = {
    TaskState.QUEUED: frozenset({TaskState.ACTIVE, TaskState.CANCELLED}),
    TaskState.ACTIVE: frozenset({
        TaskState.COMPLETED,
        TaskState.FAILED,
        TaskState.CANCELLED,
    }),
    TaskState.COMPLETED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({
    TaskState.COMPLETED,
    TaskState.FAILED,
    TaskState.CANCELLED,
})

_task_ids = itertools.count(1)


class InvalidTransitionError(RuntimeError):
    """Raised when a task is moved backwards in its lifecycle."""
    pass


class Task:
    """
    Base class for asynchronous scheduler tasks.

    Subclasses implement `run()`. The result of `run()` (or the exception
    it raised) is exposed through `wait()`.

    Attributes:
        task_id: Process-unique task number
        kind: Queue the task belongs to ("download" or "process")
        error: Exception raised by run(), if it failed

    Example:
        class Sleep(Task):
            kind = "process"

            async def run(self):
                await asyncio.sleep(1)
                return "done"
    """

    kind: str = "task"

    def __init__(self, name: Optional[str] = None) -> None:
        self.task_id = next(_task_ids)
        self.name = name or f"{self.kind}-{self.task_id}"
        self.error: Optional[BaseException] = None

        self._state = TaskState.QUEUED
        self._result: Any = None
        self._runner: Optional[asyncio.Task] = None
        self._done = asyncio.Event()

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state in TERMINAL_STATES

    # -------------------------------------------------------------------------
    # Scheduler contract
    # -------------------------------------------------------------------------

    def can_start(self) -> bool:
        return self._state is TaskState.QUEUED

    def start(self) -> None:
        """Start run() on the running event loop. No-op unless QUEUED."""
        if not self.can_start():
            return
        self._transition(TaskState.ACTIVE)
        self._runner = asyncio.get_running_loop().create_task(
            self._execute(),
            name=self.name,
        )

    def can_remove(self) -> bool:
        return self.done

    # -------------------------------------------------------------------------
    # Producer API
    # -------------------------------------------------------------------------

    async def wait(self) -> Any:
        """
        Wait for the task to finish.

        Returns:
            The value returned by run()

        Raises:
            The exception raised by run(), or asyncio.CancelledError
        """
        await self._done.wait()
        if self._state is TaskState.CANCELLED:
            raise asyncio.CancelledError(f"{self.name} was cancelled")
        if self.error is not None:
            raise self.error
        return self._result

    def cancel(self) -> None:
        """Cancel the task, whether queued or running."""
        if self.done:
            return
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
        self._finish(TaskState.CANCELLED)

    async def run(self) -> Any:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _execute(self) -> None:
        try:
            result = await self.run()
        except asyncio.CancelledError:
            if not self.done:
                self._finish(TaskState.CANCELLED)
            raise
        except Exception as e:
            logger.warning(f"Task {self.name} failed: {e}")
            self.error = e
            self._finish(TaskState.FAILED)
        else:
            self._result = result
            self._finish(TaskState.COMPLETED)

    def _finish(self, state: TaskState) -> None:
        if self.done:
            return
        self._transition(state)
        self._done.set()

    def _transition(self, state: TaskState) -> None:
        if state not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"{self.name}: {self._state.value} -> {state.value} is not allowed"
            )
        logger.debug(f"Task {self.name}: {self._state.value} -> {state.value}")
        self._state = state

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, state={self._state.value})"
