"""
Error Types
===========

Typed failures raised by the frame pipeline and the task scheduler.

Propagation:
    - Load-time errors (FormatError, DemuxError, DemuxTimeoutError,
      UnsupportedConfigError, ConfigMismatchError, FetchError) are caught
      by VideoCanvas.load(), which tears the stream down and returns False.
    - Seek-time errors (FrameTimeoutError, FrameReleasedError,
      ConcurrentAcquireError) propagate from VideoCanvas.seek() and leave
      the stream usable.
    - DecodeError is reported asynchronously through the decoder's error
      callback and never halts the frame table.
    - SchedulerTaskError is delivered to the scheduler's error listeners;
      the dispatch and admission loops keep running.
"""

from typing import Optional


class VideoCanvasError(Exception):
    """Base class for all videocanvas errors."""
    pass


class FormatError(VideoCanvasError):
    """Raised when a packed wire payload is malformed."""
    pass


class FetchError(VideoCanvasError):
    """Raised when the packed payload cannot be fetched."""
    pass


class DemuxError(VideoCanvasError):
    """Raised when the demuxer reports an error before emitting a config."""
    pass


class DemuxTimeoutError(VideoCanvasError, TimeoutError):
    """Raised when no decode configuration arrives within the timeout."""
    pass


class UnsupportedConfigError(VideoCanvasError):
    """Raised when the decoding service rejects a negotiated configuration."""
    pass


class ConfigMismatchError(VideoCanvasError):
    """Raised when the mask stream configuration disagrees with the base."""
    pass


class DecodeError(VideoCanvasError):
    """Reported by the decoding service when a chunk fails to decode."""
    pass


class FrameTimeoutError(VideoCanvasError, TimeoutError):
    """Raised when a requested frame is not decoded within the timeout."""

    def __init__(self, stream: str, index: int, timeout: float) -> None:
        self.stream = stream
        self.index = index
        self.timeout = timeout
        super().__init__(
            f"Acquire {stream} frame {index} timeout ({timeout:g}s)"
        )


class FrameReleasedError(VideoCanvasError):
    """Raised when a frame was already decoded, consumed and released."""
    pass


class ConcurrentAcquireError(VideoCanvasError):
    """Raised when a second acquire is issued while one is still pending."""
    pass


class SchedulerTaskError(VideoCanvasError):
    """
    Error raised inside a scheduler loop.

    Attributes:
        queue: Name of the queue whose pass failed ("download" or "process")
        task: Task whose hook raised, if the failure is task-specific
    """

    def __init__(
        self,
        message: str,
        queue: Optional[str] = None,
        task: Optional[object] = None,
    ) -> None:
        self.queue = queue
        self.task = task
        super().__init__(message)
