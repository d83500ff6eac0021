"""
Frame Table
===========

Index-addressed store of decoded frames for one stream.

This module provides the FrameTable class, which sits between the
decoding service (producer) and VideoCanvas.seek() (consumer). The
decoder pushes frames through on_frame() in arrival order; callers pull
frame N through acquire(N), suspending until it arrives if necessary.

Design Rules:
    - Frames are indexed by arrival sequence, never by timestamp
    - A slot is written once, read once, then released and cleared
    - At most one caller may be parked per table (callers serialize seeks)
    - A timed-out wait is retired before the error is raised, so a late
      frame can never resolve it
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from videocanvas.errors import (
    ConcurrentAcquireError,
    FrameReleasedError,
    FrameTimeoutError,
)
from videocanvas.stream.frame import DecodedFrame


logger = logging.getLogger(__name__)


DEFAULT_ACQUIRE_TIMEOUT = 30.0


@dataclass
class PendingWait:
    """A caller parked on a frame that has not been decoded yet."""

    index: int
    future: "asyncio.Future[DecodedFrame]"


class FrameTable:
    """
    Fixed-capacity index -> DecodedFrame mapping with a single wait slot.

    Attributes:
        name: Stream name used in logs and errors ("video", "mask")
        capacity: Number of slots (the stream's frame count)
        decoded_index: Index the next arriving frame will receive

    Example:
        table = FrameTable(capacity=config.frame_count, name="video")
        decoder = AVDecoder(output=table.on_frame, error=on_error)

        frame = await table.acquire(12)
        draw(frame)
        table.release(12)
    """

    def __init__(self, capacity: int, name: str = "video") -> None:
        """
        Initialize frame table.

        Args:
            capacity: Number of frames in the stream. Must be >= 1.
            name: Stream name for logs and errors
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.name = name
        self._capacity = capacity
        self._slots: List[Optional[DecodedFrame]] = [None] * capacity
        self._decoded_index: int = 0
        self._wait: Optional[PendingWait] = None
        self._overflow_count: int = 0

    @property
    def capacity(self) -> int:
        """Number of slots."""
        return self._capacity

    @property
    def decoded_index(self) -> int:
        """Index that will be assigned to the next arriving frame."""
        return self._decoded_index

    @property
    def waiting(self) -> bool:
        """Whether a caller is currently parked."""
        return self._wait is not None

    def has_frame(self, index: int) -> bool:
        """Whether slot `index` currently holds a frame."""
        return 0 <= index < self._capacity and self._slots[index] is not None

    def on_frame(self, frame: DecodedFrame) -> None:
        """
        Store a newly decoded frame.

        Called by the decoding service, in decode output order.

        Args:
            frame: Decoded frame; ownership passes to the table
        """
        index = self._decoded_index
        self._decoded_index += 1
        frame.index = index

        if index >= self._capacity:
            # Container under-reported its frame count
            self._overflow_count += 1
            if self._overflow_count == 1:
                logger.warning(
                    f"{self.name} frame {index} exceeds table capacity "
                    f"{self._capacity}, releasing"
                )
            frame.close()
            return

        self._slots[index] = frame

        wait = self._wait
        if wait is not None and wait.index == index:
            self._wait = None
            if not wait.future.done():
                wait.future.set_result(frame)

    async def acquire(
        self,
        index: int,
        timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ) -> DecodedFrame:
        """
        Get frame `index`, waiting for the decoder if necessary.

        Args:
            index: Frame index in [0, capacity)
            timeout: Maximum seconds to wait for the frame

        Returns:
            The decoded frame. The caller owns it and must release() it.

        Raises:
            IndexError: If index is outside the table
            FrameReleasedError: If the frame was already consumed
            ConcurrentAcquireError: If another acquire is still pending
            FrameTimeoutError: If the frame does not arrive in time
        """
        if not 0 <= index < self._capacity:
            raise IndexError(
                f"{self.name} frame index {index} out of range [0, {self._capacity})"
            )

        frame = self._slots[index]
        if frame is not None:
            return frame

        if index < self._decoded_index:
            raise FrameReleasedError(
                f"{self.name} frame {index} was already released"
            )

        if self._wait is not None:
            raise ConcurrentAcquireError(
                f"{self.name} frame {self._wait.index} is already being awaited"
            )

        wait = PendingWait(
            index=index,
            future=asyncio.get_running_loop().create_future(),
        )
        self._wait = wait
        try:
            return await asyncio.wait_for(wait.future, timeout=timeout)
        except asyncio.TimeoutError:
            raise FrameTimeoutError(self.name, index, timeout) from None
        finally:
            if self._wait is wait:
                self._wait = None

    def release(self, index: int) -> None:
        """
        Release frame `index` and clear its slot.

        Args:
            index: Frame index previously returned by acquire()
        """
        if not 0 <= index < self._capacity:
            return
        frame = self._slots[index]
        self._slots[index] = None
        if frame is not None:
            frame.close()

    def clear(self) -> int:
        """
        Release every stored frame and retire any pending wait.

        Returns:
            Number of frames released.
        """
        released = 0
        for index, frame in enumerate(self._slots):
            if frame is not None:
                frame.close()
                self._slots[index] = None
                released += 1

        wait = self._wait
        self._wait = None
        if wait is not None and not wait.future.done():
            wait.future.set_exception(
                FrameReleasedError(f"{self.name} frame table was cleared")
            )

        return released

    def metrics(self) -> dict:
        """
        Get table metrics for observability.

        Returns:
            Dict with capacity, decoded_index, stored, waiting, overflow
        """
        return {
            "capacity": self._capacity,
            "decoded_index": self._decoded_index,
            "stored": sum(1 for frame in self._slots if frame is not None),
            "waiting": self._wait.index if self._wait else None,
            "overflow": self._overflow_count,
        }
