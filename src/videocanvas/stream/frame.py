"""
Frame Data Model
=================

Frame and chunk representations passed across the decoding boundary.

Types:
    - EncodedChunk: One coded access unit emitted by a demuxer
    - DecodedFrame: One decoded RGB image emitted by a decoding service

Design Rules:
    - A DecodedFrame has exactly one owner at a time
    - The owner MUST call close() after drawing it; closing returns the
      pixel payload to the decoding service (or drops it for collection)
    - index is assigned by FrameTable on arrival, not by the decoder
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EncodedChunk:
    """
    One coded chunk produced by a demuxer.

    Attributes:
        data: Coded bytes for a single access unit
        pts: Presentation timestamp in stream time base units
        dts: Decode timestamp in stream time base units
        key: Whether the chunk is a key frame
    """

    data: bytes
    pts: Optional[int] = None
    dts: Optional[int] = None
    key: bool = False

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"EncodedChunk(size={len(self.data)}, pts={self.pts}, "
            f"key={self.key})"
        )


@dataclass(slots=True)
class DecodedFrame:
    """
    Decoded presentation frame.

    Attributes:
        pixels: RGB image as np.ndarray (H, W, 3), dtype=uint8
        display_width: Presentation width in pixels
        display_height: Presentation height in pixels
        timestamp: Presentation time in seconds, if known
        index: Arrival index, assigned by FrameTable (-1 until stored)
    """

    pixels: Optional[np.ndarray]
    display_width: int
    display_height: int
    timestamp: Optional[float] = None
    index: int = -1
    on_release: Optional[Callable[["DecodedFrame"], None]] = field(
        default=None, repr=False
    )
    _closed: bool = field(default=False, repr=False)

    @property
    def closed(self) -> bool:
        """Whether the frame has been released."""
        return self._closed

    def close(self) -> None:
        """
        Release the frame.

        Safe to call more than once. After closing, pixels is None.
        """
        if self._closed:
            return
        self._closed = True
        if self.on_release is not None:
            try:
                self.on_release(self)
            except Exception as e:
                logger.warning(f"Frame {self.index} release hook failed: {e}")
        self.pixels = None

    def __repr__(self) -> str:
        return (
            f"DecodedFrame(index={self.index}, "
            f"size={self.display_width}x{self.display_height}, "
            f"closed={self._closed})"
        )
