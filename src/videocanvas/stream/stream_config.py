"""
Stream Configuration
====================

Negotiated decode parameters for one stream.

A StreamConfig is produced once by the demuxer when it has parsed the
container header, and is immutable afterwards. The mask stream of a
VideoCanvas must agree with the base stream on the fields listed in
COMPATIBILITY_FIELDS, otherwise the load is aborted.
"""

from dataclasses import dataclass
from typing import Optional

from videocanvas.errors import ConfigMismatchError


COMPATIBILITY_FIELDS = ("coded_width", "coded_height", "frame_count", "fps")


@dataclass(frozen=True)
class StreamConfig:
    """
    Negotiated configuration of a video stream.

    Attributes:
        codec: Decoder name understood by the decoding service (e.g. "h264")
        coded_width: Coded frame width in pixels
        coded_height: Coded frame height in pixels
        frame_count: Number of frames in the stream
        fps: Frames per second
        description: Codec extradata (avcC, hvcC, ...), if any
        has_mask: Whether the owning canvas carries a mask stream
    """

    codec: str
    coded_width: int
    coded_height: int
    frame_count: int
    fps: float
    description: Optional[bytes] = None
    has_mask: bool = False

    @property
    def frame_interval(self) -> float:
        """Duration of a single frame in milliseconds."""
        return 1000.0 / self.fps

    @property
    def duration(self) -> float:
        """Stream duration in milliseconds."""
        return self.frame_count * self.frame_interval


@dataclass(frozen=True)
class DecoderConfig:
    """
    Configuration handed to DecodingService.configure().

    Attributes:
        stream: Negotiated stream configuration
        hardware_acceleration: "prefer-hardware", "prefer-software" or
            "no-preference"
        optimize_for_latency: False lets the decoder batch work
    """

    stream: StreamConfig
    hardware_acceleration: str = "prefer-hardware"
    optimize_for_latency: bool = False


def ensure_compatible(base: StreamConfig, mask: StreamConfig) -> None:
    """
    Check that a mask stream can be composited onto a base stream.

    Raises:
        ConfigMismatchError: On the first field that differs
    """
    for name in COMPATIBILITY_FIELDS:
        base_value = getattr(base, name)
        mask_value = getattr(mask, name)
        if base_value != mask_value:
            raise ConfigMismatchError(
                f"Mask video {name} ({mask_value}) is inconsistent with "
                f"the original video {name} ({base_value})"
            )
