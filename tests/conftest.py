"""
Test Configuration
==================

Pytest fixtures and test configuration for videocanvas.
"""

import numpy as np
import pytest


@pytest.fixture
def stream_config():
    """Provide a small 4x4, 3-frame, 25fps StreamConfig."""
    from videocanvas.stream.stream_config import StreamConfig

    return StreamConfig(
        codec="h264",
        coded_width=4,
        coded_height=4,
        frame_count=3,
        fps=25.0,
    )


@pytest.fixture
def canvas_options():
    """Provide canvas options for a 5 second clip."""
    from videocanvas.models.options import VideoCanvasOptions

    return VideoCanvasOptions(
        url="https://cdn.example.com/clip.mp4",
        start_time=1000,
        end_time=6000,
    )


@pytest.fixture
def make_frame():
    """Build solid-colour DecodedFrames."""
    from videocanvas.stream.frame import DecodedFrame

    def _make(color=(10, 20, 30), width=4, height=4, on_release=None):
        pixels = np.empty((height, width, 3), dtype=np.uint8)
        pixels[...] = color
        return DecodedFrame(
            pixels=pixels,
            display_width=width,
            display_height=height,
            on_release=on_release,
        )

    return _make


@pytest.fixture
def packed_payload():
    """Build a packed payload the way ProcessTask does."""
    from videocanvas.stream.payload import pack_payload

    def _pack(buffer=b"\x00\x00\x00\x18ftypmp42", mask_buffer=None, has_mask=None):
        obj = {
            "url": "https://cdn.example.com/clip.mp4",
            "hasMask": mask_buffer is not None if has_mask is None else has_mask,
            "buffer": buffer,
        }
        if mask_buffer is not None:
            obj["maskBuffer"] = mask_buffer
        return pack_payload(obj)

    return _pack
