"""
Models Module
=============

Pydantic models shared by the canvas and the preprocessing service.
"""

from videocanvas.models.options import VideoCanvasOptions


__all__ = [
    "VideoCanvasOptions",
]
