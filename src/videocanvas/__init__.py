"""
videocanvas
===========

Seekable, mask-composited video canvases fed by a bounded preprocessing
scheduler.

Components:
    - stream: Payload unpacking, demux/decode negotiation, frame tables
    - render: RGBA surfaces and luminance-mask compositing
    - scheduler: Two-queue download/process scheduler
    - canvas: VideoCanvas, one seekable source drawn onto a Surface
    - main: FastAPI preprocessing service

Example:
    from videocanvas.canvas import VideoCanvas
    from videocanvas.models import VideoCanvasOptions
    from videocanvas.render import Surface
    from videocanvas.stream import PayloadFetcher

    canvas = VideoCanvas(
        VideoCanvasOptions(url="https://cdn.example.com/clip.mp4", end_time=5000),
        fetcher=PayloadFetcher("http://localhost:8001"),
    )
    canvas.bind(Surface(1280, 720))
    if await canvas.load():
        await canvas.seek(0)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
