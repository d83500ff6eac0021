#!/usr/bin/env python3
"""
Frame Dump Script
=================

Standalone script to exercise the canvas end to end.

This script:
    1. Packs a local video (and optional mask video) into a payload, or
       requests one from a running preprocessing service
    2. Loads a VideoCanvas bound to an offscreen Surface
    3. Seeks frame by frame and writes each drawn frame as a PNG

Prerequisites:
    - Install dependencies: pip install -e .
    - For --service: the preprocessing service must be running
      (python -m videocanvas.main)

Usage:
    python scripts/render_frames.py clip.mp4 --out frames/
    python scripts/render_frames.py clip.mp4 --mask clip_mask.mp4 --max-frames 30
    python scripts/render_frames.py https://cdn.example.com/clip.mp4 --service
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

import cv2

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from videocanvas.canvas import VideoCanvas
from videocanvas.config import settings
from videocanvas.errors import FrameTimeoutError
from videocanvas.models import VideoCanvasOptions
from videocanvas.render import Surface
from videocanvas.stream import PayloadFetcher, pack_payload


logger = logging.getLogger(__name__)


class LocalFetcher:
    """Packs local files the way the preprocessing service does."""

    def __init__(self, video_path: str, mask_path: Optional[str] = None) -> None:
        self.video_path = video_path
        self.mask_path = mask_path

    async def __call__(self, options: VideoCanvasOptions) -> bytes:
        obj = {
            "url": options.url,
            "hasMask": self.mask_path is not None,
            "buffer": Path(self.video_path).read_bytes(),
        }
        if self.mask_path is not None:
            obj["maskBuffer"] = Path(self.mask_path).read_bytes()
        return pack_payload(obj)


async def render(
    source: str,
    out_dir: Path,
    mask: Optional[str],
    width: int,
    height: int,
    max_frames: int,
    use_service: bool,
) -> dict:
    """
    Load the source and dump its frames.

    Args:
        source: Local path, or URL when use_service is set
        out_dir: Output directory for PNGs
        mask: Optional mask path or URL
        width: Surface width
        height: Surface height
        max_frames: Stop after this many frames (0 = all)
        use_service: Request the payload from the preprocessing service

    Returns:
        Summary dict
    """
    options = VideoCanvasOptions(
        url=source,
        start_time=0,
        end_time=0,
        mask_url=mask if use_service else None,
    )
    if use_service:
        fetcher = PayloadFetcher(
            settings.fetch.base_url,
            timeout_seconds=settings.fetch.timeout_seconds,
        )
    else:
        fetcher = LocalFetcher(source, mask)

    canvas = VideoCanvas(
        options,
        fetcher=fetcher,
        demux_timeout=settings.decoder.demux_timeout_seconds,
        acquire_timeout=settings.decoder.frame_timeout_seconds,
    )
    canvas.bind(Surface(width, height))

    started = time.time()
    if not await canvas.load():
        raise RuntimeError(f"Failed to load {source}: see log for details")

    config = canvas.config
    total = config.frame_count if max_frames <= 0 else min(max_frames, config.frame_count)
    logger.info(
        f"Rendering {total}/{config.frame_count} frames of "
        f"{config.coded_width}x{config.coded_height} @ {config.fps:g}fps"
    )

    out_dir.mkdir(parents=True, exist_ok=True)
    written = 0
    timeouts = 0
    try:
        for index in range(total):
            # Aim at the middle of the frame interval
            seek_time = (index + 0.5) * config.frame_interval
            try:
                drawn = await canvas.seek(seek_time)
            except FrameTimeoutError as e:
                timeouts += 1
                logger.warning(str(e))
                continue
            if not drawn:
                continue

            bgra = cv2.cvtColor(canvas.surface.get_image_data(), cv2.COLOR_RGBA2BGRA)
            cv2.imwrite(str(out_dir / f"frame_{index:05d}.png"), bgra)
            written += 1
    finally:
        canvas.destroy()

    return {
        "frames_written": written,
        "frame_timeouts": timeouts,
        "decoder_error": str(canvas.last_error) if canvas.last_error else None,
        "elapsed_seconds": round(time.time() - started, 2),
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump VideoCanvas frames as PNG files"
    )
    parser.add_argument("source", help="Video file (or URL with --service)")
    parser.add_argument("--mask", default=None, help="Mask video file or URL")
    parser.add_argument("--out", default="frames", help="Output directory")
    parser.add_argument("--width", type=int, default=1280, help="Surface width")
    parser.add_argument("--height", type=int, default=720, help="Surface height")
    parser.add_argument(
        "--max-frames", type=int, default=0, help="Frames to render (0 = all)"
    )
    parser.add_argument(
        "--service",
        action="store_true",
        help=f"Fetch the payload from {settings.fetch.base_url}",
    )
    args = parser.parse_args()

    summary = asyncio.run(render(
        source=args.source,
        out_dir=Path(args.out),
        mask=args.mask,
        width=args.width,
        height=args.height,
        max_frames=args.max_frames,
        use_service=args.service,
    ))

    logger.info("=" * 60)
    for key, value in summary.items():
        logger.info(f"{key}: {value}")
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
