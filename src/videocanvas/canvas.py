"""
Video Canvas
============

One seekable video source drawn onto a Surface.

Lifecycle:
    canvas = VideoCanvas(options, fetcher=PayloadFetcher(base_url))
    canvas.bind(Surface(1280, 720))
    if await canvas.load():
        await canvas.seek(1500)   # draws the frame at t=1.5s
    canvas.destroy()

load() fetches the packed payload, unpacks it, negotiates a decoder for
the base stream (and for the mask stream when present), and starts
decoding in the background. seek() maps a time to a frame index, waits
for that frame (and its mask frame), draws it, and releases it.

Error Policy:
    - load() never raises: any failure tears the canvas down and
      returns False
    - seek() propagates FrameTimeoutError and friends; the canvas stays
      usable for later seeks
    - Decoder errors are logged and kept in last_error
"""

import logging
import math
from typing import Awaitable, Callable, Optional

from videocanvas.errors import FetchError, FormatError
from videocanvas.models.options import VideoCanvasOptions
from videocanvas.render.compositor import MaskCompositor, draw_frame
from videocanvas.render.surface import Surface
from videocanvas.stream.decoder import (
    DEFAULT_DEMUX_TIMEOUT,
    DecoderFactory,
    DecoderHandle,
    DecodingService,
    Demuxer,
    DemuxerFactory,
    create_decoder,
)
from videocanvas.stream.frame_table import DEFAULT_ACQUIRE_TIMEOUT, FrameTable
from videocanvas.stream.payload import unpack_payload
from videocanvas.stream.stream_config import StreamConfig, ensure_compatible


logger = logging.getLogger(__name__)


Fetcher = Callable[[VideoCanvasOptions], Awaitable[Optional[bytes]]]


def _default_demuxer_factory() -> Demuxer:
    from videocanvas.stream.av_backend import AVDemuxer
    return AVDemuxer()


def _default_decoder_factory(output, error) -> DecodingService:
    from videocanvas.stream.av_backend import AVDecoder
    return AVDecoder(output, error)


class VideoCanvas:
    """
    Seekable, optionally mask-composited video source.

    Attributes:
        options: Validated source options
        config: Negotiated base stream config (None until loaded)
        frame_index: Index of the last drawn frame (-1 before the first draw)
        destroyed: Whether the canvas has been torn down
        last_error: Most recent asynchronous decoder error
    """

    def __init__(
        self,
        options: VideoCanvasOptions,
        fetcher: Fetcher,
        demuxer_factory: DemuxerFactory = _default_demuxer_factory,
        decoder_factory: DecoderFactory = _default_decoder_factory,
        demux_timeout: float = DEFAULT_DEMUX_TIMEOUT,
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ) -> None:
        """
        Initialize canvas.

        Args:
            options: Source options
            fetcher: Coroutine function returning the packed payload for
                the options, or None if it is unavailable
            demuxer_factory: Builds demuxers (PyAV by default)
            decoder_factory: Builds decoding services (PyAV by default)
            demux_timeout: Seconds to wait for each decode configuration
            acquire_timeout: Seconds to wait for each frame during seek
        """
        self.options = options
        self._fetcher = fetcher
        self._demuxer_factory = demuxer_factory
        self._decoder_factory = decoder_factory
        self.demux_timeout = demux_timeout
        self.acquire_timeout = acquire_timeout

        self.config: Optional[StreamConfig] = None
        self.frame_index: int = -1
        self.current_time: float = 0.0
        self.destroyed: bool = False
        self.last_error: Optional[Exception] = None

        self.surface: Optional[Surface] = None
        self._compositor: Optional[MaskCompositor] = None
        self._video: Optional[DecoderHandle] = None
        self._mask: Optional[DecoderHandle] = None
        self._frames: Optional[FrameTable] = None
        self._mask_frames: Optional[FrameTable] = None

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def bind(self, surface: Surface) -> None:
        """Attach the surface frames are drawn onto."""
        self.surface = surface

    # -------------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------------

    def can_play(self, time: float) -> bool:
        """Whether timeline `time` (ms) falls inside [start_time, end_time)."""
        if self.destroyed:
            return False
        return self.options.start_time <= time < self.options.end_time

    def can_destroy(self, time: float) -> bool:
        """Whether timeline `time` (ms) is past end_time."""
        if self.destroyed:
            return False
        return time >= self.options.end_time

    def is_ready(self) -> bool:
        return self._video is not None and not self.destroyed

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> bool:
        """
        Fetch, unpack and start decoding the source.

        Returns:
            True on success. On failure the canvas is destroyed and False
            is returned. A canvas loads once; later calls return False.
        """
        if self.destroyed:
            return False
        if self._video is not None:
            logger.warning(f"{self.options.url} is already loaded")
            return False
        try:
            await self._load()
            return True
        except Exception as e:
            logger.error(f"Failed to load {self.options.url}: {e}")
            self.destroy()
            return False

    async def _load(self) -> None:
        if self.surface is None:
            raise RuntimeError("VideoCanvas must be bound to a surface before load()")

        payload = await self._fetcher(self.options)
        if not payload:
            raise FetchError(f"No payload for {self.options.url}")

        data = unpack_payload(payload)
        buffer = data.get("buffer")
        has_mask = bool(data.get("hasMask", False))
        mask_buffer = data.get("maskBuffer")
        if not isinstance(buffer, bytes):
            raise FormatError("Payload has no video buffer")
        if has_mask and not isinstance(mask_buffer, bytes):
            raise FormatError("Payload declares a mask but has no mask buffer")

        # Tables are sized from the negotiated config, which arrives just
        # before the first frame can
        self._video = await create_decoder(
            buffer,
            on_frame=lambda frame: self._frames.on_frame(frame),
            on_error=self._on_decoder_error,
            demuxer_factory=self._demuxer_factory,
            decoder_factory=self._decoder_factory,
            has_mask=has_mask,
            on_config=self._init_frames,
            timeout=self.demux_timeout,
        )
        self.config = self._video.config

        if has_mask:
            self._compositor = MaskCompositor(
                self.surface.width,
                self.surface.height,
                image_smoothing=self.surface.image_smoothing,
            )
            self._mask = await create_decoder(
                mask_buffer,
                on_frame=lambda frame: self._mask_frames.on_frame(frame),
                on_error=self._on_decoder_error,
                demuxer_factory=self._demuxer_factory,
                decoder_factory=self._decoder_factory,
                on_config=self._init_mask_frames,
                timeout=self.demux_timeout,
            )
            ensure_compatible(self.config, self._mask.config)

        logger.info(
            f"Loaded {self.options.url}: {self.config.frame_count} frames, "
            f"interval={self.config.frame_interval:.2f}ms, mask={has_mask}"
        )

    def _init_frames(self, config: StreamConfig) -> None:
        self._frames = FrameTable(config.frame_count, name="video")

    def _init_mask_frames(self, config: StreamConfig) -> None:
        self._mask_frames = FrameTable(config.frame_count, name="mask")

    def _on_decoder_error(self, err: Exception) -> None:
        self.last_error = err
        logger.error(f"Decoder error ({self.options.url}): {err}")

    # -------------------------------------------------------------------------
    # Seeking
    # -------------------------------------------------------------------------

    async def seek(self, time: float) -> bool:
        """
        Draw the frame presented at source time `time` (ms).

        Callers must not issue concurrent seeks on the same canvas.

        Returns:
            True if a frame was drawn, False if nothing was drawn (not
            loaded, destroyed, same frame as last time, or past the end)

        Raises:
            FrameTimeoutError: If the frame was not decoded in time
            FrameReleasedError: If the frame was already consumed
        """
        if self.destroyed or not self.is_ready():
            return False

        frame_index = math.floor(time / self.config.frame_interval)
        if frame_index == self.frame_index:
            return False
        if frame_index < 0 or frame_index >= self.config.frame_count:
            return False

        # destroy() may run while a wait is pending
        frames = self._frames
        mask_frames = self._mask_frames
        compositor = self._compositor
        surface = self.surface

        # Frames stay in their tables until both are in hand, so a failed
        # mask wait can be retried
        frame = await frames.acquire(frame_index, timeout=self.acquire_timeout)
        mask_frame = None
        if mask_frames is not None:
            mask_frame = await mask_frames.acquire(
                frame_index, timeout=self.acquire_timeout
            )

        try:
            if self.destroyed:
                return False
            if mask_frame is not None:
                compositor.composite(frame, mask_frame, surface)
            else:
                surface.clear_rect()
                draw_frame(frame, surface)
        finally:
            frames.release(frame_index)
            if mask_frame is not None:
                mask_frames.release(frame_index)

        self.frame_index = frame_index
        self.current_time = time
        return True

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def destroy(self) -> None:
        """Close decoders, drop demuxers and release every held frame."""
        for handle in (self._video, self._mask):
            if handle is not None:
                handle.decoder.close()
                handle.demuxer.close()
        self._video = None
        self._mask = None

        for table in (self._frames, self._mask_frames):
            if table is not None:
                table.clear()
        self._frames = None
        self._mask_frames = None

        self.destroyed = True
