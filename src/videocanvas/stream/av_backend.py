"""
PyAV Backend
============

FFmpeg-backed Demuxer and DecodingService implementations.

Design Rules:
    - This is the ONLY module that touches PyAV
    - The demuxer runs as an asyncio task and yields to the event loop
      between packets, so frames can be consumed while demuxing continues
    - Decoded frames are converted to RGB numpy arrays; the FFmpeg frame
      buffer is not retained after conversion
    - Decode failures are reported through the error callback, never raised
      into the demuxer
"""

import asyncio
import io
import logging
from typing import Callable, Optional

import av
import numpy as np

from videocanvas.errors import DecodeError, DemuxError
from videocanvas.stream.frame import DecodedFrame, EncodedChunk
from videocanvas.stream.stream_config import DecoderConfig, StreamConfig


logger = logging.getLogger(__name__)

av.logging.set_level(av.logging.ERROR)


# =============================================================================
# Demuxer
# =============================================================================

class AVDemuxer:
    """
    Container demuxer backed by av.open().

    Emits a StreamConfig for the first video stream, then one EncodedChunk
    per packet, then an end event.

    Example:
        demuxer = AVDemuxer()
        demuxer.on_config(handle_config)
        demuxer.on_chunk(decoder.decode)
        demuxer.load(mp4_bytes)
    """

    def __init__(self, yield_every: int = 8) -> None:
        """
        Initialize demuxer.

        Args:
            yield_every: Packets emitted between event loop yields
        """
        self.yield_every = max(1, yield_every)

        self._config_cb: Callable[[StreamConfig], None] = lambda config: None
        self._chunk_cb: Callable[[EncodedChunk], None] = lambda chunk: None
        self._error_cb: Callable[[Exception], None] = lambda err: None
        self._end_cb: Callable[[], None] = lambda: None
        self._task: Optional[asyncio.Task] = None
        self._closed: bool = False
        self.chunks_emitted: int = 0

    def on_config(self, callback: Callable[[StreamConfig], None]) -> None:
        self._config_cb = callback

    def on_chunk(self, callback: Callable[[EncodedChunk], None]) -> None:
        self._chunk_cb = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        self._error_cb = callback

    def on_end(self, callback: Callable[[], None]) -> None:
        self._end_cb = callback

    def load(self, data: bytes) -> None:
        """Start demuxing `data` on the running event loop."""
        self._task = asyncio.get_running_loop().create_task(
            self._run(bytes(data)),
            name="av_demux",
        )

    def close(self) -> None:
        """Stop demuxing."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, data: bytes) -> None:
        try:
            container = av.open(io.BytesIO(data), mode="r")
        except av.error.FFmpegError as e:
            self._error_cb(DemuxError(f"Failed to open container: {e}"))
            return

        try:
            if not container.streams.video:
                raise DemuxError("Container has no video stream")
            stream = container.streams.video[0]
            self._config_cb(stream_config_from(container, stream))

            for packet in container.demux(stream):
                if self._closed:
                    return
                # Demux ends with an empty flush packet
                if packet.size == 0:
                    continue
                self._chunk_cb(EncodedChunk(
                    data=bytes(packet),
                    pts=packet.pts,
                    dts=packet.dts,
                    key=packet.is_keyframe,
                ))
                self.chunks_emitted += 1
                if self.chunks_emitted % self.yield_every == 0:
                    await asyncio.sleep(0)

            if not self._closed:
                logger.debug(f"Demux finished: {self.chunks_emitted} chunks")
                self._end_cb()
        except (av.error.FFmpegError, DemuxError) as e:
            self._error_cb(e if isinstance(e, DemuxError) else DemuxError(str(e)))
        except Exception as e:
            logger.error(f"Demux aborted by callback failure: {e}")
            self._error_cb(DemuxError(str(e)))
        finally:
            container.close()


def stream_config_from(container, stream) -> StreamConfig:
    """
    Build a StreamConfig from a PyAV video stream.

    Frame count falls back to duration x fps when the container does not
    record it (e.g. WebM).

    Raises:
        DemuxError: If frame rate or frame count cannot be determined
    """
    rate = stream.average_rate or stream.guessed_rate or stream.base_rate
    if not rate:
        raise DemuxError("Video frame rate is unknown")
    fps = float(rate)

    frame_count = stream.frames
    if not frame_count and stream.duration is not None and stream.time_base:
        frame_count = int(round(float(stream.duration * stream.time_base) * fps))
    if not frame_count and container.duration:
        frame_count = int(round(container.duration / av.time_base * fps))
    if not frame_count:
        raise DemuxError("Video frame count is unknown")

    ctx = stream.codec_context
    return StreamConfig(
        codec=ctx.name,
        coded_width=ctx.width,
        coded_height=ctx.height,
        frame_count=frame_count,
        fps=fps,
        description=bytes(ctx.extradata) if ctx.extradata else None,
    )


# =============================================================================
# Decoding Service
# =============================================================================

class AVDecoder:
    """
    Decoding service backed by av.CodecContext.

    Attributes:
        frames_decoded: Number of frames emitted
        decode_errors: Number of chunks that failed to decode
    """

    def __init__(
        self,
        output: Callable[[DecodedFrame], None],
        error: Callable[[Exception], None],
        pixel_format: str = "rgb24",
    ) -> None:
        """
        Initialize decoder.

        Args:
            output: Receives decoded frames, in presentation order
            error: Receives DecodeError instances
            pixel_format: PyAV ndarray format for frame pixels
        """
        self._output = output
        self._error = error
        self.pixel_format = pixel_format

        self._codec: Optional[av.CodecContext] = None
        self._closed: bool = False
        self.frames_decoded: int = 0
        self.decode_errors: int = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def is_config_supported(self, config: StreamConfig) -> bool:
        return config.codec in av.codecs_available

    def configure(self, config: DecoderConfig) -> None:
        """
        Create the codec context for `config`.

        config.hardware_acceleration is logged but not applied: decoding
        always runs on FFmpeg's software decoders.
        """
        stream = config.stream
        codec = av.CodecContext.create(stream.codec, "r")
        if stream.description:
            codec.extradata = stream.description
        codec.width = stream.coded_width
        codec.height = stream.coded_height
        # Frame threading batches decode work at the cost of latency
        codec.thread_type = "SLICE" if config.optimize_for_latency else "AUTO"
        self._codec = codec

        logger.info(
            f"AVDecoder configured: {stream.codec} "
            f"{stream.coded_width}x{stream.coded_height}, "
            f"thread_type={codec.thread_type}, "
            f"hardware_acceleration={config.hardware_acceleration}"
        )

    def decode(self, chunk: EncodedChunk) -> None:
        """Decode one chunk, emitting any frames it completes."""
        if self._closed:
            return
        if self._codec is None:
            self._report(DecodeError("decode() called before configure()"))
            return

        packet = av.Packet(chunk.data)
        packet.pts = chunk.pts
        packet.dts = chunk.dts
        try:
            frames = self._codec.decode(packet)
        except av.error.FFmpegError as e:
            self._report(DecodeError(f"FFmpeg decode error (pts={chunk.pts}): {e}"))
            return
        for frame in frames:
            self._emit(frame)

    def flush(self) -> None:
        """Drain frames buffered inside the codec."""
        if self._closed or self._codec is None:
            return
        try:
            frames = self._codec.decode(None)
        except av.error.FFmpegError as e:
            self._report(DecodeError(f"FFmpeg flush error: {e}"))
            return
        for frame in frames:
            self._emit(frame)

    def close(self) -> None:
        self._closed = True
        self._codec = None

    def _emit(self, av_frame) -> None:
        pixels = av_frame.to_ndarray(format=self.pixel_format)
        if pixels.ndim != 3 or pixels.shape[2] != 3 or pixels.dtype != np.uint8:
            self._report(DecodeError(
                f"Invalid decoded frame: shape={pixels.shape}, dtype={pixels.dtype}"
            ))
            return

        self.frames_decoded += 1
        self._output(DecodedFrame(
            pixels=pixels,
            display_width=av_frame.width,
            display_height=av_frame.height,
            timestamp=av_frame.time,
        ))

    def _report(self, err: DecodeError) -> None:
        self.decode_errors += 1
        if self.decode_errors <= 10:
            logger.warning(f"Decode error ({self.decode_errors}): {err}")
        elif self.decode_errors == 11:
            logger.warning("Suppressing further decode errors...")
        self._error(err)
