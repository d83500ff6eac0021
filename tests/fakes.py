"""
Test Doubles
============

In-memory stand-ins for the PyAV demuxer and decoding service.

FakeDemuxer replays a scripted stream on the running event loop:
config -> (optional gate) -> chunks -> end. FakeDecoder turns each chunk
into a solid-colour frame whose RGB value is the chunk's first three bytes.
"""

import asyncio
from typing import Callable, List, Optional, Sequence

import numpy as np

from videocanvas.stream.frame import DecodedFrame, EncodedChunk
from videocanvas.stream.stream_config import DecoderConfig, StreamConfig


def color_chunk(r: int, g: int, b: int, key: bool = False) -> EncodedChunk:
    """Chunk that FakeDecoder decodes to a solid (r, g, b) frame."""
    return EncodedChunk(data=bytes([r, g, b]), key=key)


def gray_chunk(value: int) -> EncodedChunk:
    return color_chunk(value, value, value)


class FakeDemuxer:
    """Scripted demuxer."""

    def __init__(
        self,
        config: Optional[StreamConfig] = None,
        chunks: Sequence[EncodedChunk] = (),
        error: Optional[Exception] = None,
        error_after_config: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
        repeat_config: bool = False,
    ) -> None:
        self.config = config
        self.chunks = list(chunks)
        self.error = error
        self.error_after_config = error_after_config
        self.gate = gate
        self.repeat_config = repeat_config

        self.loaded: Optional[bytes] = None
        self.closed = False
        self._task: Optional[asyncio.Task] = None
        self._on_config: Callable = lambda config: None
        self._on_chunk: Callable = lambda chunk: None
        self._on_error: Callable = lambda err: None
        self._on_end: Callable = lambda: None

    def on_config(self, callback) -> None:
        self._on_config = callback

    def on_chunk(self, callback) -> None:
        self._on_chunk = callback

    def on_error(self, callback) -> None:
        self._on_error = callback

    def on_end(self, callback) -> None:
        self._on_end = callback

    def load(self, data: bytes) -> None:
        self.loaded = data
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        await asyncio.sleep(0)
        if self.error is not None:
            self._on_error(self.error)
            return
        if self.config is None:
            # Never produces a config
            return

        self._on_config(self.config)
        if self.repeat_config:
            self._on_config(self.config)
        if self.error_after_config is not None:
            self._on_error(self.error_after_config)

        if self.gate is not None:
            await self.gate.wait()

        for chunk in self.chunks:
            if self.closed:
                return
            self._on_chunk(chunk)
            await asyncio.sleep(0)
        self._on_end()


class FakeDecoder:
    """Synchronous decoding service producing solid-colour frames."""

    def __init__(
        self,
        output: Callable[[DecodedFrame], None],
        error: Callable[[Exception], None],
        supported: bool = True,
        fail_configure: bool = False,
    ) -> None:
        self._output = output
        self._error = error
        self.supported = supported
        self.fail_configure = fail_configure

        self.config: Optional[DecoderConfig] = None
        self.decoded: List[EncodedChunk] = []
        self.flushed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def is_config_supported(self, config: StreamConfig) -> bool:
        return self.supported

    def configure(self, config: DecoderConfig) -> None:
        if self.fail_configure:
            raise RuntimeError("no decoder for this profile")
        self.config = config

    def decode(self, chunk: EncodedChunk) -> None:
        self.decoded.append(chunk)
        if chunk.data == b"bad":
            self._error(RuntimeError("corrupt chunk"))
            return
        stream = self.config.stream
        pixels = np.empty((stream.coded_height, stream.coded_width, 3), dtype=np.uint8)
        pixels[...] = np.frombuffer(chunk.data[:3], dtype=np.uint8)
        self._output(DecodedFrame(
            pixels=pixels,
            display_width=stream.coded_width,
            display_height=stream.coded_height,
        ))

    def flush(self) -> None:
        self.flushed = True

    def close(self) -> None:
        self._closed = True


class DecoderRecorder:
    """Decoder factory that remembers every decoder it built."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.decoders: List[FakeDecoder] = []

    def __call__(self, output, error) -> FakeDecoder:
        decoder = FakeDecoder(output, error, **self.kwargs)
        self.decoders.append(decoder)
        return decoder


class DemuxerSequence:
    """Demuxer factory handing out prepared demuxers in order."""

    def __init__(self, *demuxers: FakeDemuxer) -> None:
        self.demuxers = list(demuxers)
        self.created: List[FakeDemuxer] = []

    def __call__(self) -> FakeDemuxer:
        demuxer = self.demuxers.pop(0)
        self.created.append(demuxer)
        return demuxer
