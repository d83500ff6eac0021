"""
Demux/Decode Adapter
====================

Bridges a container demuxer to a decoding service.

Protocol:
    1. Config/error handlers are registered before any bytes are fed
    2. The first config event configures the decoder (hardware preferred,
       latency optimization off) and resolves the ready signal
    3. The ready signal races a fixed timeout (60s by default)
    4. Every coded chunk goes straight into decoder.decode()
    5. End of stream flushes the decoder so trailing frames are emitted

Decoded frames leave through the injected on_frame callback. This module
stores no frames.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from videocanvas.errors import (
    DecodeError,
    DemuxError,
    DemuxTimeoutError,
    UnsupportedConfigError,
)
from videocanvas.stream.frame import DecodedFrame, EncodedChunk
from videocanvas.stream.stream_config import DecoderConfig, StreamConfig


logger = logging.getLogger(__name__)


DEFAULT_DEMUX_TIMEOUT = 60.0

FrameCallback = Callable[[DecodedFrame], None]
ErrorCallback = Callable[[Exception], None]


# =============================================================================
# Collaborator Contracts
# =============================================================================

class Demuxer(Protocol):
    """
    Container demuxer.

    Emits one config event, then zero or more chunk events, then an end
    event. An error event may replace the config or terminate the stream.
    """

    def on_config(self, callback: Callable[[StreamConfig], None]) -> None: ...

    def on_chunk(self, callback: Callable[[EncodedChunk], None]) -> None: ...

    def on_error(self, callback: ErrorCallback) -> None: ...

    def on_end(self, callback: Callable[[], None]) -> None: ...

    def load(self, data: bytes) -> None:
        """Start demuxing `data`. Events are delivered asynchronously."""
        ...

    def close(self) -> None:
        """Stop demuxing. No events are delivered afterwards."""
        ...


class DecodingService(Protocol):
    """
    Video decoding service.

    Output frames are delivered through the `output` callback given at
    construction, in submission order. Failures go to `error`.
    """

    @property
    def closed(self) -> bool: ...

    def is_config_supported(self, config: StreamConfig) -> bool: ...

    def configure(self, config: DecoderConfig) -> None: ...

    def decode(self, chunk: EncodedChunk) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


DemuxerFactory = Callable[[], Demuxer]
DecoderFactory = Callable[[FrameCallback, ErrorCallback], DecodingService]


@dataclass
class DecoderHandle:
    """Result of a successful negotiation."""

    config: StreamConfig
    decoder: DecodingService
    demuxer: Demuxer


# =============================================================================
# Negotiation
# =============================================================================

async def create_decoder(
    data: bytes,
    on_frame: FrameCallback,
    on_error: ErrorCallback,
    demuxer_factory: DemuxerFactory,
    decoder_factory: DecoderFactory,
    has_mask: bool = False,
    on_config: Optional[Callable[[StreamConfig], None]] = None,
    timeout: float = DEFAULT_DEMUX_TIMEOUT,
    hardware_acceleration: str = "prefer-hardware",
    optimize_for_latency: bool = False,
) -> DecoderHandle:
    """
    Create a demuxer/decoder pair for `data` and wait for its config.

    Args:
        data: Container bytes
        on_frame: Receives every decoded frame
        on_error: Receives asynchronous decode and demux errors
        demuxer_factory: Builds the demuxer
        decoder_factory: Builds the decoding service from (output, error)
        has_mask: Stored on the returned config
        on_config: Called with the negotiated config before the decoder is
            configured, i.e. before any frame can be emitted
        timeout: Seconds to wait for the decode configuration
        hardware_acceleration: Passed to the decoder configuration
        optimize_for_latency: Passed to the decoder configuration

    Returns:
        DecoderHandle with the negotiated config

    Raises:
        DemuxTimeoutError: If no config arrives within `timeout`
        DemuxError: If the demuxer fails before emitting a config
        UnsupportedConfigError: If the decoder rejects the config
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"data must be bytes, got {type(data).__name__}")

    loop = asyncio.get_running_loop()
    ready: "asyncio.Future[StreamConfig]" = loop.create_future()

    def handle_decoder_error(err: Exception) -> None:
        if not isinstance(err, DecodeError):
            err = DecodeError(str(err))
        on_error(err)

    decoder = decoder_factory(on_frame, handle_decoder_error)
    demuxer = demuxer_factory()

    def handle_config(config: StreamConfig) -> None:
        if ready.done():
            logger.debug("Ignoring repeated decode configuration")
            return
        if not decoder.is_config_supported(config):
            ready.set_exception(
                UnsupportedConfigError(f"Decoder does not support {config}")
            )
            return
        config = dataclasses.replace(config, has_mask=has_mask)
        try:
            if on_config is not None:
                on_config(config)
            decoder.configure(DecoderConfig(
                stream=config,
                hardware_acceleration=hardware_acceleration,
                optimize_for_latency=optimize_for_latency,
            ))
        except Exception as e:
            ready.set_exception(UnsupportedConfigError(f"Decoder configure failed: {e}"))
            return
        ready.set_result(config)

    def handle_demux_error(err: Exception) -> None:
        if not ready.done():
            ready.set_exception(DemuxError(str(err)))
        else:
            on_error(err)

    def handle_chunk(chunk: EncodedChunk) -> None:
        if decoder.closed:
            return
        decoder.decode(chunk)

    def handle_end() -> None:
        if not decoder.closed:
            decoder.flush()

    demuxer.on_config(handle_config)
    demuxer.on_error(handle_demux_error)
    demuxer.on_chunk(handle_chunk)
    demuxer.on_end(handle_end)
    demuxer.load(bytes(data))

    try:
        config = await asyncio.wait_for(ready, timeout=timeout)
    except asyncio.TimeoutError:
        decoder.close()
        demuxer.close()
        raise DemuxTimeoutError(f"Video buffer demux timeout ({timeout:g}s)") from None
    except Exception:
        decoder.close()
        demuxer.close()
        raise

    logger.info(
        f"Decoder ready: {config.codec} {config.coded_width}x{config.coded_height}, "
        f"{config.frame_count} frames @ {config.fps:g}fps"
    )
    return DecoderHandle(config=config, decoder=decoder, demuxer=demuxer)
