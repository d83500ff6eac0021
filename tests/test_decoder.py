"""
Demux/Decode Adapter Tests
==========================
"""

import asyncio
import dataclasses

import pytest

from videocanvas.errors import (
    ConfigMismatchError,
    DecodeError,
    DemuxError,
    DemuxTimeoutError,
    UnsupportedConfigError,
)
from videocanvas.stream.decoder import create_decoder
from videocanvas.stream.frame import EncodedChunk
from videocanvas.stream.stream_config import ensure_compatible

from fakes import DecoderRecorder, DemuxerSequence, FakeDemuxer, color_chunk


def _run(demuxer, decoders=None, **kwargs):
    """Negotiate with one demuxer; returns (handle or error, frames, errors, decoders)."""
    decoders = decoders or DecoderRecorder()
    frames, errors = [], []

    async def scenario():
        try:
            handle = await create_decoder(
                b"container-bytes",
                on_frame=frames.append,
                on_error=errors.append,
                demuxer_factory=DemuxerSequence(demuxer),
                decoder_factory=decoders,
                **kwargs,
            )
        except Exception as e:
            return e
        # Let the demuxer drain
        for _ in range(20):
            await asyncio.sleep(0)
        return handle

    return asyncio.run(scenario()), frames, errors, decoders


class TestCreateDecoder:
    """Tests for create_decoder() negotiation."""

    def test_negotiates_config(self, stream_config):
        """The first config configures the decoder and is returned."""
        demuxer = FakeDemuxer(config=stream_config)
        handle, _, _, decoders = _run(demuxer, has_mask=True)

        assert handle.config == dataclasses.replace(stream_config, has_mask=True)
        assert handle.demuxer is demuxer
        assert demuxer.loaded == b"container-bytes"

        decoder_config = decoders.decoders[0].config
        assert decoder_config.stream.coded_width == 4
        assert decoder_config.hardware_acceleration == "prefer-hardware"
        assert decoder_config.optimize_for_latency is False

    def test_on_config_runs_before_configure(self, stream_config):
        """The on_config hook sees the config before the decoder does."""
        seen = []
        decoders = DecoderRecorder()

        def on_config(config):
            seen.append((config.frame_count, decoders.decoders[0].config))

        _run(FakeDemuxer(config=stream_config), decoders=decoders, on_config=on_config)
        assert seen == [(3, None)]

    def test_repeated_config_ignored(self, stream_config):
        handle, _, errors, decoders = _run(
            FakeDemuxer(config=stream_config, repeat_config=True)
        )
        assert handle.config.frame_count == 3
        assert errors == []
        assert len(decoders.decoders) == 1

    def test_chunks_forwarded_and_flushed(self, stream_config):
        """Every chunk is decoded in order and end of stream flushes."""
        chunks = [color_chunk(1, 2, 3), color_chunk(4, 5, 6), color_chunk(7, 8, 9)]
        _, frames, _, decoders = _run(FakeDemuxer(config=stream_config, chunks=chunks))

        decoder = decoders.decoders[0]
        assert decoder.decoded == chunks
        assert decoder.flushed
        assert [tuple(frame.pixels[0, 0]) for frame in frames] == [(1, 2, 3), (4, 5, 6), (7, 8, 9)]

    def test_timeout(self):
        """No config within the timeout raises and closes both sides."""
        demuxer = FakeDemuxer(config=None)
        error, _, _, decoders = _run(demuxer, timeout=0.01)

        assert isinstance(error, DemuxTimeoutError)
        assert isinstance(error, TimeoutError)
        assert decoders.decoders[0].closed
        assert demuxer.closed

    def test_unsupported_config(self, stream_config):
        error, _, _, decoders = _run(
            FakeDemuxer(config=stream_config),
            decoders=DecoderRecorder(supported=False),
        )
        assert isinstance(error, UnsupportedConfigError)
        assert decoders.decoders[0].closed

    def test_configure_failure(self, stream_config):
        error, _, _, _ = _run(
            FakeDemuxer(config=stream_config),
            decoders=DecoderRecorder(fail_configure=True),
        )
        assert isinstance(error, UnsupportedConfigError)

    def test_demux_error_before_config(self):
        demuxer = FakeDemuxer(error=ValueError("moov atom not found"))
        error, _, _, _ = _run(demuxer)

        assert isinstance(error, DemuxError)
        assert "moov atom not found" in str(error)
        assert demuxer.closed

    def test_demux_error_after_config(self, stream_config):
        """Late demux errors go to on_error instead of failing negotiation."""
        late = ValueError("truncated")
        handle, _, errors, _ = _run(
            FakeDemuxer(config=stream_config, error_after_config=late)
        )
        assert handle.config.codec == "h264"
        assert errors == [late]

    def test_decode_errors_wrapped(self, stream_config):
        """Decoder errors reach on_error as DecodeError; decoding continues."""
        chunks = [EncodedChunk(data=b"bad"), color_chunk(1, 1, 1)]
        _, frames, errors, _ = _run(FakeDemuxer(config=stream_config, chunks=chunks))

        assert len(errors) == 1
        assert isinstance(errors[0], DecodeError)
        assert len(frames) == 1

    def test_rejects_non_bytes(self):
        async def scenario():
            await create_decoder(
                "not bytes",
                on_frame=lambda frame: None,
                on_error=lambda err: None,
                demuxer_factory=DemuxerSequence(FakeDemuxer()),
                decoder_factory=DecoderRecorder(),
            )

        with pytest.raises(TypeError):
            asyncio.run(scenario())


class TestEnsureCompatible:
    """Tests for base/mask config compatibility."""

    def test_matching_configs(self, stream_config):
        mask = dataclasses.replace(stream_config, codec="vp9", description=b"x")
        ensure_compatible(stream_config, mask)

    @pytest.mark.parametrize("field,value", [
        ("coded_width", 8),
        ("coded_height", 8),
        ("frame_count", 4),
        ("fps", 30.0),
    ])
    def test_mismatch(self, stream_config, field, value):
        mask = dataclasses.replace(stream_config, **{field: value})
        with pytest.raises(ConfigMismatchError) as exc_info:
            ensure_compatible(stream_config, mask)
        assert field in str(exc_info.value)

    def test_frame_interval(self, stream_config):
        assert stream_config.frame_interval == 40.0
        assert stream_config.duration == 120.0
