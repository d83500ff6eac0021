"""
Stream Module
=============

Ingestion side of a VideoCanvas: from packed payload bytes to decoded,
index-addressed frames.

Components:
    - unpack_payload / pack_payload: Length-prefixed JSON + blob codec
    - create_decoder: Demuxer/decoder negotiation with a config timeout
    - FrameTable: Index-addressed decoded frames with one pending wait
    - PayloadFetcher: HTTP client for the preprocessing service

The PyAV backend (videocanvas.stream.av_backend) is imported on demand.

Example:
    from videocanvas.stream import FrameTable, unpack_payload

    data = unpack_payload(payload)
    table = FrameTable(capacity=300)
    frame = await table.acquire(42, timeout=30.0)
"""

from videocanvas.stream.decoder import (
    DecoderHandle,
    DecodingService,
    Demuxer,
    create_decoder,
)
from videocanvas.stream.fetcher import PayloadFetcher, fetch_bytes
from videocanvas.stream.frame import DecodedFrame, EncodedChunk
from videocanvas.stream.frame_table import FrameTable
from videocanvas.stream.payload import pack_payload, unpack_payload
from videocanvas.stream.stream_config import (
    DecoderConfig,
    StreamConfig,
    ensure_compatible,
)


__all__ = [
    "DecodedFrame",
    "DecoderConfig",
    "DecoderHandle",
    "DecodingService",
    "Demuxer",
    "EncodedChunk",
    "FrameTable",
    "PayloadFetcher",
    "StreamConfig",
    "create_decoder",
    "ensure_compatible",
    "fetch_bytes",
    "pack_payload",
    "unpack_payload",
]
