"""
Packed Payload Codec
====================

Length-prefixed JSON + binary blob container used between the
preprocessing service and VideoCanvas.

Wire Format:
    <ASCII decimal length>!<JSON bytes><trailing blob>

    Any top-level JSON field shaped ["buffer", start, end] refers to the
    byte range [start, end) of the trailing blob. Offsets are relative to
    the first byte after the JSON region.

Example:
    >>> unpack_payload(b'21!{"a":1,"b":["@",0,4]}DEADBEEF', marker="@")
    {'a': 1, 'b': b'DEAD'}

Design Rules:
    - Unpacking is all-or-nothing: any defect raises FormatError
    - Sub-buffers are independent bytes copies of the blob
"""

import json
import logging
from typing import Any, Dict, Mapping

from videocanvas.errors import FormatError


logger = logging.getLogger(__name__)


DEFAULT_DELIMITER = b"!"
DEFAULT_MARKER = "buffer"


def unpack_payload(
    data: bytes,
    delimiter: bytes = DEFAULT_DELIMITER,
    marker: str = DEFAULT_MARKER,
) -> Dict[str, Any]:
    """
    Unpack a packed payload into its object with sub-buffers resolved.

    Args:
        data: Packed payload bytes
        delimiter: Single byte separating the length header from the JSON
        marker: First element identifying blob references

    Returns:
        The decoded JSON object with every blob reference replaced by bytes

    Raises:
        FormatError: If the header, length, JSON or a reference is invalid
    """
    data = bytes(data)
    delimiter_index = data.find(delimiter)
    if delimiter_index == -1:
        raise FormatError("Invalid data format: header delimiter not found")

    header = data[:delimiter_index]
    if not header.isdigit():
        raise FormatError(f"Invalid data format: Invalid data length {header!r}")
    obj_length = int(header)

    remaining = len(data) - delimiter_index - 1
    if obj_length <= 0 or obj_length > remaining:
        raise FormatError(
            f"Invalid data format: Invalid data length {obj_length} "
            f"({remaining} bytes available)"
        )

    obj_start = delimiter_index + 1
    obj_end = obj_start + obj_length
    try:
        obj = json.loads(data[obj_start:obj_end].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FormatError(f"Invalid data format: {e}")

    if not isinstance(obj, dict):
        raise FormatError(
            f"Invalid data format: expected JSON object, got {type(obj).__name__}"
        )

    blob = data[obj_end:]
    for key, value in obj.items():
        if _is_reference(value, marker):
            obj[key] = _slice_blob(blob, key, value)

    logger.debug(
        f"Unpacked payload: {len(obj)} fields, {len(blob)} blob bytes"
    )
    return obj


def pack_payload(
    obj: Mapping[str, Any],
    delimiter: bytes = DEFAULT_DELIMITER,
    marker: str = DEFAULT_MARKER,
) -> bytes:
    """
    Pack an object into the wire format.

    Every top-level bytes-like value is appended to the trailing blob and
    replaced by a [marker, start, end] reference.

    Args:
        obj: JSON-serializable mapping, with bytes values for sub-buffers
        delimiter: Single byte separating the length header from the JSON
        marker: First element of generated blob references

    Returns:
        Packed payload bytes
    """
    header_obj: Dict[str, Any] = {}
    blob = bytearray()
    for key, value in obj.items():
        if isinstance(value, (bytes, bytearray, memoryview)):
            start = len(blob)
            blob.extend(value)
            header_obj[key] = [marker, start, len(blob)]
        else:
            header_obj[key] = value

    obj_bytes = json.dumps(header_obj, separators=(",", ":")).encode("utf-8")
    return str(len(obj_bytes)).encode("ascii") + delimiter + obj_bytes + bytes(blob)


def _is_reference(value: Any, marker: str) -> bool:
    return isinstance(value, list) and len(value) == 3 and value[0] == marker


def _slice_blob(blob: bytes, key: str, reference: list) -> bytes:
    """Resolve one [marker, start, end] reference against the blob."""
    _, start, end = reference
    if (
        not isinstance(start, int) or isinstance(start, bool)
        or not isinstance(end, int) or isinstance(end, bool)
    ):
        raise FormatError(f"Invalid data format: non-integer offsets for '{key}'")
    if start < 0 or end < start or end > len(blob):
        raise FormatError(
            f"Invalid data format: reference '{key}' [{start}, {end}) "
            f"outside blob of {len(blob)} bytes"
        )
    return blob[start:end]
