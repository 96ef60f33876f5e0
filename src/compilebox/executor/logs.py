"""Decoder for the engine's multiplexed stdout/stderr log stream."""
from __future__ import annotations
import struct

# 1 byte stream type, 3 bytes padding, 4 bytes big-endian payload length
HEADER = struct.Struct(">BxxxL")


def iter_frames(buf: bytes):
    """Yield (stream_type, payload) per record. Stops at an incomplete header."""
    offset = 0
    end = len(buf)
    while offset + HEADER.size <= end:
        stream_type, length = HEADER.unpack_from(buf, offset)
        offset += HEADER.size
        yield stream_type, buf[offset:offset + length]
        offset += length


def demux(buf: bytes) -> str:
    """
    Merge stdout and stderr payloads into one transcript, in emission order.
    Payloads are joined before decoding so a multi-byte character split
    across two records survives.
    """
    payload = b"".join(chunk for _, chunk in iter_frames(buf))
    return payload.decode("utf-8", errors="replace")


def mux(records) -> bytes:
    """Inverse of demux for (stream_type, payload) pairs. Used by tests and fakes."""
    return b"".join(HEADER.pack(stream_type, len(payload)) + payload for stream_type, payload in records)
