#!/usr/bin/env python3
"""
Length-prefixed framing for queue envelopes.

Every message on a queue connection is one frame: a 4-byte big-endian
unsigned length followed by exactly that many bytes of UTF-8 JSON body.

Example: b"\\x00\\x00\\x00\\x10" + b'{"type": "ping"}' is a 16-byte ping.

This module only moves bytes. Turning a body into an envelope lives in
envelope.py. Frames are capped at 16 MiB to prevent memory exhaustion
from oversized image payloads or a corrupt length prefix.
"""
from __future__ import annotations

import asyncio
import struct

from lanqueue.errors import FrameTooLarge, MalformedEnvelope

# Maximum size of a frame body in bytes (16 MiB).
# Base64 inflates images by a third, so this admits images of roughly 12 MiB.
MAX_FRAME_SIZE: int = 16 * 1024 * 1024

# Width of the length prefix in bytes.
LENGTH_PREFIX_SIZE: int = 4

_LENGTH = struct.Struct(">I")

# Timeout for the final drain when closing a connection in seconds.
# Short timeout since the peer may already be gone.
CLOSE_DRAIN_TIMEOUT: float = 2.0


def encode_frame(body: bytes, max_size: int = MAX_FRAME_SIZE) -> bytes:
    """
    Prefix a frame body with its length.

    Args:
        body: Encoded envelope body.
        max_size: Largest body the peer will accept.

    Returns:
        Frame bytes ready to write to the stream.

    Raises:
        FrameTooLarge: If the body exceeds max_size.
    """
    if len(body) > max_size:
        raise FrameTooLarge(f"Frame size {len(body)} exceeds limit {max_size}")
    return _LENGTH.pack(len(body)) + body


async def read_frame(
    reader: asyncio.StreamReader, max_size: int = MAX_FRAME_SIZE
) -> bytes:
    """
    Read one frame body from an async stream.

    Args:
        reader: asyncio StreamReader to read from.
        max_size: Largest body accepted.

    Returns:
        The frame body bytes.

    Raises:
        FrameTooLarge: If the length prefix exceeds max_size.
        MalformedEnvelope: If the length prefix is zero.
        ConnectionError: If the stream ends before a whole frame arrives.
    """
    try:
        prefix = await reader.readexactly(LENGTH_PREFIX_SIZE)
    except asyncio.IncompleteReadError as e:
        raise ConnectionError(
            f"Connection closed after {len(e.partial)} prefix bytes"
        ) from e
    (length,) = _LENGTH.unpack(prefix)
    if length > max_size:
        raise FrameTooLarge(f"Frame size {length} exceeds limit {max_size}")
    if length == 0:
        raise MalformedEnvelope("Empty frame")
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise ConnectionError(
            f"Connection closed after {len(e.partial)} of {length} body bytes"
        ) from e


async def close_writer(writer: asyncio.StreamWriter) -> None:
    """
    Close a stream writer without raising.

    Errors are ignored since the connection may already be dead
    during shutdown.

    Args:
        writer: asyncio StreamWriter to close.
    """
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_DRAIN_TIMEOUT)
    except (OSError, asyncio.TimeoutError):
        pass
