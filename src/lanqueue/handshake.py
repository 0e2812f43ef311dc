#!/usr/bin/env python3
"""Client side of the join handshake.

The client connects, sends Hello as its first frame and waits for the
host's answer. Connecting and the Hello exchange are each bounded by the
handshake timeout. Every failure is mapped to a typed queue error so the
caller of join() learns exactly why it could not connect.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from lanqueue.envelope import Hello, HelloAck, HelloReject, decode_envelope, frame_envelope
from lanqueue.errors import (
    AuthenticationFailed,
    ConnectionTimeout,
    HostUnreachable,
    MalformedEnvelope,
)
from lanqueue.protocol import read_frame

if TYPE_CHECKING:
    from lanqueue.settings import QueueTuning

logger = logging.getLogger(__name__)


async def connect_to_host(
    host: str, port: int, timeout: float
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a TCP connection to the queue host.

    Raises:
        ConnectionTimeout: If the connection is not established in time.
        HostUnreachable: If the connection fails (refused, no route, unknown host).
    """
    try:
        return await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError as e:
        raise ConnectionTimeout(f"Connecting to {host}:{port} timed out ({timeout}s)") from e
    except OSError as e:
        raise HostUnreachable(f"Failed to connect to {host}:{port}: {e}") from e


async def client_handshake(
    host: str, port: int, hello: Hello, tuning: QueueTuning
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter, HelloAck]:
    """Connect to a host and authenticate.

    Args:
        host: Host name or address of the queue host.
        port: Port the host listens on.
        hello: The Hello to send.
        tuning: Supplies the handshake timeout and frame limit.

    Returns:
        The open stream pair and the host's HelloAck.

    Raises:
        AuthenticationFailed: If the host answered HelloReject.
        ConnectionTimeout: If connecting or the exchange timed out.
        HostUnreachable: If the host could not be reached or hung up.
        MalformedEnvelope: If the host answered with something else.
        FrameTooLarge: If the host's answer exceeds the frame limit.
    """
    timeout = tuning.handshake_timeout
    reader, writer = await connect_to_host(host, port, timeout)
    logger.debug("Connected to %s:%s, sending hello", host, port)

    authenticated = False
    try:
        writer.write(frame_envelope(hello, tuning.max_frame_size))
        try:
            body = await asyncio.wait_for(
                _drain_and_read(reader, writer, tuning.max_frame_size), timeout
            )
        except asyncio.TimeoutError as e:
            raise ConnectionTimeout(f"No answer from {host}:{port} within {timeout}s") from e
        except OSError as e:
            raise HostUnreachable(f"Host {host}:{port} closed the connection: {e}") from e
        reply = decode_envelope(body)
        if isinstance(reply, HelloReject):
            raise AuthenticationFailed(f"Host rejected join: {reply.reason}")
        if not isinstance(reply, HelloAck):
            raise MalformedEnvelope(f"Expected hello_ack, got {type(reply).__name__}")
        authenticated = True
        return reader, writer, reply
    finally:
        if not authenticated:
            writer.close()


async def _drain_and_read(
    reader: asyncio.StreamReader, writer: asyncio.StreamWriter, max_size: int
) -> bytes:
    await writer.drain()
    return await read_frame(reader, max_size)
