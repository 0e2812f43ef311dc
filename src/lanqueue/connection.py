#!/usr/bin/env python3
"""One queue connection and its I/O tasks.

A MemberConnection wraps the stream pair of a single socket. It runs a
reader task that turns frames into envelopes, a writer task that drains a
bounded outbound queue, and, once active, a heartbeat timer. None of these
tasks touch session state: everything they observe is submitted to the
coordinator as an event, and the coordinator is the only caller of the
methods that change membership fields.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable

from lanqueue.coordinator_messages import ConnectionLost, FrameReceived
from lanqueue.envelope import decode_envelope
from lanqueue.errors import ConnectionTimeout, QueueError
from lanqueue.heartbeat import heartbeat_timer
from lanqueue.protocol import CLOSE_DRAIN_TIMEOUT, close_writer, read_frame

if TYPE_CHECKING:
    from lanqueue.settings import QueueTuning

logger = logging.getLogger(__name__)


def format_address(peername: object) -> str | None:
    """Render a socket peername as "host:port"."""
    if isinstance(peername, tuple) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    return None


class MemberConnection:
    """A socket to one peer: a member on the host, the host on a client.

    Attributes:
        member_id: Id of the peer once authenticated, else None.
        display_name: Peer display name, if it gave one.
        address: Remote "host:port".
        authenticated: Set once by activate(), never cleared.
        last_heartbeat: Monotonic time of the last Pong or activation.
        missed_pongs: Consecutive pings sent without a Pong.
        dropped_frames: Consecutive frames refused by the full outbound queue.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        submit: Callable[[object], None],
        tuning: QueueTuning,
        awaiting_hello: bool = False,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.member_id: str | None = None
        self.display_name: str | None = None
        self.address = format_address(writer.get_extra_info("peername"))
        self.authenticated = False
        self.last_heartbeat = time.monotonic()
        self.missed_pongs = 0
        self.dropped_frames = 0
        self.outbound: asyncio.Queue[bytes | None] = asyncio.Queue(
            maxsize=tuning.outbound_queue_size
        )
        self._submit = submit
        self._tuning = tuning
        self._awaiting_hello = awaiting_hello
        self._reader_task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<MemberConnection id={self.member_id} addr={self.address}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the reader and writer tasks."""
        self._reader_task = asyncio.create_task(self._read_loop())
        self._writer_task = asyncio.create_task(self._write_loop())

    def activate(self, member_id: str, display_name: str | None) -> None:
        """Mark the handshake complete.

        Raises:
            RuntimeError: If the connection was already authenticated.
        """
        if self.authenticated:
            raise RuntimeError(f"{self!r} is already authenticated")
        self.member_id = member_id
        self.display_name = display_name
        self.authenticated = True
        self.last_heartbeat = time.monotonic()

    def start_heartbeat(self) -> None:
        self._heartbeat_task = asyncio.create_task(
            heartbeat_timer(self, self._submit, self._tuning.heartbeat_interval)
        )

    def send_frame(self, frame: bytes) -> bool:
        """Queue a frame for sending without waiting.

        Returns:
            False if the outbound queue is full and the frame was dropped.
        """
        if self._closed:
            return False
        try:
            self.outbound.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            return False
        self.dropped_frames = 0
        return True

    def is_congested(self, limit: int) -> bool:
        """True once limit consecutive frames have been refused."""
        return self.dropped_frames >= limit

    async def close(self, flush: bool = False) -> None:
        """Stop all tasks and close the socket.

        Args:
            flush: Give the writer a short chance to send what is queued
                before the socket closes.
        """
        if self._closed:
            return
        self._closed = True
        if flush and self._writer_task is not None and not self._writer_task.done():
            try:
                self.outbound.put_nowait(None)
            except asyncio.QueueFull:
                pass
            else:
                await asyncio.wait({self._writer_task}, timeout=CLOSE_DRAIN_TIMEOUT)
        tasks = [
            task
            for task in (self._reader_task, self._writer_task, self._heartbeat_task)
            if task is not None and task is not asyncio.current_task()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await close_writer(self.writer)
        logger.debug("Closed connection %r", self)

    def tasks_running(self) -> bool:
        """True if any I/O task of this connection has not finished."""
        return any(
            task is not None and not task.done()
            for task in (self._reader_task, self._writer_task, self._heartbeat_task)
        )

    async def _read_loop(self) -> None:
        max_size = self._tuning.max_frame_size
        try:
            if self._awaiting_hello:
                timeout = self._tuning.handshake_timeout
                try:
                    body = await asyncio.wait_for(read_frame(self.reader, max_size), timeout)
                except asyncio.TimeoutError as e:
                    raise ConnectionTimeout(
                        f"No hello from {self.address} within {timeout}s"
                    ) from e
                self._submit(FrameReceived(self, decode_envelope(body)))
            while True:
                body = await read_frame(self.reader, max_size)
                self._submit(FrameReceived(self, decode_envelope(body)))
        except (QueueError, OSError) as e:
            self._submit(ConnectionLost(self, e))

    async def _write_loop(self) -> None:
        try:
            while True:
                frame = await self.outbound.get()
                if frame is None:
                    return
                self.writer.write(frame)
                await self.writer.drain()
        except OSError as e:
            self._submit(ConnectionLost(self, e))
