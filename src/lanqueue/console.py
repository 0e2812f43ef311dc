#!/usr/bin/env python3
"""Terminal integration for the lanqueue CLI.

The CLI stands in for a clipboard manager: every line typed on stdin is
published to the queue as a text event, and every event received from the
queue is printed to stdout with its sender.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING, TextIO

from lanqueue.errors import FrameTooLarge, QueueNotActive

if TYPE_CHECKING:
    from lanqueue.bridge import LanClipboardItem
    from lanqueue.session import QueueSession

logger = logging.getLogger(__name__)


class ConsoleBridge:
    """Clipboard bridge that prints received items."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def insert(self, item: LanClipboardItem) -> None:
        sender = item.sender_name or item.sender_id
        if item.kind == "image":
            line = f"[{sender}] <image, {len(item.content)} bytes>"
        else:
            line = f"[{sender}] {item.content}"
        print(line, file=self._stream or sys.stdout, flush=True)


def request_shutdown_on_signals(shutdown_requested: asyncio.Event) -> None:
    """Set shutdown_requested on SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_requested.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_requested.set)


async def publish_lines(session: QueueSession, reader: asyncio.StreamReader) -> None:
    """Publish each non-empty line from reader until EOF.

    Lines that cannot be sent (not connected, too large) are logged and
    skipped.
    """
    while True:
        line = await reader.readline()
        if not line:
            logger.debug("Input closed")
            return
        text = line.decode("utf-8", errors="replace").rstrip("\r\n")
        if not text:
            continue
        try:
            message_id = await session.publish_text(text)
        except QueueNotActive as e:
            logger.warning("Line not sent: %s", e)
        except FrameTooLarge as e:
            logger.warning("Line not sent: %s", e)
        else:
            logger.debug("Sent line as %s", message_id)


async def publish_stdin(session: QueueSession) -> None:
    """Publish lines typed on stdin until it closes."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
    except (OSError, ValueError) as e:
        logger.warning("Cannot read stdin, publishing disabled: %s", e)
        return
    await publish_lines(session, reader)
