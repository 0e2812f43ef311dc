#!/usr/bin/env python3
"""Public surface of the LAN clipboard queue.

QueueSession is what the rest of an application talks to: start or join a
queue, publish local clipboard events, read status, leave. Every call is
turned into a command for the coordinator task and waits for the
coordinator's answer, so callers never touch session state themselves.

An application keeps exactly one QueueSession. Several can coexist in one
process (the test suite runs a host and its members side by side) because
each owns its own coordinator.

Usage:
    session = QueueSession(notifier=my_notifier, bridge=my_history)
    await session.start_host(21991, "secret", queue_name="office")
    await session.publish_text("hello")
    await session.leave()
    await session.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from lanqueue.bridge import NullBridge
from lanqueue.coordinator import Coordinator
from lanqueue.coordinator_messages import Join, Leave, Publish, Shutdown, StartHost
from lanqueue.notify import NullNotifier
from lanqueue.settings import QueueTuning

if TYPE_CHECKING:
    from lanqueue.bridge import ClipboardBridge
    from lanqueue.errors import QueueError
    from lanqueue.notify import Notifier
    from lanqueue.session_state import QueueMember, QueueStatus

logger = logging.getLogger(__name__)


class QueueSession:
    """Start/join/leave/status facade over the queue coordinator."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        bridge: ClipboardBridge | None = None,
        tuning: QueueTuning | None = None,
    ) -> None:
        self.tuning = tuning or QueueTuning()
        self._coordinator = Coordinator(
            self.tuning, notifier or NullNotifier(), bridge or NullBridge()
        )
        self._task: asyncio.Task | None = None

    async def start_host(
        self,
        port: int,
        password: str,
        queue_name: str | None = None,
        member_name: str | None = None,
    ) -> QueueStatus:
        """Host a queue on port.

        Raises:
            AddressInUse: If the port cannot be bound.
            QueueAlreadyActive: If a session is already running.
        """
        return await self._call(
            lambda reply: StartHost(port, password, queue_name, member_name, reply)
        )

    async def join(
        self,
        host: str,
        port: int,
        password: str,
        member_name: str | None = None,
    ) -> QueueStatus:
        """Join the queue hosted at host:port.

        Raises:
            AuthenticationFailed: If the password was rejected.
            ConnectionTimeout: If the host did not answer in time.
            HostUnreachable: If the host could not be reached.
            MalformedEnvelope: If the host answered with garbage.
            QueueAlreadyActive: If a session is already running.
        """
        return await self._call(lambda reply: Join(host, port, password, member_name, reply))

    async def leave(self) -> None:
        """Stop hosting or disconnect from the host. Safe to call when off."""
        if self._task is None or self._task.done():
            return
        await self._call(Leave)

    async def publish_text(self, content: str, message_id: str | None = None) -> str:
        """Share a text clipboard event with the queue.

        Returns:
            The message id of the event.

        Raises:
            QueueNotActive: If not hosting or connected.
            FrameTooLarge: If the text exceeds the frame limit.
        """
        return await self._call(lambda reply: Publish("text", content, message_id, reply))

    async def publish_image(self, data: bytes, message_id: str | None = None) -> str:
        """Share an image clipboard event with the queue.

        Returns:
            The message id of the event.

        Raises:
            QueueNotActive: If not hosting or connected.
            FrameTooLarge: If the encoded image exceeds the frame limit.
        """
        return await self._call(lambda reply: Publish("image", data, message_id, reply))

    def status(self) -> QueueStatus:
        """Snapshot of the current role and connection."""
        return self._coordinator.state.status()

    def members(self) -> list[QueueMember]:
        """Snapshot of the current members, self first."""
        return self._coordinator.member_snapshot()

    @property
    def last_error(self) -> QueueError | None:
        """Why the last client session ended without leave(), if it did."""
        return self._coordinator.last_error

    async def close(self) -> None:
        """Leave and stop the coordinator task."""
        if self._task is None or self._task.done():
            return
        await self._call(Shutdown)
        await self._task
        self._task = None

    async def _call(self, make_command):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._coordinator.run())
        reply = asyncio.get_running_loop().create_future()
        self._coordinator.submit(make_command(reply))
        return await reply
