#!/usr/bin/env python3
"""Messages consumed by the queue coordinator.

Commands come from the QueueSession facade and carry a reply future the
coordinator resolves once the command has been applied. Events come from
connection units, the listener and the join handshake task; they carry no
reply.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from lanqueue.connection import MemberConnection
    from lanqueue.envelope import Envelope


@dataclass
class StartHost:
    port: int
    password: str
    queue_name: str | None
    member_name: str | None
    reply: asyncio.Future


@dataclass
class Join:
    host: str
    port: int
    password: str
    member_name: str | None
    reply: asyncio.Future


@dataclass
class Leave:
    reply: asyncio.Future


@dataclass
class Publish:
    """Send a local clipboard event; kind is "text" or "image"."""

    kind: str
    content: str | bytes
    message_id: str | None
    reply: asyncio.Future


@dataclass
class Shutdown:
    """Tear down the session and stop the coordinator loop."""

    reply: asyncio.Future


@dataclass
class Accepted:
    """The listener accepted a socket that still has to say Hello."""

    connection: MemberConnection


@dataclass
class FrameReceived:
    connection: MemberConnection
    envelope: Envelope


@dataclass
class ConnectionLost:
    """A connection unit stopped; error is why."""

    connection: MemberConnection
    error: Exception


@dataclass
class HeartbeatDue:
    connection: MemberConnection


@dataclass
class HandshakeFinished:
    """The join handshake task completed, successfully or not."""

    task: asyncio.Task


Command = Union[StartHost, Join, Leave, Publish, Shutdown]
