#!/usr/bin/env python3
"""Heartbeat timing for active connections.

Each active connection runs heartbeat_timer(), which asks the coordinator
for a heartbeat every interval, starting immediately. On each tick the
coordinator calls ping_due(): a peer that left max_missed pings in a row
unanswered is expired, otherwise a Ping is sent and counted. A Pong resets
the count through record_pong().

With the defaults (15 s, 3 pings) the first ping goes out on activation and
an unresponsive peer is dropped 45 s later.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable

from lanqueue.coordinator_messages import HeartbeatDue

if TYPE_CHECKING:
    from lanqueue.connection import MemberConnection


async def heartbeat_timer(
    connection: MemberConnection,
    submit: Callable[[object], None],
    interval: float,
) -> None:
    """Submit a HeartbeatDue for connection every interval until cancelled."""
    while True:
        submit(HeartbeatDue(connection))
        await asyncio.sleep(interval)


def ping_due(connection: MemberConnection, max_missed: int) -> bool:
    """
    Account for one heartbeat tick.

    Args:
        connection: The connection whose timer fired.
        max_missed: Consecutive unanswered pings tolerated.

    Returns:
        True if a Ping should be sent now (the miss is already counted),
        False if the peer has expired and must be disconnected.
    """
    if connection.missed_pongs >= max_missed:
        return False
    connection.missed_pongs += 1
    return True


def record_pong(connection: MemberConnection) -> None:
    """Mark the peer alive."""
    connection.missed_pongs = 0
    connection.last_heartbeat = time.monotonic()
