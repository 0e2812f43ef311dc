#!/usr/bin/env python3
"""Broadcast fan-out for the hosting member.

The host relays each clipboard event it accepts to every other
authenticated member, and sends roster updates the same way. A frame is
encoded once and queued on each member's bounded outbound queue; nothing
here waits on a slow member. Members whose queue has refused too many
frames in a row are returned so the coordinator can disconnect them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from lanqueue.connection import MemberConnection

logger = logging.getLogger(__name__)


def relay(
    members: Iterable[MemberConnection],
    frame: bytes,
    exclude: str | None,
    drop_limit: int,
) -> list[MemberConnection]:
    """Queue a frame on every authenticated member except exclude.

    Args:
        members: Candidate connections.
        frame: Complete frame to send.
        exclude: Member id that must not receive the frame (the sender).
        drop_limit: Consecutive refused frames after which a member counts
            as congested.

    Returns:
        Members that are congested and should be disconnected.
    """
    congested = []
    sent = 0
    for connection in members:
        if not connection.authenticated or connection.member_id == exclude:
            continue
        if connection.send_frame(frame):
            sent += 1
        elif connection.is_congested(drop_limit):
            congested.append(connection)
        else:
            logger.debug("Outbound queue of %r full, frame dropped", connection)
    logger.debug("Relayed %d bytes to %d members", len(frame), sent)
    return congested
