#!/usr/bin/env python3
"""Join-and-stay-connected logic for the CLI client mode.

join_and_wait() joins once and returns only by raising when the link to
the host ends. join_with_retry() wraps it with tenacity for exponential
backoff when --reconnect is given: an unreachable or lost host is retried,
a rejected password is not.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_never,
    wait_exponential,
)

from lanqueue.errors import ConnectionTimeout, HostUnreachable, MemberDisconnected
from lanqueue.notify import QUEUE_STATUS, LoggingNotifier
from lanqueue.queue_constants import (
    RECONNECT_INITIAL_WAIT,
    RECONNECT_MAX_WAIT,
    RECONNECT_MULTIPLIER,
)
from lanqueue.session_state import QueueRole

if TYPE_CHECKING:
    from lanqueue.session import QueueSession
    from lanqueue.settings import QueueSettings

logger = logging.getLogger(__name__)


class RoleWatcher(LoggingNotifier):
    """Logging notifier that also tracks whether the session is off."""

    def __init__(self) -> None:
        self.off = asyncio.Event()
        self.off.set()

    def publish(self, topic: str, payload: object) -> None:
        super().publish(topic, payload)
        if topic == QUEUE_STATUS:
            if payload.role is QueueRole.OFF:
                self.off.set()
            else:
                self.off.clear()


async def join_and_wait(
    session: QueueSession, settings: QueueSettings, watcher: RoleWatcher
) -> None:
    """Join the configured host and wait until the link ends.

    Raises:
        MemberDisconnected: When the host is lost after a successful join.
        QueueError: Any join failure, unchanged.
    """
    logger.debug("Joining %s:%s", settings.host, settings.port)
    status = await session.join(
        settings.host, settings.port, settings.password, settings.member_name
    )
    logger.info("Joined %s:%s as %s", status.host, status.port, status.self_id)
    await watcher.off.wait()
    raise session.last_error or MemberDisconnected("Connection to host ended")


@retry(
    wait=wait_exponential(
        multiplier=RECONNECT_MULTIPLIER,
        min=RECONNECT_INITIAL_WAIT,
        max=RECONNECT_MAX_WAIT,
    ),
    retry=retry_if_exception_type((HostUnreachable, ConnectionTimeout, MemberDisconnected)),
    stop=stop_never,
    before_sleep=before_sleep_log(logger, logging.WARNING),
)
async def join_with_retry(
    session: QueueSession, settings: QueueSettings, watcher: RoleWatcher
) -> None:
    """Join the configured host, rejoining with backoff whenever it is lost.

    Note:
        This function never returns normally - it either runs until
        cancelled or raises an error that is not retried.
    """
    await join_and_wait(session, settings, watcher)
