#!/usr/bin/env python3
"""Client mode implementation for lanqueue.

Joins a queue hosted on another machine, publishes stdin lines to it and
prints what other members share. Runs until SIGINT/SIGTERM, or until the
host is lost when --reconnect is not given.

See client_retry.py for connection handling.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from lanqueue.client_retry import RoleWatcher, join_and_wait, join_with_retry
from lanqueue.console import ConsoleBridge, publish_stdin, request_shutdown_on_signals
from lanqueue.session import QueueSession

if TYPE_CHECKING:
    from lanqueue.settings import QueueSettings, QueueTuning


async def run_client(
    settings: QueueSettings,
    tuning: QueueTuning | None = None,
    reconnect: bool = False,
) -> None:
    """Run client mode against settings.host:settings.port.

    Args:
        settings: Host, port, password and display name to join with.
        tuning: Queue timing overrides.
        reconnect: Rejoin with backoff instead of exiting when the host
            is unreachable or lost.

    Raises:
        QueueError: If joining fails or the host is lost (without reconnect).
    """
    shutdown_requested = asyncio.Event()
    request_shutdown_on_signals(shutdown_requested)

    watcher = RoleWatcher()
    session = QueueSession(notifier=watcher, bridge=ConsoleBridge(), tuning=tuning)
    connect = join_with_retry if reconnect else join_and_wait

    member_task = asyncio.create_task(connect(session, settings, watcher))
    shutdown_task = asyncio.create_task(shutdown_requested.wait())
    stdin_task = asyncio.create_task(publish_stdin(session))
    try:
        done, _ = await asyncio.wait(
            {member_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if member_task in done:
            member_task.result()
    finally:
        for task in (member_task, shutdown_task, stdin_task):
            task.cancel()
        await asyncio.gather(member_task, shutdown_task, stdin_task, return_exceptions=True)
        await session.close()
