#!/usr/bin/env python3
"""Host mode implementation for lanqueue.

The host listens on a TCP port and accepts any number of members that know
the password. Lines typed on stdin are shared with every member, and every
event a member shares is printed locally and relayed to the others. Runs
until SIGINT/SIGTERM.

Usage:
    lanqueue --serve --port 21991 --password secret
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lanqueue.session_state import QueueStatus
    from lanqueue.settings import QueueSettings, QueueTuning


def print_startup_message(status: QueueStatus) -> None:
    """Print host startup message to stderr.

    Shows where the queue listens and the command a member would use to
    join it.

    Args:
        status: Status returned by start_host.
    """
    print(f"Hosting queue on {status.host}:{status.port}", file=sys.stderr)
    print(
        f"Join with: lanqueue --join HOST --port {status.port} --password PASSWORD",
        file=sys.stderr,
    )


async def run_server(settings: QueueSettings, tuning: QueueTuning | None = None) -> None:
    """Host a queue until a shutdown signal arrives.

    Args:
        settings: Port, password, queue name and display name.
        tuning: Queue timing overrides.

    Raises:
        AddressInUse: If the port cannot be bound.
    """
    from lanqueue.console import ConsoleBridge, publish_stdin, request_shutdown_on_signals
    from lanqueue.notify import LoggingNotifier
    from lanqueue.session import QueueSession

    shutdown_requested = asyncio.Event()
    request_shutdown_on_signals(shutdown_requested)

    session = QueueSession(notifier=LoggingNotifier(), bridge=ConsoleBridge(), tuning=tuning)
    stdin_task: asyncio.Task | None = None
    try:
        status = await session.start_host(
            settings.port, settings.password, settings.queue_name, settings.member_name
        )
        print_startup_message(status)
        stdin_task = asyncio.create_task(publish_stdin(session))
        await shutdown_requested.wait()
    finally:
        if stdin_task is not None:
            stdin_task.cancel()
            await asyncio.gather(stdin_task, return_exceptions=True)
        await session.close()
