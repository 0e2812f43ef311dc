#!/usr/bin/env python3
"""Pytest fixtures for lanqueue tests.

Provides fast queue tuning, recording notifier/bridge doubles, a factory
for sessions that are closed after each test, and helpers for talking the
wire protocol over a raw socket.
"""

import asyncio
import socket
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field

import pytest

from lanqueue.bridge import LanClipboardItem
from lanqueue.envelope import Envelope, Hello, decode_envelope, frame_envelope
from lanqueue.notify import QUEUE_MEMBERS, QUEUE_STATUS
from lanqueue.protocol import read_frame
from lanqueue.session import QueueSession
from lanqueue.settings import QueueTuning


class RecordingBridge:
    """Clipboard bridge that keeps every inserted item."""

    def __init__(self) -> None:
        self.items: list[LanClipboardItem] = []

    def insert(self, item: LanClipboardItem) -> None:
        self.items.append(item)


class RecordingNotifier:
    """Notifier that keeps every published notification."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def publish(self, topic: str, payload: object) -> None:
        self.events.append((topic, payload))

    def payloads(self, topic: str) -> list[object]:
        return [payload for t, payload in self.events if t == topic]

    @property
    def statuses(self) -> list:
        return self.payloads(QUEUE_STATUS)

    @property
    def member_lists(self) -> list:
        return self.payloads(QUEUE_MEMBERS)


@dataclass
class Member:
    """A session under test with its recording collaborators."""

    session: QueueSession
    notifier: RecordingNotifier = field(default_factory=RecordingNotifier)
    bridge: RecordingBridge = field(default_factory=RecordingBridge)


@pytest.fixture
def tuning() -> QueueTuning:
    """Tuning bound to localhost with short timeouts."""
    return QueueTuning(bind_host="127.0.0.1", handshake_timeout=1.0, heartbeat_interval=5.0)


@pytest.fixture
async def make_member(
    tuning: QueueTuning,
) -> AsyncGenerator[Callable[..., Member], None]:
    """Create members whose sessions are closed at teardown."""
    created: list[Member] = []

    def factory(member_tuning: QueueTuning | None = None) -> Member:
        notifier = RecordingNotifier()
        bridge = RecordingBridge()
        session = QueueSession(notifier=notifier, bridge=bridge, tuning=member_tuning or tuning)
        member = Member(session=session, notifier=notifier, bridge=bridge)
        created.append(member)
        return member

    yield factory
    for member in created:
        await member.session.close()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it is true or fail the test after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met within timeout")
        await asyncio.sleep(0.01)


def free_port() -> int:
    """Return a localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def read_envelope(reader: asyncio.StreamReader, timeout: float = 2.0) -> Envelope:
    """Read and decode one frame from a raw connection."""
    return decode_envelope(await asyncio.wait_for(read_frame(reader), timeout))


async def send_envelope(writer: asyncio.StreamWriter, envelope: Envelope) -> None:
    writer.write(frame_envelope(envelope))
    await writer.drain()


async def raw_join(
    port: int, password: str, member_name: str | None = None
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter, Envelope]:
    """Connect to a host without a session and perform the hello exchange."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await send_envelope(writer, Hello(password=password, member_name=member_name))
    return reader, writer, await read_envelope(reader)
